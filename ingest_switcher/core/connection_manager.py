"""
core/connection_manager.py — Owns the single OBS session and its lifecycle state.

Components that talk to OBS borrow the client from here and must check
liveness first. Every connect and every disconnect/session end bumps
`session_id`; a response obtained under an older id must be discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .errors import ConnectError, ConnectFailure, OBSConnectionError
from .obs_client import OBSClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionConfig:
    host: str = "localhost"
    port: int = 4455
    password: str = ""
    timeout: float = 10.0

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


ClientFactory = Callable[..., Any]


class ConnectionManager:
    """
    Usage:
        manager = ConnectionManager()
        manager.on_session_ended(registry.clear)
        await manager.connect(ConnectionConfig("localhost", 4455, "secret"))
    """

    def __init__(self, client_factory: ClientFactory = OBSClient):
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._config: Optional[ConnectionConfig] = None
        self._state = ConnectionState.DISCONNECTED
        self._last_error: Optional[ConnectError] = None
        self._session_id = 0
        self._session_ended_listeners: list[Callable[[], None]] = []
        self._input_changed_listeners: list[Callable[[str], None]] = []
        self._state_listeners: list[Callable[[ConnectionState], None]] = []

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> Optional[ConnectError]:
        """Reason for the FAILED state; None in every other state."""
        return self._last_error

    @property
    def config(self) -> Optional[ConnectionConfig]:
        return self._config

    @property
    def session_id(self) -> int:
        return self._session_id

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def is_current(self, session_id: int) -> bool:
        """True while the session a request was issued under is still live."""
        return self.is_connected() and session_id == self._session_id

    @property
    def client(self) -> Optional[Any]:
        return self._client if self.is_connected() else None

    def require_client(self) -> Any:
        if not self.is_connected() or self._client is None:
            raise OBSConnectionError("Not connected to OBS")
        return self._client

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        log.info(f"OBS connection: {self._state.value} → {state.value}")
        self._state = state
        for cb in self._state_listeners:
            cb(state)

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def connect(self, config: ConnectionConfig) -> None:
        """Make exactly one connection attempt. Raises ConnectError; never retries."""
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            raise ConnectError(
                ConnectFailure.ALREADY_ACTIVE,
                f"Session already {self._state.value}; disconnect first",
            )

        self._config = config
        self._last_error = None
        self._session_id += 1
        session_id = self._session_id
        self._set_state(ConnectionState.CONNECTING)

        client = self._client_factory(
            host=config.host,
            port=config.port,
            password=config.password,
            timeout=config.timeout,
        )
        client.on_session_ended(lambda: self._handle_session_ended(session_id))
        client.on_input_settings_changed(
            lambda name: self._handle_input_settings_changed(session_id, name)
        )
        self._client = client

        try:
            await asyncio.wait_for(client.connect(), timeout=config.timeout)
        except asyncio.TimeoutError:
            error = ConnectError(
                ConnectFailure.TIMEOUT,
                f"No answer from {config.address} within {config.timeout:g}s",
            )
            await self._fail_attempt(session_id, client, error)
            raise error
        except asyncio.CancelledError:
            await self._abandon_attempt(session_id, client)
            raise
        except ConnectError as e:
            await self._fail_attempt(session_id, client, e)
            raise
        except Exception as e:
            error = ConnectError(ConnectFailure.UNREACHABLE, f"{type(e).__name__}: {e}")
            await self._fail_attempt(session_id, client, error)
            raise error from e

        if session_id != self._session_id:
            # disconnect() ran while the handshake was in flight
            await client.disconnect()
            raise ConnectError(ConnectFailure.ABORTED, "Disconnected while connecting")

        self._set_state(ConnectionState.CONNECTED)

    async def _fail_attempt(self, session_id: int, client: Any, error: ConnectError) -> None:
        if self._client is client:
            self._client = None
        try:
            await client.disconnect()
        except OBSConnectionError as e:
            log.debug(f"Cleanup after failed connect: {e}")
        if session_id == self._session_id:
            self._last_error = error
            self._set_state(ConnectionState.FAILED)
            log.warning(f"OBS connection failed: {error}")

    async def _abandon_attempt(self, session_id: int, client: Any) -> None:
        """The connecting task was cancelled; no attempt outcome to report."""
        if self._client is client:
            self._client = None
        if session_id == self._session_id:
            self._session_id += 1
            self._set_state(ConnectionState.DISCONNECTED)
            log.info("OBS connection attempt cancelled.")
        try:
            await client.disconnect()
        except OBSConnectionError as e:
            log.debug(f"Cleanup after cancelled connect: {e}")

    async def disconnect(self) -> None:
        """Idempotent. Always ends DISCONNECTED; in-flight requests are abandoned."""
        client, self._client = self._client, None
        had_session = self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED)
        self._session_id += 1
        self._last_error = None
        self._set_state(ConnectionState.DISCONNECTED)
        if had_session:
            self._notify_session_ended()
        if client is not None:
            try:
                await client.disconnect()
            except OBSConnectionError as e:
                log.debug(f"Error while disconnecting: {e}")

    # ── Server events ─────────────────────────────────────────────────

    def on_session_ended(self, callback: Callable[[], None]) -> None:
        """Called synchronously when the session goes away; dependents must drop cached state."""
        self._session_ended_listeners.append(callback)

    def on_input_settings_changed(self, callback: Callable[[str], None]) -> None:
        self._input_changed_listeners.append(callback)

    def on_state_changed(self, callback: Callable[[ConnectionState], None]) -> None:
        self._state_listeners.append(callback)

    def _handle_session_ended(self, session_id: int) -> None:
        if session_id != self._session_id or self._state is not ConnectionState.CONNECTED:
            return
        log.warning("OBS session ended by server or network.")
        self._client = None
        self._session_id += 1
        self._set_state(ConnectionState.DISCONNECTED)
        self._notify_session_ended()

    def _handle_input_settings_changed(self, session_id: int, input_name: str) -> None:
        if not self.is_current(session_id):
            return
        for cb in self._input_changed_listeners:
            cb(input_name)

    def _notify_session_ended(self) -> None:
        for cb in self._session_ended_listeners:
            try:
                cb()
            except Exception as e:
                log.error(f"Session-ended listener error: {e}")
