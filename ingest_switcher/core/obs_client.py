"""
core/obs_client.py — Async wrapper around the obs-websocket-py 5.x client.

Covers only the narrow command surface the switcher needs:
  - get_input_list()       → GetInputList
  - get_input_settings()   → GetInputSettings (None when the input is gone)
  - set_input_settings()   → SetInputSettings (overlay merge by default)

Push notifications (InputSettingsChanged, ExitStarted, socket close) arrive on
the library's receive thread and are marshalled onto the asyncio loop that
called connect().
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from obswebsocket import obsws, requests as obs_requests, events as obs_events
from obswebsocket.exceptions import ConnectionFailure, MessageTimeout
from websocket import WebSocketException

from .errors import ConnectError, ConnectFailure, OBSConnectionError

log = logging.getLogger(__name__)

SessionEndedCallback = Callable[[], None]
InputChangedCallback = Callable[[str], None]


def classify_connect_failure(exc: BaseException) -> ConnectFailure:
    """Map a library/socket exception raised by connect() onto a ConnectFailure."""
    if isinstance(exc, (MessageTimeout, TimeoutError, asyncio.TimeoutError)):
        return ConnectFailure.TIMEOUT
    text = str(exc).lower()
    if "auth" in text or "password" in text:
        return ConnectFailure.AUTH_REJECTED
    if "timed out" in text or "timeout" in text:
        return ConnectFailure.TIMEOUT
    return ConnectFailure.UNREACHABLE


class OBSClient:
    def __init__(
        self,
        host: str = "localhost",
        port: int = 4455,
        password: str = "",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout

        self._ws: Optional[Any] = None
        self._connected = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._session_ended_listeners: list[SessionEndedCallback] = []
        self._input_changed_listeners: list[InputChangedCallback] = []

    # ── Connection ────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the websocket and authenticate. Raises ConnectError on any failure."""
        self._loop = asyncio.get_running_loop()
        ws = obsws(
            self.host,
            self.port,
            self.password,
            timeout=self.timeout,
            on_disconnect=self._on_socket_closed,
        )
        ws.register(self._on_exit_started, obs_events.ExitStarted)
        ws.register(self._on_input_settings_changed, obs_events.InputSettingsChanged)
        self._ws = ws
        handshake = self._loop.run_in_executor(None, ws.connect)
        try:
            # ws.connect cannot be interrupted; a cancelled attempt closes the socket when it lands
            await asyncio.shield(handshake)
        except asyncio.CancelledError:
            self._ws = None
            handshake.add_done_callback(lambda f: self._close_abandoned(ws, f))
            raise
        except (ConnectionFailure, MessageTimeout, WebSocketException, OSError) as e:
            self._ws = None
            reason = classify_connect_failure(e)
            log.warning(f"OBS connection to {self.host}:{self.port} failed ({reason.value}): {e}")
            raise ConnectError(reason, str(e)) from e
        self._connected = True
        log.info(f"Connected to OBS at {self.host}:{self.port}")

    def _close_abandoned(self, ws: Any, handshake: asyncio.Future) -> None:
        """Handshake of a cancelled attempt finished; close the socket it opened."""
        if handshake.cancelled() or handshake.exception() is not None:
            return
        log.info(f"Closing late OBS session to {self.host}:{self.port} from an abandoned attempt")
        handshake.get_loop().run_in_executor(None, self._close_quietly, ws)

    @staticmethod
    def _close_quietly(ws: Any) -> None:
        try:
            ws.disconnect()
        except (ConnectionFailure, WebSocketException, OSError) as e:
            log.debug(f"Error while closing abandoned OBS socket: {e}")

    async def disconnect(self) -> None:
        ws, self._ws = self._ws, None
        was_connected = self._connected
        self._connected = False
        if ws is None or not was_connected:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, ws.disconnect)
        except (ConnectionFailure, WebSocketException, OSError) as e:
            log.debug(f"Error while closing OBS socket (ignored, session abandoned): {e}")

    def is_connected(self) -> bool:
        return self._connected

    # ── Push notifications ────────────────────────────────────────────

    def on_session_ended(self, callback: SessionEndedCallback) -> None:
        """Callback runs on the event loop when OBS exits or the socket drops."""
        self._session_ended_listeners.append(callback)

    def on_input_settings_changed(self, callback: InputChangedCallback) -> None:
        """Callback runs on the event loop with the changed input's name."""
        self._input_changed_listeners.append(callback)

    def _dispatch(self, callback: Callable, *args: Any) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _on_socket_closed(self, _ws: Any = None) -> None:
        if not self._connected:
            return
        self._connected = False
        log.warning("OBS socket closed.")
        for cb in self._session_ended_listeners:
            self._dispatch(cb)

    def _on_exit_started(self, _event: Any = None) -> None:
        """Fired by OBS when it begins shutting down."""
        self._on_socket_closed()

    def _on_input_settings_changed(self, event: Any) -> None:
        """Fired when any client (or the OBS UI) changes an input's settings."""
        input_name = event.datain.get("inputName", "")
        log.debug(f"InputSettingsChanged: {input_name}")
        for cb in self._input_changed_listeners:
            self._dispatch(cb, input_name)

    # ── Core request helper ───────────────────────────────────────────

    def _call(self, request: Any) -> Any:
        if not self._connected or not self._ws:
            raise OBSConnectionError("Not connected to OBS")
        try:
            return self._ws.call(request)
        except (ConnectionFailure, MessageTimeout, WebSocketException, OSError) as e:
            raise OBSConnectionError(str(e)) from e

    async def call_async(self, request: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._call, request)

    # ── Inputs ────────────────────────────────────────────────────────

    async def get_input_list(self) -> list[dict]:
        """All inputs in server order as [{"name": ..., "kind": ...}]."""
        result = await self.call_async(obs_requests.GetInputList())
        if not result.status:
            raise OBSConnectionError("GetInputList was rejected by OBS")
        return [
            {"name": i.get("inputName", ""), "kind": i.get("inputKind") or ""}
            for i in (result.datain or {}).get("inputs", [])
        ]

    async def get_input_settings(self, input_name: str) -> Optional[dict]:
        """
        Current settings of one input as {"kind": ..., "settings": {...}}.
        Returns None when OBS rejects the lookup, which for a named input means
        it no longer exists.
        """
        result = await self.call_async(obs_requests.GetInputSettings(inputName=input_name))
        if not result.status:
            log.debug(f"GetInputSettings rejected for '{input_name}' (input removed?)")
            return None
        d = result.datain or {}
        return {"kind": d.get("inputKind", ""), "settings": d.get("inputSettings", {}) or {}}

    async def set_input_settings(self, input_name: str, settings: dict, overlay: bool = True) -> dict:
        """
        Apply settings to an input. With overlay=True only the given keys change;
        everything else configured on the input is preserved.
        """
        result = await self.call_async(
            obs_requests.SetInputSettings(
                inputName=input_name,
                inputSettings=settings,
                overlay=overlay,
            )
        )
        if not result.status:
            raise OBSConnectionError(f"SetInputSettings was rejected by OBS for '{input_name}'")
        log.info(f"Input '{input_name}' settings → {settings}")
        return {"source": input_name, "settings": settings, "status": "ok"}

    # ── System ────────────────────────────────────────────────────────

    async def get_version(self) -> dict:
        result = await self.call_async(obs_requests.GetVersion())
        d = result.datain or {}
        return {
            "obs_version": d.get("obsVersion", ""),
            "obs_web_socket_version": d.get("obsWebSocketVersion", ""),
            "platform": d.get("platform", ""),
        }
