"""
sources/tracker.py — Keeps "what is the selected input playing" converging toward OBS's truth.

Two independent things change an input's target: our own switch commands and
anyone else editing the input in OBS. The tracker holds an advisory
`active_target` and corrects it by re-reading the input whenever:

  - the selection changes (including to None, which clears the target)
  - OBS reports InputSettingsChanged for the *live* selection

A fetched result is applied only if, when it arrives,
  1. the session it was issued under is still live,
  2. its input is still the live selection, and
  3. no newer reconcile (or optimistic update) was issued for that input.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable, Optional

from ingest_switcher.core import ConnectionManager, FetchError, OBSConnectionError

from .kinds import extract_target
from .registry import SourceRegistry

log = logging.getLogger(__name__)

TargetListener = Callable[[Optional[str], Optional[str]], None]


class ActiveStateTracker:
    def __init__(self, connection: ConnectionManager, registry: SourceRegistry):
        self._connection = connection
        self._registry = registry
        self._active_target: Optional[str] = None
        self._tickets: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()
        self._target_listeners: list[TargetListener] = []

        registry.add_selection_listener(self._on_selection_changed)
        connection.on_input_settings_changed(self._on_input_settings_changed)
        connection.on_session_ended(self.clear)

    @property
    def active_target(self) -> Optional[str]:
        """Advisory: may lag behind OBS until the next reconciliation lands."""
        return self._active_target

    def add_target_listener(self, callback: TargetListener) -> None:
        """Callback receives (input_name, target) whenever the believed target changes."""
        self._target_listeners.append(callback)

    # ── Reconciliation ────────────────────────────────────────────────

    async def reconcile(self, input_name: str) -> Optional[str]:
        """
        Fetch the input's current target from OBS. Returns None if the input no
        longer exists. Raises FetchError on transport failure, leaving the
        current belief untouched.
        """
        if not self._connection.is_connected():
            raise FetchError("Cannot reconcile: not connected to OBS")
        ticket = self._issue(input_name)
        session_id = self._connection.session_id
        try:
            result = await self._connection.require_client().get_input_settings(input_name)
        except OBSConnectionError as e:
            raise FetchError(f"Failed to read settings of '{input_name}': {e}") from e

        target = None if result is None else extract_target(result.get("kind"), result.get("settings") or {})
        if self._is_relevant(input_name, ticket, session_id):
            self._apply(input_name, target)
        else:
            log.debug(f"Discarding stale reconcile result for '{input_name}' (ticket {ticket})")
        return target

    def apply_optimistic(self, input_name: str, target: str, session_id: int) -> bool:
        """
        Record a target we just set ourselves, ahead of confirmation.
        Supersedes any reconcile for the same input that is still in flight.
        """
        if not self._connection.is_current(session_id) or self._registry.selected != input_name:
            return False
        self._issue(input_name)
        self._apply(input_name, target)
        return True

    def clear(self) -> None:
        self._tickets.clear()
        self._apply(None, None)

    async def drain(self) -> None:
        """Wait for background reconciliations started by selection changes or events."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _issue(self, input_name: str) -> int:
        ticket = next(self._counter)
        self._tickets[input_name] = ticket
        return ticket

    def _is_relevant(self, input_name: str, ticket: int, session_id: int) -> bool:
        return (
            self._connection.is_current(session_id)
            and self._registry.selected == input_name
            and self._tickets.get(input_name) == ticket
        )

    def _apply(self, input_name: Optional[str], target: Optional[str]) -> None:
        if target == self._active_target:
            return
        self._active_target = target
        log.info(f"Active target of '{input_name or '(none)'}' → {target!r}")
        for cb in self._target_listeners:
            cb(input_name, target)

    # ── Triggers ──────────────────────────────────────────────────────

    def _on_selection_changed(self, input_name: Optional[str]) -> None:
        # Outstanding tickets belong to the previous selection
        self._tickets.clear()
        self._apply(input_name, None)
        if input_name and self._connection.is_connected():
            self._spawn(input_name)

    def _on_input_settings_changed(self, input_name: str) -> None:
        if input_name and input_name == self._registry.selected:
            log.debug(f"Selected input '{input_name}' changed in OBS → reconciling")
            self._spawn(input_name)

    def _spawn(self, input_name: str) -> None:
        task = asyncio.get_running_loop().create_task(self._background_reconcile(input_name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _background_reconcile(self, input_name: str) -> None:
        try:
            await self.reconcile(input_name)
        except FetchError as e:
            log.warning(f"Background reconcile of '{input_name}' failed: {e}")
