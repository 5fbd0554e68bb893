"""
sources/registry.py — Discovers the OBS inputs this tool can redirect and tracks the selection.

The selection always names an input from the last refresh, or is None.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ingest_switcher.core import ConnectionManager, FetchError, OBSConnectionError

from .kinds import DEFAULT_SUPPORTED_KINDS

log = logging.getLogger(__name__)

SelectionListener = Callable[[Optional[str]], None]


@dataclass(frozen=True)
class RemoteInput:
    name: str
    kind: str

    def to_dict(self) -> dict:
        return {"name": self.name, "kind": self.kind}


class SourceRegistry:
    """
    Usage:
        registry = SourceRegistry(connection, supported_kinds=["ffmpeg_source"])
        await registry.refresh()
        if "Ingest" in registry:
            registry.select("Ingest")
    """

    def __init__(
        self,
        connection: ConnectionManager,
        supported_kinds: Iterable[str] = DEFAULT_SUPPORTED_KINDS,
    ):
        self._connection = connection
        self.supported_kinds = frozenset(supported_kinds)
        self._sources: list[RemoteInput] = []
        self._selected: Optional[str] = None
        self._selection_listeners: list[SelectionListener] = []
        self._refresh_listeners: list[Callable[[list[RemoteInput]], None]] = []
        connection.on_session_ended(self.clear)

    # ── Read access ───────────────────────────────────────────────────

    @property
    def sources(self) -> list[RemoteInput]:
        return list(self._sources)

    @property
    def selected(self) -> Optional[str]:
        """The live selection. Always read this at decision time, never cache it."""
        return self._selected

    @property
    def selected_source(self) -> Optional[RemoteInput]:
        return self.get(self._selected) if self._selected else None

    def get(self, name: str) -> Optional[RemoteInput]:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    def __contains__(self, name: object) -> bool:
        return any(s.name == name for s in self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    # ── Listeners ─────────────────────────────────────────────────────

    def add_selection_listener(self, callback: SelectionListener) -> None:
        """Callback receives the new selection (or None) synchronously on every change."""
        self._selection_listeners.append(callback)

    def add_refresh_listener(self, callback: Callable[[list[RemoteInput]], None]) -> None:
        self._refresh_listeners.append(callback)

    # ── Discovery ─────────────────────────────────────────────────────

    async def refresh(self) -> list[RemoteInput]:
        """
        Re-fetch the input list, keep supported kinds in server order and repair
        the selection. Raises FetchError without touching prior state.
        """
        if not self._connection.is_connected():
            raise FetchError("Cannot refresh sources: not connected to OBS")
        session_id = self._connection.session_id
        try:
            inputs = await self._connection.require_client().get_input_list()
        except OBSConnectionError as e:
            log.warning(f"Source refresh failed: {e}")
            raise FetchError(f"Failed to fetch inputs: {e}") from e

        if not self._connection.is_current(session_id):
            log.debug("Discarding input list from an ended session")
            raise FetchError("Session ended while fetching inputs")

        self._sources = [
            RemoteInput(name=i["name"], kind=i["kind"])
            for i in inputs
            if i.get("kind") in self.supported_kinds
        ]
        log.info(f"Found {len(self._sources)} switchable sources ({len(inputs)} inputs total)")
        for cb in self._refresh_listeners:
            cb(self.sources)

        if self._selected is None or self._selected not in self:
            self._set_selection(self._sources[0].name if self._sources else None)
        return self.sources

    # ── Selection ─────────────────────────────────────────────────────

    def select(self, name: str) -> None:
        """Select a source from the last refresh. Check `name in registry` first."""
        if name not in self:
            raise KeyError(f"Source '{name}' not in the last fetched source list")
        self._set_selection(name)

    def clear(self) -> None:
        """Drop sources and selection (session ended)."""
        self._sources = []
        self._set_selection(None)

    def _set_selection(self, name: Optional[str]) -> None:
        if name == self._selected:
            return
        self._selected = name
        log.info(f"Selected source: {name or '(none)'}")
        for cb in self._selection_listeners:
            cb(name)
