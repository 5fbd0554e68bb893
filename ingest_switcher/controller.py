"""
controller.py — Wires connection, discovery, tracking and switching into one object.

The controller owns the single ConnectionManager and hands it by reference to
every component that needs the session.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from ingest_switcher.config import Settings
from ingest_switcher.core import ConnectionConfig, ConnectionManager, FetchError, OBSClient
from ingest_switcher.links import LinkStore
from ingest_switcher.sources import DEFAULT_SUPPORTED_KINDS, ActiveStateTracker, SourceRegistry
from ingest_switcher.switching import MediaSwitcher

log = logging.getLogger(__name__)


class SwitcherController:
    def __init__(
        self,
        link_store: Optional[LinkStore] = None,
        supported_kinds: Iterable[str] = DEFAULT_SUPPORTED_KINDS,
        default_config: Optional[ConnectionConfig] = None,
        client_factory: Any = OBSClient,
    ):
        self.default_config = default_config or ConnectionConfig()
        self.connection = ConnectionManager(client_factory=client_factory)
        self.registry = SourceRegistry(self.connection, supported_kinds)
        self.tracker = ActiveStateTracker(self.connection, self.registry)
        self.switcher = MediaSwitcher(self.connection, self.registry, self.tracker)
        self.links = link_store or LinkStore()

    @classmethod
    def from_settings(cls, settings: Settings, client_factory: Any = OBSClient) -> "SwitcherController":
        return cls(
            link_store=LinkStore.from_list(settings.links),
            supported_kinds=settings.sources.supported_kinds,
            default_config=settings.obs.connection_config(),
            client_factory=client_factory,
        )

    async def connect(self, config: Optional[ConnectionConfig] = None) -> None:
        """Connect, then do the initial source fetch. A failed fetch is logged, not raised."""
        await self.connection.connect(config or self.default_config)
        try:
            await self.registry.refresh()
        except FetchError as e:
            log.warning(f"Initial source fetch failed (use refresh to retry): {e}")

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def switch_to_link(self, link_id: str) -> dict:
        link = self.links.get(link_id)
        if link is None:
            raise KeyError(f"Link '{link_id}' not found")
        return await self.switcher.switch_to(link)

    def status(self) -> dict:
        error = self.connection.last_error
        config = self.connection.config
        active = self.tracker.active_target
        return {
            "connection": {
                "state": self.connection.state.value,
                "address": config.address if config else None,
                "error": {"reason": error.reason.value, "message": error.message} if error else None,
            },
            "sources": [s.to_dict() for s in self.registry.sources],
            "selected": self.registry.selected,
            "active_target": active,
            "active_link": next((link.id for link in self.links if link.url == active), None) if active else None,
        }
