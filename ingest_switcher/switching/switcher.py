"""
switching/switcher.py — Points the selected OBS input at a link preset.

The settings payload depends on the input's kind family:

  | family  | inputSettings                                        |
  |---------|------------------------------------------------------|
  | media   | local_file=url, is_local_file=not network(url)       |
  | browser | url=url                                              |
  | other   | local_file=url, url=url (OBS ignores the unused one) |

SetInputSettings is sent with overlay=True so every other setting on the
input is preserved.
"""

from __future__ import annotations

import logging
from typing import Callable

from ingest_switcher.core import (
    ConnectionManager,
    NoSelectionError,
    NotConnectedError,
    OBSConnectionError,
    TransportFailureError,
)
from ingest_switcher.links import LinkPreset
from ingest_switcher.sources import ActiveStateTracker, KindFamily, SourceRegistry, family_of

log = logging.getLogger(__name__)

NETWORK_SCHEMES: tuple[str, ...] = ("http", "rtmp", "srt", "udp")


def is_network_url(url: str) -> bool:
    return url.startswith(NETWORK_SCHEMES)


def _media_payload(url: str) -> dict:
    return {"local_file": url, "is_local_file": not is_network_url(url)}


def _browser_payload(url: str) -> dict:
    return {"url": url}


def _fallback_payload(url: str) -> dict:
    return {"local_file": url, "url": url}


PAYLOAD_BUILDERS: dict[KindFamily, Callable[[str], dict]] = {
    KindFamily.MEDIA: _media_payload,
    KindFamily.BROWSER: _browser_payload,
    KindFamily.OTHER: _fallback_payload,
}


def build_payload(kind: str, url: str) -> dict:
    return PAYLOAD_BUILDERS[family_of(kind)](url)


class MediaSwitcher:
    """
    Usage:
        switcher = MediaSwitcher(connection, registry, tracker)
        await switcher.switch_to(link_store.get("main-ingest"))
    """

    def __init__(
        self,
        connection: ConnectionManager,
        registry: SourceRegistry,
        tracker: ActiveStateTracker,
    ):
        self._connection = connection
        self._registry = registry
        self._tracker = tracker

    async def switch_to(self, link: LinkPreset) -> dict:
        if not self._connection.is_connected():
            raise NotConnectedError()
        source = self._registry.selected_source
        if source is None:
            raise NoSelectionError()

        settings = build_payload(source.kind, link.url)
        session_id = self._connection.session_id
        try:
            await self._connection.require_client().set_input_settings(source.name, settings, overlay=True)
        except OBSConnectionError as e:
            log.error(f"Switch of '{source.name}' to '{link.name}' failed: {e}")
            raise TransportFailureError(str(e)) from e

        if not self._connection.is_current(session_id):
            raise NotConnectedError("Session ended before OBS acknowledged the switch")

        # Optimistic: the next InputSettingsChanged reconcile is authoritative
        self._tracker.apply_optimistic(source.name, link.url, session_id)
        log.info(f"Switched '{source.name}' → {link.name} ({link.url})")
        return {"source": source.name, "link": link.id, "url": link.url, "status": "ok"}
