"""
links/store.py — Read-only registry of named URL presets.

Presets are loaded from config.yaml under `links:`:

    links:
      - name: Main ingest
        url: rtmp://ingest.example.com/live/main
      - id: backup
        name: Backup file
        url: /media/holding-loop.mp4

Editing, importing and exporting links is handled outside this service.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, Optional

log = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "link"


@dataclass(frozen=True)
class LinkPreset:
    id: str
    name: str
    url: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict) -> "LinkPreset":
        name = str(data["name"]).strip()
        url = str(data["url"]).strip()
        if not name or not url:
            raise ValueError(f"Link preset needs a non-empty name and url: {data!r}")
        return cls(id=str(data.get("id") or slugify(name)), name=name, url=url)


class LinkStore:
    def __init__(self, links: Optional[list[LinkPreset]] = None):
        self._links: dict[str, LinkPreset] = {}
        for link in links or []:
            self._add(link)

    @classmethod
    def from_list(cls, data: list[dict]) -> "LinkStore":
        store = cls([LinkPreset.from_dict(d) for d in data])
        log.info(f"Loaded {len(store)} link presets")
        return store

    def _add(self, link: LinkPreset) -> None:
        if link.id in self._links:
            raise ValueError(f"Duplicate link id '{link.id}'")
        self._links[link.id] = link

    def get(self, link_id: str) -> Optional[LinkPreset]:
        return self._links.get(link_id)

    def list_links(self) -> list[dict]:
        return [link.to_dict() for link in self._links.values()]

    def __iter__(self) -> Iterator[LinkPreset]:
        return iter(list(self._links.values()))

    def __len__(self) -> int:
        return len(self._links)
