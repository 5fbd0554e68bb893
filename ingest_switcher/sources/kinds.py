"""
sources/kinds.py — OBS input kinds grouped by how they store their media target.

  media    → ffmpeg_source, vlc_source: path in `local_file`, stream flag `is_local_file`
  browser  → browser_source: page address in `url`
  other    → anything else that made it through the allow-list
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class KindFamily(str, Enum):
    MEDIA = "media"
    BROWSER = "browser"
    OTHER = "other"


KIND_FAMILIES: dict[str, KindFamily] = {
    "ffmpeg_source": KindFamily.MEDIA,
    "vlc_source": KindFamily.MEDIA,
    "browser_source": KindFamily.BROWSER,
}

DEFAULT_SUPPORTED_KINDS: tuple[str, ...] = ("ffmpeg_source", "vlc_source", "browser_source")


def family_of(kind: Optional[str]) -> KindFamily:
    return KIND_FAMILIES.get(kind or "", KindFamily.OTHER)


def extract_target(kind: Optional[str], settings: dict) -> str:
    """
    Read the configured media target out of an input's settings.
    Browser sources only have `url`; everything else prefers `local_file`
    and falls back to `url`. Empty string when neither is set.
    """
    if family_of(kind) is KindFamily.BROWSER:
        return settings.get("url") or ""
    return settings.get("local_file") or settings.get("url") or ""
