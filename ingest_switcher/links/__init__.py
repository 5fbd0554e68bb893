"""links — Read-only URL presets the switcher can point a source at."""
from .store import LinkPreset, LinkStore

__all__ = ["LinkPreset", "LinkStore"]
