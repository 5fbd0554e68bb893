"""switching — Kind-aware media switch for the selected source."""
from .switcher import MediaSwitcher, build_payload, is_network_url

__all__ = ["MediaSwitcher", "build_payload", "is_network_url"]
