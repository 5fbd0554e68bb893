"""sources — Input discovery, selection and active-target reconciliation."""
from .kinds import DEFAULT_SUPPORTED_KINDS, KindFamily, extract_target, family_of
from .registry import RemoteInput, SourceRegistry
from .tracker import ActiveStateTracker

__all__ = [
    "ActiveStateTracker",
    "DEFAULT_SUPPORTED_KINDS",
    "KindFamily",
    "RemoteInput",
    "SourceRegistry",
    "extract_target",
    "family_of",
]
