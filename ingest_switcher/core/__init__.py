"""core — OBS session ownership, transport client and error taxonomy."""
from .connection_manager import ConnectionConfig, ConnectionManager, ConnectionState
from .errors import (
    ConnectError,
    ConnectFailure,
    FetchError,
    IngestSwitcherError,
    NoSelectionError,
    NotConnectedError,
    OBSConnectionError,
    SwitchError,
    TransportFailureError,
)
from .obs_client import OBSClient

__all__ = [
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionState",
    "ConnectError",
    "ConnectFailure",
    "FetchError",
    "IngestSwitcherError",
    "NoSelectionError",
    "NotConnectedError",
    "OBSClient",
    "OBSConnectionError",
    "SwitchError",
    "TransportFailureError",
]
