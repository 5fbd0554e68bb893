"""
core/errors.py — Failure taxonomy shared by the connection, discovery and switch layers.

Every failure a caller can see is distinguishable by class (and, for connects,
by reason) so the caller can choose between "show message", "prompt reconnect"
and "refresh and retry".
"""

from __future__ import annotations

from enum import Enum


class IngestSwitcherError(Exception):
    pass


class OBSConnectionError(IngestSwitcherError):
    """Transport-level failure talking to OBS (not connected, request rejected, socket error)."""


class ConnectFailure(str, Enum):
    AUTH_REJECTED = "auth_rejected"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    ALREADY_ACTIVE = "already_active"
    ABORTED = "aborted"


class ConnectError(IngestSwitcherError):
    """A single connection attempt failed. Never retried automatically."""

    def __init__(self, reason: ConnectFailure, message: str = ""):
        self.reason = reason
        self.message = message or reason.value
        super().__init__(f"{reason.value}: {self.message}")


class FetchError(IngestSwitcherError):
    """Discovery or reconciliation failed; prior local state is left untouched."""


class SwitchError(IngestSwitcherError):
    pass


class NoSelectionError(SwitchError):
    def __init__(self, message: str = "No source selected"):
        super().__init__(message)


class NotConnectedError(SwitchError):
    def __init__(self, message: str = "Not connected to OBS"):
        super().__init__(message)


class TransportFailureError(SwitchError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
