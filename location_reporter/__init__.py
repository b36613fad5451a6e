"""Periodic device location reporting over HTTP or WebSocket."""

from __future__ import annotations

from .config import ReporterSettings
from .models import (
    ErrorKind,
    PermissionStatus,
    Position,
    SessionState,
    StatusReport,
    TransportKind,
)
from .position import (
    FallbackPositionSource,
    FixedPositionSource,
    PositionError,
    PositionSource,
    TermuxPositionSource,
)
from .session import LocationReportingSession

__all__ = [
    "ErrorKind",
    "FallbackPositionSource",
    "FixedPositionSource",
    "LocationReportingSession",
    "PermissionStatus",
    "Position",
    "PositionError",
    "PositionSource",
    "ReporterSettings",
    "SessionState",
    "StatusReport",
    "TermuxPositionSource",
    "TransportKind",
]
