"""Data models for the location reporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class SessionState(Enum):
    """Lifecycle state of a reporting session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    SIMULATING = "simulating"


class TransportKind(Enum):
    """How samples leave the device."""

    WEBSOCKET = "websocket"
    HTTP = "http"

    @property
    def schemes(self) -> tuple[str, ...]:
        """Return the URL schemes accepted for this transport."""
        if self is TransportKind.WEBSOCKET:
            return ("ws://", "wss://")
        return ("http://", "https://")

    @property
    def device_prefix(self) -> str:
        """Return the prefix prepended to the device name."""
        if self is TransportKind.WEBSOCKET:
            return "ws-"
        return "http-"


class ErrorKind(Enum):
    """Category of a reported failure."""

    CONFIGURATION = "configuration"
    SERVICE_DISABLED = "service_disabled"
    PERMISSION_DENIED = "permission_denied"
    HANDSHAKE = "handshake"
    POSITION = "position"
    TRANSPORT = "transport"


class PermissionStatus(Enum):
    """Outcome of a location permission request."""

    GRANTED = "granted"
    DENIED = "denied"
    DENIED_FOREVER = "denied_forever"


class HandshakeResult(Enum):
    """Outcome of a successful transport handshake."""

    REPLIED = "replied"
    READY = "ready"  # channel open, peer never answered
    DEFERRED = "deferred"  # decided by the first send


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Position:
    """A single location fix."""

    latitude: float
    longitude: float
    speed: float = 0.0
    heading: float = 0.0
    accuracy: float = 0.0
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.speed < 0:
            object.__setattr__(self, "speed", 0.0)
        object.__setattr__(self, "heading", self.heading % 360)


@dataclass(frozen=True)
class StatusReport:
    """Human readable status plus the typed flags callers branch on."""

    state: SessionState
    message: str
    error: ErrorKind | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_error(self) -> bool:
        """Return True if this report describes a failure."""
        return self.error is not None

    @property
    def is_simulated(self) -> bool:
        """Return True if samples are not reaching a live transport."""
        return self.state is SessionState.SIMULATING

    def __str__(self) -> str:
        return self.message
