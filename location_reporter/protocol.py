"""Wire records exchanged with the tracking endpoint."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Any

from .const import (
    ACK_STATUS_SUCCESS,
    MESSAGE_TYPE_CONNECTION_TEST,
    MESSAGE_TYPE_LOCATION,
)
from .models import Position

_LOGGER = logging.getLogger(__name__)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def build_location_report(device_id: str, position: Position) -> dict[str, Any]:
    """Build the record sent for every sample."""
    return {
        "tipo": MESSAGE_TYPE_LOCATION,
        "dados": {
            "dispositivo_id": device_id,
            "latitude": position.latitude,
            "longitude": position.longitude,
            "velocidade": round_half_away(position.speed),
            "direcao": round_half_away(position.heading),
        },
    }


def build_connection_test(device_id: str, when: datetime) -> dict[str, Any]:
    """Build the record sent once while opening a WebSocket channel."""
    return {
        "tipo": MESSAGE_TYPE_CONNECTION_TEST,
        "dados": {
            "dispositivo_id": device_id,
            "timestamp": int(when.timestamp() * 1000),
        },
    }


def encode(record: dict[str, Any]) -> str:
    """Serialize a record for the wire."""
    return json.dumps(record, separators=(",", ":"))


def parse_acknowledgment(text: str | bytes | None) -> dict[str, Any] | None:
    """Parse a server reply.

    JSON objects are returned as-is. Anything else that is not blank is
    wrapped as ``{"raw": text}`` so it can still be displayed.
    """
    if text is None:
        return None
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    if not text.strip():
        return None

    try:
        data = json.loads(text)
    except ValueError:
        _LOGGER.debug("Reply is not JSON, keeping raw text: %s", text)
        return {"raw": text}

    if not isinstance(data, dict):
        return {"raw": text}
    return data


def describe_response(payload: dict[str, Any] | None) -> str:
    """Render an acknowledgment for display."""
    if payload is None:
        return ""
    if payload.get("status") == ACK_STATUS_SUCCESS:
        return f"Response: success (ID: {payload.get('id')})"
    if set(payload) == {"raw"}:
        return f"Response: {payload['raw']}"
    return f"Response: {payload}"
