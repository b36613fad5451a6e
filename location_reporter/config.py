"""Settings for the location reporter."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

import voluptuous as vol

from .const import (
    CONF_DEVICE_NAME,
    CONF_HTTP_URL,
    CONF_TRANSPORT,
    CONF_WEBSOCKET_URL,
    DEFAULT_DEVICE_NAME,
    DEFAULT_HTTP_URL,
    DEFAULT_WEBSOCKET_URL,
    ENV_PREFIX,
)
from .models import TransportKind

_LOGGER = logging.getLogger(__name__)


def endpoint_problem(kind: TransportKind, endpoint: str) -> str | None:
    """Return why ``endpoint`` is unusable for ``kind``, or None."""
    if not endpoint:
        return "Endpoint URL is empty"
    if not endpoint.lower().startswith(kind.schemes):
        return (
            f"Invalid {kind.value} URL {endpoint!r}: "
            f"must start with {' or '.join(kind.schemes)}"
        )
    return None


def device_identity(name: str, kind: TransportKind) -> str:
    """Derive the device id sent with every report."""
    return f"{kind.device_prefix}{name.strip() or DEFAULT_DEVICE_NAME}"


def _endpoint_for(kind: TransportKind) -> Callable[[str], str]:
    def validate(value: str) -> str:
        if problem := endpoint_problem(kind, value):
            raise vol.Invalid(problem)
        return value

    return validate


def _transport_kind(value: Any) -> TransportKind:
    if isinstance(value, TransportKind):
        return value
    try:
        return TransportKind(str(value).strip().lower())
    except ValueError as err:
        choices = ", ".join(kind.value for kind in TransportKind)
        raise vol.Invalid(f"Unknown transport {value!r}, expected one of: {choices}") from err


SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DEVICE_NAME, default=""): vol.All(str, vol.Strip),
        vol.Optional(CONF_WEBSOCKET_URL, default=DEFAULT_WEBSOCKET_URL): vol.All(
            str, vol.Strip, _endpoint_for(TransportKind.WEBSOCKET)
        ),
        vol.Optional(CONF_HTTP_URL, default=DEFAULT_HTTP_URL): vol.All(
            str, vol.Strip, _endpoint_for(TransportKind.HTTP)
        ),
        vol.Optional(CONF_TRANSPORT, default=TransportKind.WEBSOCKET.value): _transport_kind,
    }
)


@dataclass
class ReporterSettings:
    """Device name, endpoints and preferred transport, kept in memory."""

    device_name: str = ""
    websocket_url: str = DEFAULT_WEBSOCKET_URL
    http_url: str = DEFAULT_HTTP_URL
    transport: TransportKind = TransportKind.WEBSOCKET

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ReporterSettings:
        """Validate ``data`` and build settings; raises vol.Invalid."""
        return cls(**SETTINGS_SCHEMA(dict(data)))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ReporterSettings:
        """Build settings from ``LOCATION_REPORTER_*`` variables."""
        environ = os.environ if environ is None else environ
        data = {}
        for key in (CONF_DEVICE_NAME, CONF_WEBSOCKET_URL, CONF_HTTP_URL, CONF_TRANSPORT):
            env_key = f"{ENV_PREFIX}{key.upper()}"
            if env_key in environ:
                data[key] = environ[env_key]
        return cls.from_mapping(data)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data[CONF_TRANSPORT] = self.transport.value
        return data

    def update(self, **changes: Any) -> None:
        """Validate and apply ``changes``."""
        validated = SETTINGS_SCHEMA({**self.as_dict(), **changes})
        for key, value in validated.items():
            setattr(self, key, value)
        _LOGGER.debug("Settings updated: %s", sorted(changes))

    def endpoint_for(self, kind: TransportKind) -> str:
        if kind is TransportKind.WEBSOCKET:
            return self.websocket_url
        return self.http_url

    def device_id_for(self, kind: TransportKind) -> str:
        return device_identity(self.device_name, kind)
