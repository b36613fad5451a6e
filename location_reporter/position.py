"""Position sources used by the reporting session."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import shutil
from typing import Any, Protocol

from .const import FALLBACK_LATITUDE, FALLBACK_LONGITUDE
from .models import PermissionStatus, Position

_LOGGER = logging.getLogger(__name__)

TERMUX_LOCATION = "termux-location"


class PositionError(Exception):
    """A position could not be obtained."""


class PermissionDeniedError(PositionError):
    """Location permission is missing."""


class PositionSource(Protocol):
    """Protocol describing how the session reads the device position.

    Sources with ``prompts_for_permission`` set are asked for permission
    before a session starts. The others are expected to check permission
    themselves when a position is requested.
    """

    prompts_for_permission: bool

    async def async_is_service_enabled(self) -> bool:
        """Return True if the location service is usable."""

    async def async_request_permission(self) -> PermissionStatus:
        """Check or request location permission."""

    async def async_current_position(self) -> Position:
        """Return the current position or raise PositionError."""


class FixedPositionSource:
    """Always reports the same coordinate."""

    prompts_for_permission = False

    def __init__(
        self,
        latitude: float = FALLBACK_LATITUDE,
        longitude: float = FALLBACK_LONGITUDE,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude

    async def async_is_service_enabled(self) -> bool:
        return True

    async def async_request_permission(self) -> PermissionStatus:
        return PermissionStatus.GRANTED

    async def async_current_position(self) -> Position:
        return Position(latitude=self.latitude, longitude=self.longitude)


class FallbackPositionSource:
    """Substitute a fixed coordinate when the wrapped source fails.

    Used on platforms without a reliable location backend. Permission
    denials are still raised, only backend failures are masked.
    """

    def __init__(
        self,
        source: PositionSource,
        fallback: FixedPositionSource | None = None,
    ) -> None:
        self._source = source
        self._fallback = fallback or FixedPositionSource()

    @property
    def prompts_for_permission(self) -> bool:
        return self._source.prompts_for_permission

    async def async_is_service_enabled(self) -> bool:
        return await self._source.async_is_service_enabled()

    async def async_request_permission(self) -> PermissionStatus:
        return await self._source.async_request_permission()

    async def async_current_position(self) -> Position:
        try:
            return await self._source.async_current_position()
        except PermissionDeniedError:
            raise
        except PositionError as err:
            _LOGGER.warning("Using simulated location: %s", err)
            return await self._fallback.async_current_position()


class TermuxPositionSource:
    """Read fixes through ``termux-location`` on Android (termux-api)."""

    prompts_for_permission = True

    def __init__(self, provider: str = "gps", timeout: int = 20) -> None:
        self.provider = provider
        self.timeout = timeout

    async def async_is_service_enabled(self) -> bool:
        return shutil.which(TERMUX_LOCATION) is not None

    async def async_request_permission(self) -> PermissionStatus:
        # termux-api prompts on first use; a failing call means refusal
        try:
            await self._run("--request", "last")
        except PermissionDeniedError:
            return PermissionStatus.DENIED_FOREVER
        except PositionError as err:
            _LOGGER.debug("Permission check failed: %s", err)
            return PermissionStatus.DENIED
        return PermissionStatus.GRANTED

    async def async_current_position(self) -> Position:
        out = await self._run(
            "--provider",
            self.provider,
            "--request",
            "once",
            "--timeout",
            str(self.timeout),
        )
        return parse_termux_location(out)

    async def _run(self, *args: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                TERMUX_LOCATION,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            raise PositionError(f"Cannot run {TERMUX_LOCATION}: {err}") from err

        try:
            stdout, stderr = await proc.communicate()
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            if "permission" in message.lower():
                raise PermissionDeniedError(message)
            raise PositionError(
                f"{TERMUX_LOCATION} exited with {proc.returncode}: {message}"
            )
        return stdout.decode(errors="replace")


def parse_termux_location(output: str) -> Position:
    """Convert ``termux-location`` JSON output to a Position."""
    try:
        data: dict[str, Any] = json.loads(output)
    except ValueError as err:
        raise PositionError(f"Invalid output from {TERMUX_LOCATION}") from err

    if not isinstance(data, dict):
        raise PositionError(f"Invalid output from {TERMUX_LOCATION}")
    if "error" in data:
        raise PositionError(str(data["error"]))

    try:
        latitude = float(data["latitude"])
        longitude = float(data["longitude"])
    except (KeyError, TypeError, ValueError) as err:
        raise PositionError(f"No coordinates in {TERMUX_LOCATION} output") from err

    return Position(
        latitude=latitude,
        longitude=longitude,
        speed=_optional_float(data.get("speed")),
        heading=_optional_float(data.get("bearing")),
        accuracy=_optional_float(data.get("accuracy")),
    )


def _optional_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
