"""Location reporting session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import aiohttp

from .config import device_identity, endpoint_problem
from .const import HISTORY_SIZE, SAMPLE_INTERVAL, STATUS_DISCONNECTED
from .models import (
    ErrorKind,
    HandshakeResult,
    PermissionStatus,
    Position,
    SessionState,
    StatusReport,
    TransportKind,
)
from .position import PositionError, PositionSource
from .transport import (
    Transport,
    TransportClosedError,
    TransportError,
    create_transport,
)

_LOGGER = logging.getLogger(__name__)

StatusCallback = Callable[[StatusReport], None]
TransportFactory = Callable[[TransportKind, str, aiohttp.ClientSession], Transport]

_RUNNING = (SessionState.ACTIVE, SessionState.SIMULATING)


class LocationReportingSession:
    """Sample the device position periodically and push it to one endpoint.

    A session is either idle or running. While running it is ACTIVE when a
    transport is attached and SIMULATING when samples are only recorded
    locally. Transport failures move ACTIVE to SIMULATING; only a new
    start brings a transport back.

    ``async_stop`` bumps an epoch counter before taking the lock, so a
    start or tick that is still awaiting I/O notices it was superseded and
    never commits state afterwards.
    """

    def __init__(
        self,
        position_source: PositionSource,
        *,
        device_name: str = "",
        client_session: aiohttp.ClientSession | None = None,
        transport_factory: TransportFactory | None = None,
        sample_interval: timedelta = SAMPLE_INTERVAL,
    ) -> None:
        """Initialize the session."""
        self._source = position_source
        self._device_name = device_name.strip()
        self._client_session = client_session
        self._owns_client_session = False
        self._transport_factory = transport_factory or create_transport
        self._interval = sample_interval

        self._lock = asyncio.Lock()
        self._epoch = 0
        self._state = SessionState.IDLE
        self._kind: TransportKind | None = None
        self._device_id = ""
        self._transport: Transport | None = None
        self._sampler: asyncio.Task[None] | None = None
        self._on_status: StatusCallback | None = None
        self._unidirectional = False

        self._last_position: Position | None = None
        self._last_response: dict[str, Any] | None = None
        self._last_status = StatusReport(SessionState.IDLE, STATUS_DISCONNECTED)
        self._history: deque[StatusReport] = deque(maxlen=HISTORY_SIZE)

    async def __aenter__(self) -> LocationReportingSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.async_close()

    # Accessors ----------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        """Return True while samples are being taken."""
        return self._state in _RUNNING

    @property
    def last_position(self) -> Position | None:
        return self._last_position

    @property
    def last_status(self) -> StatusReport:
        return self._last_status

    @property
    def last_response(self) -> dict[str, Any] | None:
        """Return the last acknowledgment received from the endpoint."""
        return self._last_response

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def unidirectional(self) -> bool:
        """Return True if the channel opened but the peer never answered."""
        return self._unidirectional

    @property
    def history(self) -> list[StatusReport]:
        """Return the most recent status reports, oldest first."""
        return list(self._history)

    def device_id_for(self, kind: TransportKind) -> str:
        return device_identity(self._device_name, kind)

    def set_device_name(self, name: str) -> None:
        """Change the device name; applies immediately if running."""
        self._device_name = name.strip()
        if self._kind is not None and self.is_active:
            self._device_id = self.device_id_for(self._kind)

    # Lifecycle ----------------------------------------------------------
    async def async_start(
        self,
        kind: TransportKind,
        endpoint: str,
        on_status: StatusCallback | None = None,
    ) -> bool:
        """Start reporting to ``endpoint``.

        Returns False for configuration, service or permission failures
        and when a concurrent stop superseded this call. Handshake
        failures still return True, with the session SIMULATING.
        """
        epoch = self._epoch
        endpoint = endpoint.strip()

        if problem := endpoint_problem(kind, endpoint):
            self._report(problem, ErrorKind.CONFIGURATION, callback=on_status)
            return False

        async with self._lock:
            if self._state in _RUNNING:
                return True
            if epoch != self._epoch:
                return False

            self._on_status = on_status
            self._kind = kind
            self._device_id = self.device_id_for(kind)
            self._unidirectional = False
            self._state = SessionState.CONNECTING
            _LOGGER.info("Starting %s session to %s as %s", kind.value, endpoint, self._device_id)

            try:
                return await self._async_start_locked(kind, endpoint, epoch)
            finally:
                if self._state is SessionState.CONNECTING:
                    self._state = SessionState.IDLE

    async def _async_start_locked(
        self, kind: TransportKind, endpoint: str, epoch: int
    ) -> bool:
        try:
            enabled = await self._source.async_is_service_enabled()
        except PositionError as err:
            self._state = SessionState.IDLE
            self._report(
                f"Error checking location service: {err}", ErrorKind.SERVICE_DISABLED
            )
            return False
        if epoch != self._epoch:
            return False
        if not enabled:
            self._state = SessionState.IDLE
            self._report("Location service disabled", ErrorKind.SERVICE_DISABLED)
            return False

        if self._source.prompts_for_permission:
            permission = await self._source.async_request_permission()
            if epoch != self._epoch:
                return False
            if permission is not PermissionStatus.GRANTED:
                self._state = SessionState.IDLE
                message = "Location permission denied"
                if permission is PermissionStatus.DENIED_FOREVER:
                    message = "Location permission permanently denied"
                self._report(message, ErrorKind.PERMISSION_DENIED)
                return False

        transport = self._transport_factory(kind, endpoint, self._get_client_session())
        try:
            result = await transport.async_open(self._device_id)
        except TransportError as err:
            _LOGGER.warning("Handshake with %s failed: %s", endpoint, err)
            await transport.async_close()
            if epoch != self._epoch:
                return False
            result = None
            self._state = SessionState.SIMULATING
            self._report(
                f"Could not connect ({err}); using simulation mode",
                ErrorKind.HANDSHAKE,
            )
        else:
            if epoch != self._epoch:
                await transport.async_close()
                return False
            self._transport = transport
            self._state = SessionState.ACTIVE
            self._unidirectional = result is HandshakeResult.READY
            if result is HandshakeResult.REPLIED:
                self._report(f"Connected to {endpoint}")
            elif result is HandshakeResult.READY:
                self._report(f"Connected to {endpoint} (no reply from server)")

        try:
            sampled = await self._async_sample(
                epoch, handshake=result is HandshakeResult.DEFERRED
            )
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Unexpected error during first location update")
            sampled = False
        if epoch != self._epoch:
            await self._async_release_transport()
            self._state = SessionState.IDLE
            return False

        self._sampler = asyncio.create_task(self._async_run_sampler(epoch))

        if sampled:
            seconds = int(self._interval.total_seconds())
            if self._state is SessionState.ACTIVE:
                self._report(f"Connected! Sending location every {seconds} seconds")
            else:
                self._report(f"Simulation mode! Reading location every {seconds} seconds")
        return True

    async def async_stop(self) -> None:
        """Stop sampling and release the transport."""
        was_idle = self._state is SessionState.IDLE
        self._epoch += 1

        sampler, self._sampler = self._sampler, None
        if sampler is not None and sampler is not asyncio.current_task():
            sampler.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sampler

        async with self._lock:
            if was_idle and self._state is SessionState.IDLE and self._transport is None:
                if self._last_status.message != STATUS_DISCONNECTED:
                    self._last_status = StatusReport(SessionState.IDLE, STATUS_DISCONNECTED)
                return

            await self._async_release_transport()
            self._state = SessionState.IDLE
            self._last_response = None
            self._unidirectional = False
            _LOGGER.info("Session for %s stopped", self._device_id)
            self._report(STATUS_DISCONNECTED)

    async def async_close(self) -> None:
        """Stop the session and close the HTTP client session we created."""
        await self.async_stop()
        if self._owns_client_session and self._client_session is not None:
            await self._client_session.close()
            self._client_session = None
            self._owns_client_session = False

    # Sampling ------------------------------------------------------------
    async def async_refresh(self) -> None:
        """Run one sample-and-send cycle now, outside the schedule."""
        await self._async_tick(self._epoch)

    async def _async_run_sampler(self, epoch: int) -> None:
        interval = self._interval.total_seconds()
        while epoch == self._epoch:
            await asyncio.sleep(interval)
            await self._async_tick(epoch)

    async def _async_tick(self, epoch: int) -> None:
        async with self._lock:
            if epoch != self._epoch or self._state not in _RUNNING:
                return
            try:
                await self._async_sample(epoch)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Unexpected error during location update")

    async def _async_sample(self, epoch: int, handshake: bool = False) -> bool:
        """Run one tick; return True if the sample was delivered or recorded."""
        try:
            position = await self._source.async_current_position()
        except PositionError as err:
            if epoch == self._epoch:
                self._report(f"Error obtaining location: {err}", ErrorKind.POSITION)
            return False
        if epoch != self._epoch:
            return False

        self._last_position = position
        coords = f"{position.latitude}, {position.longitude}"

        transport = self._transport
        if transport is None:
            self._report(f"Location obtained: {coords}")
            return True

        try:
            if transport.closed:
                raise TransportClosedError(f"Channel to {transport.endpoint} is closed")
            ack = await transport.async_send(self._device_id, position)
        except TransportError as err:
            if epoch != self._epoch:
                return False
            _LOGGER.warning("Sending to %s failed: %s", transport.endpoint, err)
            await self._async_release_transport()
            self._state = SessionState.SIMULATING
            self._report(
                f"Error sending location ({err}); switching to simulation. "
                f"Obtained: {coords}",
                ErrorKind.HANDSHAKE if handshake else ErrorKind.TRANSPORT,
            )
            return False
        if epoch != self._epoch:
            return False

        if ack is not None:
            self._last_response = ack
        self._report(f"Location sent: {coords}")
        return True

    # Helpers ------------------------------------------------------------
    def _get_client_session(self) -> aiohttp.ClientSession:
        if self._client_session is None:
            self._client_session = aiohttp.ClientSession()
            self._owns_client_session = True
        return self._client_session

    async def _async_release_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.async_close()

    def _report(
        self,
        message: str,
        error: ErrorKind | None = None,
        callback: StatusCallback | None = None,
    ) -> None:
        report = StatusReport(self._state, message, error)
        self._last_status = report
        self._history.append(report)

        if error is not None:
            _LOGGER.warning("%s (%s)", message, error.value)
        else:
            _LOGGER.debug("%s", message)

        callback = callback or self._on_status
        if callback is None:
            return
        try:
            callback(report)
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Error in status callback")
