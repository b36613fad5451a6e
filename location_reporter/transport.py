"""HTTP and WebSocket transports for location reports."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import Any

import aiohttp

from .const import (
    HANDSHAKE_TIMEOUT,
    REPLY_TIMEOUT,
    REQUEST_HEADERS,
    SEND_TIMEOUT,
)
from .models import HandshakeResult, Position, TransportKind
from .protocol import (
    build_connection_test,
    build_location_report,
    encode,
    parse_acknowledgment,
)

_LOGGER = logging.getLogger(__name__)

_DATA_TYPES = (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY)
_CLOSING_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
    aiohttp.WSMsgType.ERROR,
)


class TransportError(Exception):
    """General transport error."""


class TransportConnectionError(TransportError):
    """The endpoint could not be reached or the connection broke."""


class HandshakeTimeoutError(TransportConnectionError):
    """The channel did not open within the handshake window."""


class TransportClosedError(TransportError):
    """The channel was closed by the peer or by us."""


class TransportResponseError(TransportError):
    """The endpoint answered with a non-success HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        """Initialize the error."""
        super().__init__(message)
        self.status = status


class Transport:
    """Base class for concrete transports."""

    kind: TransportKind

    def __init__(self, endpoint: str) -> None:
        """Initialize the transport."""
        self.endpoint = endpoint
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return True once the transport can no longer send."""
        return self._closed

    async def async_open(self, device_id: str) -> HandshakeResult:
        """Perform the handshake; raise TransportError on failure."""
        raise NotImplementedError

    async def async_send(
        self, device_id: str, position: Position
    ) -> dict[str, Any] | None:
        """Send one location report and return any acknowledgment."""
        raise NotImplementedError

    async def async_close(self) -> None:
        """Release the transport."""
        self._closed = True


class HttpTransport(Transport):
    """One POST per report, no state between sends."""

    kind = TransportKind.HTTP

    def __init__(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        timeout: float = SEND_TIMEOUT,
    ) -> None:
        """Initialize the HTTP transport."""
        super().__init__(endpoint)
        self._session = session
        self._timeout = timeout

    async def async_open(self, device_id: str) -> HandshakeResult:
        """HTTP has nothing to open; the first send decides."""
        return HandshakeResult.DEFERRED

    async def async_send(
        self, device_id: str, position: Position
    ) -> dict[str, Any] | None:
        """POST the location report."""
        if self._closed:
            raise TransportClosedError("HTTP transport was closed")

        payload = encode(build_location_report(device_id, position))
        _LOGGER.debug("POST %s: %s", self.endpoint, payload)

        try:
            async with asyncio.timeout(self._timeout):
                resp = await self._session.post(
                    self.endpoint, data=payload, headers=REQUEST_HEADERS
                )
                body = await resp.read()
        except (TimeoutError, aiohttp.ClientError) as err:
            raise TransportConnectionError(
                f"Error communicating with {self.endpoint}: {err}"
            ) from err

        if not 200 <= resp.status < 300:
            raise TransportResponseError(
                resp.status, f"{self.endpoint} returned HTTP {resp.status}"
            )

        return parse_acknowledgment(body)


class WebSocketTransport(Transport):
    """Persistent duplex channel; replies are drained in the background."""

    kind = TransportKind.WEBSOCKET

    def __init__(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        reply_timeout: float = REPLY_TIMEOUT,
        send_timeout: float = SEND_TIMEOUT,
    ) -> None:
        """Initialize the WebSocket transport."""
        super().__init__(endpoint)
        self._session = session
        self._handshake_timeout = handshake_timeout
        self._reply_timeout = reply_timeout
        self._send_timeout = send_timeout
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending_reply: dict[str, Any] | None = None

    @property
    def closed(self) -> bool:
        """Return True if the channel is gone."""
        return self._closed or self._ws is None or self._ws.closed

    async def async_open(self, device_id: str) -> HandshakeResult:
        """Connect, send the connection test and wait briefly for a reply."""
        try:
            async with asyncio.timeout(self._handshake_timeout):
                self._ws = await self._session.ws_connect(self.endpoint)
        except TimeoutError as err:
            await self.async_close()
            raise HandshakeTimeoutError(
                f"{self.endpoint} did not open within {self._handshake_timeout}s"
            ) from err
        except aiohttp.ClientError as err:
            await self.async_close()
            raise TransportConnectionError(
                f"Error connecting to {self.endpoint}: {err}"
            ) from err

        test = encode(build_connection_test(device_id, datetime.now(UTC)))
        try:
            await self._ws.send_str(test)
        except (ConnectionError, aiohttp.ClientError) as err:
            await self.async_close()
            raise TransportConnectionError(
                f"Error sending connection test to {self.endpoint}: {err}"
            ) from err

        result = HandshakeResult.READY
        try:
            async with asyncio.timeout(self._reply_timeout):
                msg = await self._ws.receive()
        except TimeoutError:
            _LOGGER.debug("No reply from %s, continuing one-way", self.endpoint)
        else:
            if msg.type in _DATA_TYPES:
                self._pending_reply = parse_acknowledgment(msg.data)
                result = HandshakeResult.REPLIED
            elif msg.type in _CLOSING_TYPES:
                await self.async_close()
                raise TransportClosedError(
                    f"{self.endpoint} closed the channel during handshake"
                )

        self._reader = asyncio.create_task(self._async_read())
        return result

    async def _async_read(self) -> None:
        """Drain incoming frames until the channel closes."""
        ws = self._ws
        if ws is None:
            self._closed = True
            return

        try:
            while True:
                msg = await ws.receive()
                if msg.type in _DATA_TYPES:
                    self._pending_reply = parse_acknowledgment(msg.data)
                    _LOGGER.debug("Reply from %s: %s", self.endpoint, self._pending_reply)
                elif msg.type in _CLOSING_TYPES:
                    _LOGGER.info("Channel to %s closed (%s)", self.endpoint, msg.type)
                    self._closed = True
                    return
        except (ConnectionError, aiohttp.ClientError) as err:
            _LOGGER.warning("Lost channel to %s: %s", self.endpoint, err)
            self._closed = True

    async def async_send(
        self, device_id: str, position: Position
    ) -> dict[str, Any] | None:
        """Send the location report; return the latest unseen reply."""
        ws = self._ws
        if self._closed or ws is None or ws.closed:
            raise TransportClosedError(f"Channel to {self.endpoint} is closed")

        payload = encode(build_location_report(device_id, position))
        _LOGGER.debug("WS %s: %s", self.endpoint, payload)

        try:
            async with asyncio.timeout(self._send_timeout):
                await ws.send_str(payload)
        except (TimeoutError, ConnectionError, aiohttp.ClientError) as err:
            raise TransportConnectionError(
                f"Error sending to {self.endpoint}: {err}"
            ) from err

        reply, self._pending_reply = self._pending_reply, None
        return reply

    async def async_close(self) -> None:
        """Stop the reader and close the channel."""
        self._closed = True
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        self._pending_reply = None


def create_transport(
    kind: TransportKind, endpoint: str, session: aiohttp.ClientSession
) -> Transport:
    """Build the transport adapter for ``kind``."""
    if kind is TransportKind.WEBSOCKET:
        return WebSocketTransport(session, endpoint)
    return HttpTransport(session, endpoint)
