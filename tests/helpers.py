"""Fakes shared by the test modules."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import aiohttp

from location_reporter.models import (
    HandshakeResult,
    PermissionStatus,
    Position,
    TransportKind,
)
from location_reporter.transport import Transport

BRASILIA = Position(latitude=-15.7801, longitude=-47.9292, speed=12.4, heading=270.6)


class FakePositionSource:
    def __init__(
        self,
        results=(),
        *,
        enabled=True,
        permission=PermissionStatus.GRANTED,
        prompts_for_permission=False,
    ):
        self.results = list(results)
        self.enabled = enabled
        self.permission = permission
        self.prompts_for_permission = prompts_for_permission
        self.permission_requests = 0
        self.calls = 0

    async def async_is_service_enabled(self):
        return self.enabled

    async def async_request_permission(self):
        self.permission_requests += 1
        return self.permission

    async def async_current_position(self):
        self.calls += 1
        if not self.results:
            return BRASILIA
        item = self.results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeTransport(Transport):
    def __init__(
        self,
        kind,
        endpoint,
        *,
        handshake=HandshakeResult.REPLIED,
        open_error=None,
        open_gate=None,
        send_results=(),
    ):
        super().__init__(endpoint)
        self.kind = kind
        self.handshake = handshake
        self.open_error = open_error
        self.open_gate = open_gate
        self.send_results = list(send_results)
        self.opened_with = None
        self.sent = []
        self.close_calls = 0

    async def async_open(self, device_id):
        self.opened_with = device_id
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.open_error is not None:
            raise self.open_error
        return self.handshake

    async def async_send(self, device_id, position):
        self.sent.append((device_id, position))
        if not self.send_results:
            return None
        item = self.send_results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def async_close(self):
        self.close_calls += 1
        await super().async_close()


class TransportRecorder:
    """Transport factory that remembers what it built."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created = []

    def __call__(self, kind: TransportKind, endpoint: str, session: Any):
        transport = FakeTransport(kind, endpoint, **self.kwargs)
        self.created.append(transport)
        return transport


class FakeResponse:
    def __init__(self, status=200, body=""):
        self.status = status
        self._body = body

    async def read(self):
        if isinstance(self._body, bytes):
            return self._body
        return self._body.encode()


@dataclass
class FakeMessage:
    type: aiohttp.WSMsgType
    data: Any = None


class FakeWebSocket:
    def __init__(self, replies=()):
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()
        for reply in replies:
            self.push_text(reply)

    def push_text(self, text):
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, text))

    def push_close(self):
        self._incoming.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSE, 1000))

    async def send_str(self, data):
        if self.closed:
            raise ConnectionResetError("socket is closed")
        self.sent.append(json.loads(data))

    async def receive(self):
        return await self._incoming.get()

    async def close(self):
        self.closed = True
        return True


class FakeClientSession:
    def __init__(self, responses=(), *, ws=None, connect_delay=None, connect_error=None):
        self.responses = list(responses)
        self.ws = ws
        self.connect_delay = connect_delay
        self.connect_error = connect_error
        self.posts = []
        self.connects = []
        self.closed = False

    async def post(self, url, data=None, headers=None):
        self.posts.append({"url": url, "json": json.loads(data), "headers": headers})
        item = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, (int, float)):
            await asyncio.sleep(item)
            return FakeResponse()
        return item

    async def ws_connect(self, url):
        self.connects.append(url)
        if self.connect_delay is not None:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        return self.ws

    async def close(self):
        self.closed = True
