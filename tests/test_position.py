import asyncio
import json

import pytest

from helpers import FakePositionSource
from location_reporter import position as position_module
from location_reporter.models import PermissionStatus, Position
from location_reporter.position import (
    FallbackPositionSource,
    FixedPositionSource,
    PermissionDeniedError,
    PositionError,
    TermuxPositionSource,
    parse_termux_location,
)

TERMUX_FIX = {
    "latitude": -23.55,
    "longitude": -46.63,
    "altitude": 760.0,
    "accuracy": 12.5,
    "bearing": 90.4,
    "speed": 3.2,
    "elapsedMs": 12,
    "provider": "gps",
}


class FakeProcess:
    def __init__(self, returncode=0, stdout=b"", stderr=b"", hang=False):
        self.returncode = None if hang else returncode
        self._stdout = stdout
        self._stderr = stderr
        self._hang = hang
        self.killed = False

    async def communicate(self):
        if self._hang:
            await asyncio.Event().wait()
        return self._stdout, self._stderr

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


@pytest.fixture
def fake_exec(monkeypatch):
    calls = []
    results = []

    async def create_subprocess_exec(*args, **kwargs):
        calls.append(args)
        return results.pop(0)

    monkeypatch.setattr(
        position_module.asyncio, "create_subprocess_exec", create_subprocess_exec
    )
    return calls, results


def test_fixed_source_reports_brasilia():
    source = FixedPositionSource()
    position = asyncio.run(source.async_current_position())

    assert (position.latitude, position.longitude) == (-15.7801, -47.9292)
    assert source.prompts_for_permission is False
    assert asyncio.run(source.async_request_permission()) is PermissionStatus.GRANTED


def test_fallback_substitutes_fixed_coordinate_on_failure():
    inner = FakePositionSource([PositionError("no backend")])
    source = FallbackPositionSource(inner, FixedPositionSource(1.0, 2.0))

    position = asyncio.run(source.async_current_position())

    assert (position.latitude, position.longitude) == (1.0, 2.0)


def test_fallback_passes_through_real_fix_and_permission_denial():
    real = Position(latitude=5.0, longitude=6.0)
    inner = FakePositionSource([real, PermissionDeniedError("denied")])
    source = FallbackPositionSource(inner)

    assert asyncio.run(source.async_current_position()) == real
    with pytest.raises(PermissionDeniedError):
        asyncio.run(source.async_current_position())


def test_fallback_delegates_capabilities():
    inner = FakePositionSource(enabled=False, prompts_for_permission=True)
    source = FallbackPositionSource(inner)

    assert source.prompts_for_permission is True
    assert asyncio.run(source.async_is_service_enabled()) is False


def test_parse_termux_location():
    position = parse_termux_location(json.dumps(TERMUX_FIX))

    assert position.latitude == -23.55
    assert position.longitude == -46.63
    assert position.speed == 3.2
    assert position.heading == pytest.approx(90.4)
    assert position.accuracy == 12.5


@pytest.mark.parametrize(
    "output",
    ["", "not json", "[]", '{"error": "timeout"}', '{"latitude": "x", "longitude": 1}'],
)
def test_parse_termux_location_rejects_bad_output(output):
    with pytest.raises(PositionError):
        parse_termux_location(output)


def test_termux_current_position_runs_tool(fake_exec):
    calls, results = fake_exec
    results.append(FakeProcess(stdout=json.dumps(TERMUX_FIX).encode()))
    source = TermuxPositionSource(provider="network", timeout=5)

    position = asyncio.run(source.async_current_position())

    assert position.latitude == -23.55
    assert calls == [
        ("termux-location", "--provider", "network", "--request", "once", "--timeout", "5")
    ]


def test_termux_failure_raises_position_error(fake_exec):
    _, results = fake_exec
    results.append(FakeProcess(returncode=1, stderr=b"location unavailable"))

    with pytest.raises(PositionError):
        asyncio.run(TermuxPositionSource().async_current_position())


@pytest.mark.parametrize(
    "process, expected",
    [
        (FakeProcess(stdout=b"{}"), PermissionStatus.GRANTED),
        (FakeProcess(returncode=1, stderr=b"Permission denial"), PermissionStatus.DENIED_FOREVER),
        (FakeProcess(returncode=2, stderr=b"boom"), PermissionStatus.DENIED),
    ],
)
def test_termux_permission(fake_exec, process, expected):
    _, results = fake_exec
    results.append(process)

    assert asyncio.run(TermuxPositionSource().async_request_permission()) is expected


def test_termux_service_enabled_when_tool_is_installed(monkeypatch):
    monkeypatch.setattr(position_module.shutil, "which", lambda name: None)
    assert asyncio.run(TermuxPositionSource().async_is_service_enabled()) is False

    monkeypatch.setattr(position_module.shutil, "which", lambda name: "/bin/" + name)
    assert asyncio.run(TermuxPositionSource().async_is_service_enabled()) is True


def test_cancelled_fetch_kills_termux_process(fake_exec):
    _, results = fake_exec
    process = FakeProcess(hang=True)
    results.append(process)

    async def scenario():
        task = asyncio.create_task(TermuxPositionSource().async_current_position())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert process.killed
    assert process.returncode == -9
