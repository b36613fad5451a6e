"""Command line entry point.

    location-reporter --transport http --endpoint http://host:8080/api/location
    location-reporter --transport websocket --device-name truck-7 --source termux
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from argparse import ArgumentParser, Namespace
from collections.abc import Mapping, Sequence

import voluptuous as vol

from .config import ReporterSettings
from .const import CONF_DEVICE_NAME, CONF_HTTP_URL, CONF_TRANSPORT, CONF_WEBSOCKET_URL
from .logging_utils import setup_logging
from .models import StatusReport, TransportKind
from .position import (
    FallbackPositionSource,
    FixedPositionSource,
    PositionSource,
    TermuxPositionSource,
)
from .protocol import describe_response
from .session import LocationReportingSession

_LOGGER = logging.getLogger(__name__)

SOURCES = ("fixed", "termux", "fallback")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="location-reporter",
        description="Report this device's location every 20 seconds.",
    )
    parser.add_argument(
        "--transport",
        choices=[kind.value for kind in TransportKind],
        help="transport to use (default: from environment, else websocket)",
    )
    parser.add_argument("--endpoint", help="ws://, wss://, http:// or https:// URL")
    parser.add_argument("--device-name", help="name used to build the device id")
    parser.add_argument(
        "--source",
        choices=SOURCES,
        default="fallback",
        help="where positions come from (default: %(default)s)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def settings_from_args(
    args: Namespace, environ: Mapping[str, str] | None = None
) -> ReporterSettings:
    """Layer command line options over environment settings."""
    settings = ReporterSettings.from_env(environ)
    changes = {}
    if args.transport:
        changes[CONF_TRANSPORT] = args.transport
    if args.device_name is not None:
        changes[CONF_DEVICE_NAME] = args.device_name
    if args.endpoint:
        kind = TransportKind(changes.get(CONF_TRANSPORT, settings.transport.value))
        key = CONF_WEBSOCKET_URL if kind is TransportKind.WEBSOCKET else CONF_HTTP_URL
        changes[key] = args.endpoint
    if changes:
        settings.update(**changes)
    return settings


def build_source(name: str) -> PositionSource:
    if name == "fixed":
        return FixedPositionSource()
    if name == "termux":
        return TermuxPositionSource()
    return FallbackPositionSource(TermuxPositionSource())


def print_status(report: StatusReport) -> None:
    stamp = report.timestamp.astimezone().strftime("%H:%M:%S")
    print(f"{stamp}: {report.message}", flush=True)


async def async_run(settings: ReporterSettings, source: PositionSource) -> int:
    """Run one session until SIGINT or SIGTERM."""
    kind = settings.transport
    endpoint = settings.endpoint_for(kind)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop_event.set)

    last_response = None

    def on_status(report: StatusReport) -> None:
        nonlocal last_response
        print_status(report)
        if session.last_response is not None and session.last_response != last_response:
            last_response = session.last_response
            print(describe_response(last_response), flush=True)

    async with LocationReportingSession(
        source, device_name=settings.device_name
    ) as session:
        print_status(StatusReport(session.state, f"Connecting to {endpoint}"))
        if not await session.async_start(kind, endpoint, on_status):
            return 1
        await stop_event.wait()
        _LOGGER.info("Stopping")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = settings_from_args(args)
    except vol.Invalid as err:
        print(f"location-reporter: {err}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(async_run(settings, build_source(args.source)))
    except KeyboardInterrupt:  # pragma: no cover
        return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
