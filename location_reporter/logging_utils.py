"""Logging helpers for the location reporter."""

from __future__ import annotations

import logging

DEFAULT_LOG_LEVEL = logging.INFO


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger for command line use."""
    root = logging.getLogger()
    if root.handlers:
        # Assume logging is already configured.
        return

    root.setLevel(logging.DEBUG if verbose else DEFAULT_LOG_LEVEL)

    formatter = logging.Formatter(
        fmt="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root.addHandler(handler)
