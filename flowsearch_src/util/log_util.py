"""Logging setup shared by the command line entry points."""

from __future__ import annotations

import logging

from .config import get_key, is_verbose

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: int | str | None = None) -> None:
    """Configure the root logger from the config file unless a level is given."""
    if level is None:
        level = "DEBUG" if is_verbose() else get_key("logging.level", "WARNING")
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
