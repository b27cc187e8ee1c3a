"""Logging configuration for the CLI and embedding applications."""

import logging
import sys

from spotmeta.logging.formatter import JSONLogFormatter
from spotmeta.settings import MetadataSettings

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", json_output: bool = False, *, service: str = "spotmeta") -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONLogFormatter(service=service))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    # Request lines from httpx duplicate our own debug output.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def configure_from_settings(settings: MetadataSettings) -> None:
    """``configure_logging`` driven by ``LOG_LEVEL``, ``LOG_JSON`` and ``SPOTIFY_DEBUG``."""
    level = "DEBUG" if settings.SPOTIFY_DEBUG else settings.LOG_LEVEL
    configure_logging(level, settings.LOG_JSON)
