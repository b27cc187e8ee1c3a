"""Structured logging: JSON formatter and setup."""

from spotmeta.logging.formatter import JSONLogFormatter
from spotmeta.logging.setup import configure_from_settings, configure_logging

__all__ = ["JSONLogFormatter", "configure_from_settings", "configure_logging"]
