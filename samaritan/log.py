"""A logger that prefixes every message."""

from __future__ import annotations

import logging
from typing import Any

_logger = logging.getLogger(__name__)


class PrefixLogger:
    """Logs %-style messages with a fixed prefix in front."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix

    def attach_prefix(self, f: str) -> str:
        """Return ``f`` with the prefix and a space in front."""
        return f"{self.prefix} {f}"

    def _log(self, level: int, msg: str, args: tuple[Any, ...]) -> None:
        text = msg % args if args else msg
        _logger.log(level, "%s", self.attach_prefix(text), stacklevel=3)

    def debug(self, msg: str, *args: Any) -> None:
        """Log at debug level."""
        self._log(logging.DEBUG, msg, args)

    def info(self, msg: str, *args: Any) -> None:
        """Log at info level."""
        self._log(logging.INFO, msg, args)

    def warning(self, msg: str, *args: Any) -> None:
        """Log at warning level."""
        self._log(logging.WARNING, msg, args)

    def fatal(self, msg: str, *args: Any) -> None:
        """Log at critical level, then exit with status 1."""
        self._log(logging.CRITICAL, msg, args)
        raise SystemExit(1)