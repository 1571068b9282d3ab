"""Logging setup for mailsift.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
attached here, once, by the entry points (CLI, API).
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_LOGGER: Optional[logging.Logger] = None


class _StderrHandler(logging.StreamHandler):
    """A stream handler bound to whatever ``sys.stderr`` is at emit time."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


class _DetailFormatter(logging.Formatter):
    """Append ``run_id`` / ``state`` extras to the message when present."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = []
        if hasattr(record, "run_id"):
            extras.append(f"run={record.run_id}")
        if hasattr(record, "state"):
            extras.append(f"state={record.state}")
        if extras:
            return f"{base} [{' '.join(extras)}]"
        return base


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Configure the ``mailsift`` logger and return it.

    Idempotent: repeated calls only adjust the level.
    """
    global _LOGGER

    resolved = level if isinstance(level, int) else getattr(logging, str(level).upper(), logging.INFO)

    if _LOGGER is not None:
        _LOGGER.setLevel(resolved)
        return _LOGGER

    logger = logging.getLogger("mailsift")
    logger.setLevel(resolved)

    handler = _StderrHandler()
    handler.setFormatter(_DetailFormatter(_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    _LOGGER = logger
    return logger
