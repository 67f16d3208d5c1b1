from __future__ import annotations

import json
import logging
from typing import Optional

from PySide6.QtCore import QObject, Signal

_HIDDEN_KEYS = {"event", "level", "timestamp", "logger"}


class LogSignalEmitter(QObject):
    """Qt signal bridge for forwarding Python logging records."""

    message = Signal(int, str)


def render_record_message(message: str) -> str:
    """Collapse structlog JSON lines into `event key=value` form for the console."""
    if not message.startswith("{"):
        return message
    try:
        payload = json.loads(message)
    except ValueError:
        return message
    if not isinstance(payload, dict) or "event" not in payload:
        return message
    fields = " ".join(f"{key}={value}" for key, value in payload.items() if key not in _HIDDEN_KEYS)
    return f"{payload['event']} {fields}".rstrip()


class QtLogHandler(logging.Handler):
    """A logging handler that emits readable records through Qt signals."""

    def __init__(self, emitter: Optional[LogSignalEmitter] = None, *, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._emitter = emitter or LogSignalEmitter()
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    @property
    def emitter(self) -> LogSignalEmitter:
        return self._emitter

    def format(self, record: logging.LogRecord) -> str:
        original = record.msg, record.args
        record.msg, record.args = render_record_message(record.getMessage()), None
        try:
            return super().format(record)
        finally:
            record.msg, record.args = original

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            message = record.getMessage()
        self._emitter.message.emit(record.levelno, message)
