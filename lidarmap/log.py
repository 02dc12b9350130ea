"""Logger setup shared by all modules, and an in-memory ring buffer handler."""

from __future__ import annotations

import logging
import threading
from collections import deque

_lock = threading.Lock()
_default_logger: logging.Logger = logging.getLogger("lidarmap")
_ringbuffer: "RingBufferHandler | None" = None


class RingBufferHandler(logging.Handler):
    """Keeps the most recent log records in memory."""

    def __init__(self, buffer_size: int = 128) -> None:
        super().__init__()
        self.records: deque[logging.LogRecord] = deque(maxlen=buffer_size)

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def last_formatted(self) -> list[str]:
        """Formatted text of the buffered records, oldest first."""
        return [self.format(record) for record in list(self.records)]


def get_default_logger() -> logging.Logger:
    return _default_logger


def set_default_logger(logger: logging.Logger) -> None:
    global _default_logger
    _default_logger = logger


def get_ringbuffer_handler(buffer_size: int = 128) -> RingBufferHandler:
    """The shared ring buffer handler, created with ``buffer_size`` on first use."""
    global _ringbuffer
    with _lock:
        if _ringbuffer is None:
            _ringbuffer = RingBufferHandler(buffer_size)
        return _ringbuffer


def create_module_logger(module_name: str) -> logging.Logger:
    """A logger for one module that reports through the default logger."""
    return _default_logger.getChild(module_name)