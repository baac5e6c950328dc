"""
Logging setup, a slow-call decorator and the structured event collector.
"""

import functools
import logging
import logging.handlers
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from config.constants import LOG_FILE, LOG_FORMAT, LOG_LEVEL
from .ring_buffer import RingBuffer

# Libraries whose INFO chatter drowns out per-cycle engine logs
QUIET_LOGGERS = ("asyncio", "sklearn", "matplotlib")


def setup_logging(
    log_level: str = LOG_LEVEL,
    log_format: str = LOG_FORMAT,
    log_file: Optional[str] = LOG_FILE,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    quiet_loggers: Sequence[str] = QUIET_LOGGERS,
) -> logging.Logger:
    """
    Configure the root logger for a host application embedding the engine.

    Installs a stdout handler and, when ``log_file`` is set, a size-rotated
    file handler. Existing root handlers are replaced so repeated calls do not
    duplicate output.
    """
    root = logging.getLogger()
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(f"Confluence engine logging at {logging.getLevelName(level)}"
               + (f", writing to {log_path}" if log_file else ""))
    return root


def log_performance(logger: logging.Logger, threshold_ms: float = 1000):
    """Log the wall time of each call; calls slower than ``threshold_ms`` log a warning."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                logger.error(f"{func.__qualname__} failed after {elapsed:.1f}ms: {e}")
                raise

            elapsed = (time.perf_counter() - start) * 1000
            if elapsed > threshold_ms:
                logger.warning(f"{func.__qualname__} took {elapsed:.1f}ms (threshold {threshold_ms:.0f}ms)")
            else:
                logger.debug(f"{func.__qualname__} took {elapsed:.1f}ms")
            return result
        return wrapper
    return decorator


@dataclass
class EngineEvent:
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    source: str = ''
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventCollector:
    """
    Bounded collector for structured progress and telemetry events.

    Components receive a collector from their caller and emit into it; nothing
    is registered globally. Every event is also written to the module logger
    at debug level.
    """

    def __init__(self, capacity: int = 500, logger: Optional[logging.Logger] = None):
        self._events: RingBuffer[EngineEvent] = RingBuffer(capacity)
        self._logger = logger or logging.getLogger(__name__)

    def emit(self, name: str, source: str = '', **payload) -> EngineEvent:
        event = EngineEvent(name=name, payload=payload, source=source)
        self._events.append(event)
        self._logger.debug(f"[{source or 'engine'}] {name}: {payload}")
        return event

    def events(self, name: Optional[str] = None) -> List[EngineEvent]:
        if name is None:
            return self._events.to_list()
        return [event for event in self._events if event.name == name]

    def names(self) -> List[str]:
        return [event.name for event in self._events]

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


def emit_event(collector: Optional[EventCollector], name: str, source: str = '', **payload) -> None:
    """Emit into ``collector`` when one was supplied."""
    if collector is not None:
        collector.emit(name, source=source, **payload)
