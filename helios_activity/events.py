"""Structures handed to a display layer: log events and status snapshots."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, List

LOG_SCROLLBACK = 100


@dataclass(frozen=True)
class LogEvent:
    timestamp: datetime
    severity: str
    message: str


@dataclass(frozen=True)
class StatusSnapshot:
    state: str
    running: bool
    address: str | None
    account_count: int
    bridge_repetitions: int
    stake_repetitions: int
    in_flight: int = 0


class ActivityLogBuffer(logging.Handler):
    """Logging handler keeping the most recent records as :class:`LogEvent`."""

    def __init__(self, capacity: int = LOG_SCROLLBACK, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._events: Deque[LogEvent] = deque(maxlen=capacity)
        self._events_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created),
                severity=record.levelname.lower(),
                message=record.getMessage(),
            )
        except Exception:  # pragma: no cover - formatting errors go to logging
            self.handleError(record)
            return
        with self._events_lock:
            self._events.append(event)

    def events(self) -> List[LogEvent]:
        with self._events_lock:
            return list(self._events)

    def clear(self) -> None:
        with self._events_lock:
            self._events.clear()
