"""Cooperative cancellation and interruptible sleeping."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class StoppedError(RuntimeError):
    """Raised to short-circuit remaining work once a stop was requested."""

    def __init__(self, message: str = "Process stopped") -> None:
        super().__init__(message)


class CancellationToken:
    """A stop flag that sleeping callers can race against.

    ``sleep`` blocks on a :class:`threading.Event`, so ``cancel`` wakes every
    sleeper at once instead of waiting for the delay to run out.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._interrupt_logged = False

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        with self._lock:
            self._event.clear()
            self._interrupt_logged = False

    def raise_if_stopped(self, message: str = "Process stopped") -> None:
        if self._event.is_set():
            raise StoppedError(message)

    def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``False`` if a stop cut it short."""

        if self._event.is_set():
            self.log_interrupted("Process stopped successfully.")
            return False
        if self._event.wait(max(0.0, seconds)):
            self.log_interrupted("Process interrupted.")
            return False
        return True

    def log_interrupted(self, message: str) -> None:
        """Log ``message`` unless an interruption was already logged for this stop."""

        with self._lock:
            if self._interrupt_logged:
                return
            self._interrupt_logged = True
        logger.info(message)
