import logging
import threading
import time

import pytest

from helios_activity.cancellation import CancellationToken, StoppedError


def test_sleep_runs_to_completion_without_stop() -> None:
    token = CancellationToken()

    assert token.sleep(0.01) is True
    token.raise_if_stopped()


def test_cancel_wakes_sleeper_early() -> None:
    token = CancellationToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()

    started = time.monotonic()
    result = token.sleep(10)
    elapsed = time.monotonic() - started
    timer.join()

    assert result is False
    assert elapsed < 5


def test_interruption_is_logged_once_per_stop(caplog) -> None:
    token = CancellationToken()
    token.cancel()

    with caplog.at_level(logging.INFO):
        assert token.sleep(1) is False
        assert token.sleep(1) is False
        token.log_interrupted("Process interrupted.")

    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["Process stopped successfully."]


def test_reset_clears_stop_and_log_latch(caplog) -> None:
    token = CancellationToken()
    token.cancel()
    with pytest.raises(StoppedError):
        token.raise_if_stopped()

    token.reset()

    assert not token.cancelled
    assert token.sleep(0) is True
    token.cancel()
    with caplog.at_level(logging.INFO):
        token.sleep(0)
    assert [r.getMessage() for r in caplog.records] == ["Process stopped successfully."]
