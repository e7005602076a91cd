import logging

from helios_activity.events import ActivityLogBuffer


def test_log_buffer_keeps_most_recent_events() -> None:
    buffer = ActivityLogBuffer(capacity=3)
    test_logger = logging.getLogger("helios_activity.tests.events")
    test_logger.setLevel(logging.DEBUG)
    test_logger.addHandler(buffer)
    try:
        test_logger.debug("hidden below handler level")
        for index in range(4):
            test_logger.info("Bridge %d done", index)
        test_logger.warning("Proxy failed, falling back to direct connection")
    finally:
        test_logger.removeHandler(buffer)

    events = buffer.events()
    assert [event.message for event in events] == [
        "Bridge 2 done",
        "Bridge 3 done",
        "Proxy failed, falling back to direct connection",
    ]
    assert [event.severity for event in events] == ["info", "info", "warning"]

    buffer.clear()
    assert buffer.events() == []
