"""Tests for log formatting and the integration event log."""
import json
import logging

import pytest

from examforge.core.logging import JSONFormatter
from examforge.integrations.logger import IntegrationLogger
from examforge.models.integration import EventStatus


def test_json_formatter_includes_event_data():
    record = logging.LogRecord("examforge.test", logging.INFO, __file__, 1, "sync %s", ("done",), None)
    record.event = {"records_processed": 3}

    entry = json.loads(JSONFormatter().format(record))

    assert entry["level"] == "INFO"
    assert entry["logger"] == "examforge.test"
    assert entry["message"] == "sync done"
    assert entry["event"] == {"records_processed": 3}


@pytest.mark.asyncio
async def test_integration_logger_returns_newest_first(session_factory, webhook_integration):
    event_log = IntegrationLogger(webhook_integration.id, session_factory)

    for index in range(3):
        await event_log.log("step", EventStatus.INFO, f"step {index}", {"index": index}, duration=index * 10)

    events = await event_log.get_events(limit=2)

    assert [event.message for event in events] == ["step 2", "step 1"]
    assert events[0].data == {"index": 2}
    assert events[0].duration == 20
    assert events[0].status == EventStatus.INFO
