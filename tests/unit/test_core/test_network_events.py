"""Tests for structured network event logging."""

import logging

import httpx
import pytest

from netkeeper.core.context import correlation_scope
from netkeeper.core.network.connectivity import ConnectivityMonitor
from netkeeper.core.network.queue import OfflineQueue
from netkeeper.core.observability import NetworkEvent, NetworkEventType, audit_log

AUDIT_LOGGER = "netkeeper.core.observability.audit"


def _events(caplog):
    return [record.audit for record in caplog.records if record.name == AUDIT_LOGGER]


class TestAuditLog:
    def test_known_event(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            audit_log("operation_queued", operation_id="01A", queue_depth=1)

        (event,) = _events(caplog)
        assert event["event_type"] == "operation_queued"
        assert event["details"] == {"operation_id": "01A", "queue_depth": 1}
        assert "timestamp" in event

    def test_unknown_event_mapped_to_other(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            audit_log("custom_thing", value=1)

        (event,) = _events(caplog)
        assert event["event_type"] == "other"
        assert event["details"]["original_event_type"] == "custom_thing"

    def test_correlation_id_attached(self):
        with correlation_scope("op-123"):
            event = NetworkEvent(event_type=NetworkEventType.RETRY_ATTEMPT)
        assert event.to_dict()["correlation_id"] == "op-123"

    def test_nested_scope_reuses_outer_id(self):
        with correlation_scope("outer") as outer:
            with correlation_scope() as inner:
                assert inner == outer == "outer"


class TestComponentEvents:
    @pytest.mark.asyncio
    async def test_connection_lost_and_restored(self, caplog, make_probe):
        monitor = ConnectivityMonitor(make_probe(httpx.ConnectError("x"), None))

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            await monitor.check_now()
            await monitor.check_now()

        types = [event["event_type"] for event in _events(caplog)]
        assert types == ["heartbeat_failed", "connection_lost", "connection_restored"]

    def test_queue_events(self, caplog):
        queue = OfflineQueue()
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            op_id = queue.enqueue({"method": "POST", "url": "/x"})
            queue.cancel(op_id)

        types = [event["event_type"] for event in _events(caplog)]
        assert types == ["operation_queued", "operation_cancelled"]
