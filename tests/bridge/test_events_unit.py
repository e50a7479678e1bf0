"""Unit tests for bridge event emitters and Prometheus metrics."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from src.bridge.events.emitter import (
    CompositeEventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.bridge.events.metrics import (
    BridgeMetrics,
    MetricsEventEmitter,
    generate_metrics_output,
)
from src.bridge.events.models import BridgeEvent, EventType


def run_async(coro):
    return asyncio.run(coro)


def _event(event_type: EventType, **details) -> BridgeEvent:
    return BridgeEvent(
        event_type=event_type,
        subject="Automattic/wp-calypso#42",
        repository="Automattic/wp-calypso",
        details=details,
    )


@pytest.fixture
def registry():
    return CollectorRegistry()


def _sample(registry, name, **labels):
    return registry.get_sample_value(name, labels) or 0.0


class TestBridgeEvent:

    def test_log_dict_flattens_details(self):
        event = _event(EventType.ERROR, operation="trigger_build", status_code=400)

        data = event.to_log_dict()

        assert data["event_type"] == "error"
        assert data["subject"] == "Automattic/wp-calypso#42"
        assert data["operation"] == "trigger_build"
        assert data["status_code"] == 400
        assert data["timestamp"].endswith("+00:00")

    def test_empty_subject_is_rejected(self):
        with pytest.raises(ValueError):
            BridgeEvent(event_type=EventType.FILTERED, subject="")


class TestLoggingEventEmitter:

    @pytest.mark.parametrize(
        "event_type, level",
        [
            (EventType.ERROR, logging.ERROR),
            (EventType.DEGRADED, logging.WARNING),
            (EventType.FILTERED, logging.DEBUG),
            (EventType.IGNORED_CALLBACK, logging.DEBUG),
            (EventType.BUILD_TRIGGERED, logging.INFO),
        ],
    )
    def test_log_levels(self, caplog, event_type, level):
        emitter = LoggingEventEmitter(logger_name="bridge.test")

        with caplog.at_level(logging.DEBUG, logger="bridge.test"):
            run_async(emitter.emit(_event(event_type)))

        record = caplog.records[-1]
        assert record.levelno == level
        assert record.bridge_event["event_type"] == event_type.value


class TestCompositeEventEmitter:

    def test_emits_to_all_children(self):
        first, second = AsyncMock(), AsyncMock()
        composite = CompositeEventEmitter([first])
        composite.add_emitter(second)
        event = _event(EventType.RECONCILED)

        run_async(composite.emit(event))

        first.emit.assert_awaited_once_with(event)
        second.emit.assert_awaited_once_with(event)
        assert len(composite.emitters) == 2

    def test_child_failure_does_not_stop_others(self):
        broken, healthy = AsyncMock(), AsyncMock()
        broken.emit.side_effect = RuntimeError("sink down")
        composite = CompositeEventEmitter([broken, healthy])

        run_async(composite.emit(_event(EventType.ERROR)))

        healthy.emit.assert_awaited_once()

    def test_close_closes_children(self):
        broken, healthy = AsyncMock(), AsyncMock()
        broken.close.side_effect = RuntimeError("already closed")
        composite = CompositeEventEmitter([broken, healthy])

        run_async(composite.close())

        healthy.close.assert_awaited_once()


class TestCreateEventEmitter:

    def test_default_is_logging(self):
        assert isinstance(create_event_emitter(), LoggingEventEmitter)

    def test_single_sink_is_returned_directly(self):
        emitter = create_event_emitter([EventSinkType.LOGGING])

        assert isinstance(emitter, LoggingEventEmitter)

    def test_both_sinks_give_composite(self):
        emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])

        assert isinstance(emitter, CompositeEventEmitter)
        kinds = {type(child) for child in emitter.emitters}
        assert kinds == {LoggingEventEmitter, MetricsEventEmitter}

    def test_null_emitter_discards(self):
        run_async(NullEventEmitter().emit(_event(EventType.FILTERED)))


class TestMetricsEventEmitter:

    def test_every_event_is_counted(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        run_async(emitter.emit(_event(EventType.FILTERED, reason="fork")))
        run_async(emitter.emit(_event(EventType.FILTERED, reason="not_open")))

        assert _sample(registry, "bridge_events_total", event_type="filtered") == 2.0

    def test_build_triggered_by_degraded_flag(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        run_async(emitter.emit(_event(EventType.BUILD_TRIGGERED, degraded=True)))
        run_async(emitter.emit(_event(EventType.BUILD_TRIGGERED, degraded=False)))
        run_async(emitter.emit(_event(EventType.BUILD_TRIGGERED, degraded=False)))

        assert _sample(registry, "bridge_builds_triggered_total", degraded="true") == 1.0
        assert _sample(registry, "bridge_builds_triggered_total", degraded="false") == 2.0

    def test_status_and_error_counters(self, registry):
        emitter = MetricsEventEmitter(registry=registry)

        run_async(emitter.emit(_event(EventType.STATUS_POSTED, state="pending")))
        run_async(emitter.emit(_event(EventType.ERROR, operation="delete_branch")))
        run_async(emitter.emit(_event(EventType.ERROR)))

        assert _sample(registry, "bridge_commit_statuses_total", state="pending") == 1.0
        assert _sample(registry, "bridge_errors_total", operation="delete_branch") == 1.0
        assert _sample(registry, "bridge_errors_total", operation="unknown") == 1.0

    def test_metrics_output_contains_counters(self, registry):
        metrics = BridgeMetrics(registry=registry)
        metrics.record_status_posted("success")

        output = generate_metrics_output(registry).decode()

        assert 'bridge_commit_statuses_total{state="success"} 1.0' in output
