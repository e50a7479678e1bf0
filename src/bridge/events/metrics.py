"""Prometheus metrics for bridge observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- bridge_events_total: Counter of every bridge event, by type
- bridge_builds_triggered_total: Counter of downstream builds, by branch kind
- bridge_commit_statuses_total: Counter of commit statuses written, by state
- bridge_errors_total: Counter of remote-call failures, by operation

The MetricsEventEmitter integrates with the event emission system to
update metrics from bridge events.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    generate_latest,
)

from src.bridge.events.emitter import EventEmitter
from src.bridge.events.models import BridgeEvent, EventType


logger = logging.getLogger(__name__)


class BridgeMetrics:
    """Container for all bridge Prometheus metrics.

    Supports custom registries for testing.

    Example:
        >>> metrics = BridgeMetrics(registry=CollectorRegistry())
        >>> metrics.record_status_posted("pending")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize bridge metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.events_total = Counter(
            "bridge_events_total",
            "Total number of bridge events by type",
            labelnames=["event_type"],
            registry=self.registry,
        )

        # degraded=true when the build runs on the integration branch
        self.builds_triggered_total = Counter(
            "bridge_builds_triggered_total",
            "Total number of downstream builds triggered",
            labelnames=["degraded"],
            registry=self.registry,
        )

        self.commit_statuses_total = Counter(
            "bridge_commit_statuses_total",
            "Total number of commit statuses written",
            labelnames=["state"],
            registry=self.registry,
        )

        self.errors_total = Counter(
            "bridge_errors_total",
            "Total number of failed remote calls",
            labelnames=["operation"],
            registry=self.registry,
        )

    def record_event(self, event_type: str) -> None:
        self.events_total.labels(event_type=event_type).inc()

    def record_build_triggered(self, degraded: bool) -> None:
        self.builds_triggered_total.labels(
            degraded="true" if degraded else "false"
        ).inc()

    def record_status_posted(self, state: str) -> None:
        self.commit_statuses_total.labels(state=state).inc()

    def record_error(self, operation: str) -> None:
        self.errors_total.labels(operation=operation).inc()


# Global metrics instance for the default registry
_default_metrics: Optional[BridgeMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> BridgeMetrics:
    """Get or create the bridge metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return BridgeMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = BridgeMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output for the /metrics endpoint."""
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    Every event increments bridge_events_total; BUILD_TRIGGERED,
    STATUS_POSTED and ERROR events also update their dedicated counters
    from the event details.
    """

    def __init__(
        self,
        metrics: Optional[BridgeMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> BridgeMetrics:
        return self._metrics

    async def emit(self, event: BridgeEvent) -> None:
        """Update metrics based on the bridge event."""
        try:
            self._metrics.record_event(event.event_type.value)

            if event.event_type == EventType.BUILD_TRIGGERED:
                self._metrics.record_build_triggered(
                    bool(event.details.get("degraded", False))
                )
            elif event.event_type == EventType.STATUS_POSTED:
                self._metrics.record_status_posted(
                    event.details.get("state", "unknown")
                )
            elif event.event_type == EventType.ERROR:
                self._metrics.record_error(
                    event.details.get("operation", "unknown")
                )
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "subject": event.subject,
                },
            )
