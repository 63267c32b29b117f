"""Prometheus metrics for relay observability.

Metrics are exposed at the ``/metrics`` endpoint in Prometheus format.

Metrics Defined:
- relay_deliveries_total: Counter of deliveries by terminal outcome
- relay_reviews_failed_total: Counter of failed reviews by stage
- relay_webhook_rejections_total: Counter of rejected deliveries by reason
- relay_review_duration_seconds: Histogram of end-to-end review time
- relay_deliveries_in_stage: Gauge of deliveries currently in each working stage

MetricsEventEmitter derives all of these from the ReviewEvent stream, so
the orchestrator never touches Prometheus directly.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from src.relay.events.emitter import EventEmitter
from src.relay.events.models import EventType, ReviewEvent


logger = logging.getLogger(__name__)


# Generation with backoff (5s + 10s + 20s) plus a slow model can take minutes
DEFAULT_DURATION_BUCKETS = (
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
)


# Non-terminal ReviewStage values
WORKING_STAGES = (
    "received",
    "filtering",
    "fetching_diff",
    "prompting",
    "generating",
    "post_processing",
    "publishing",
)

# Terminal ReviewStage values
OUTCOMES = (
    "rejected",
    "ignored",
    "failed",
    "completed",
)


class RelayMetrics:
    """Container for all relay Prometheus metrics.

    Pass a private CollectorRegistry in tests; the default registry only
    accepts each metric name once per process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.deliveries_total = Counter(
            "relay_deliveries_total",
            "Webhook deliveries by terminal outcome",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.reviews_failed_total = Counter(
            "relay_reviews_failed_total",
            "Reviews that failed, by the stage where they failed",
            labelnames=["repository", "stage"],
            registry=self.registry,
        )

        self.webhook_rejections_total = Counter(
            "relay_webhook_rejections_total",
            "Deliveries rejected before processing",
            labelnames=["reason"],
            registry=self.registry,
        )

        self.review_duration_seconds = Histogram(
            "relay_review_duration_seconds",
            "Time from delivery receipt to published review in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.deliveries_in_stage = Gauge(
            "relay_deliveries_in_stage",
            "Deliveries currently in each working stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        for stage in WORKING_STAGES:
            self.deliveries_in_stage.labels(stage=stage).set(0)

    def record_outcome(self, outcome: str) -> None:
        if outcome in OUTCOMES:
            self.deliveries_total.labels(outcome=outcome).inc()

    def record_review_failed(self, repository: str, stage: str) -> None:
        self.reviews_failed_total.labels(repository=repository, stage=stage).inc()

    def record_rejection(self, reason: str) -> None:
        self.webhook_rejections_total.labels(reason=reason).inc()

    def record_duration(self, repository: str, duration_seconds: float) -> None:
        self.review_duration_seconds.labels(repository=repository).observe(
            duration_seconds
        )

    def enter_stage(self, stage: str) -> None:
        if stage in WORKING_STAGES:
            self.deliveries_in_stage.labels(stage=stage).inc()

    def leave_stage(self, stage: str) -> None:
        if stage in WORKING_STAGES:
            self.deliveries_in_stage.labels(stage=stage).dec()


_default_metrics: Optional[RelayMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> RelayMetrics:
    """Get the process-wide metrics, or a fresh set for a custom registry."""
    global _default_metrics

    if registry is not None:
        return RelayMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = RelayMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Render metrics in Prometheus text format for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STATE_TRANSITION: moves the stage gauge; entering a terminal stage
      counts the delivery outcome
    - REJECTION: counts the rejection reason
    - ERROR: counts the failure stage
    - COMPLETION: records review duration
    """

    def __init__(
        self,
        metrics: Optional[RelayMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> RelayMetrics:
        return self._metrics

    async def emit(self, event: ReviewEvent) -> None:
        try:
            if event.event_type == EventType.STATE_TRANSITION:
                self._handle_state_transition(event)
            elif event.event_type == EventType.REJECTION:
                self._metrics.record_rejection(
                    event.details.get("error_kind", "unknown")
                )
            elif event.event_type == EventType.ERROR:
                self._metrics.record_review_failed(
                    repository=event.repository,
                    stage=event.details.get("stage", "unknown"),
                )
            elif event.event_type == EventType.COMPLETION:
                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.record_duration(event.repository, float(duration))
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

    def _handle_state_transition(self, event: ReviewEvent) -> None:
        from_stage = event.details.get("from_stage")
        to_stage = event.details.get("to_stage")

        if from_stage:
            self._metrics.leave_stage(from_stage)

        if to_stage:
            self._metrics.enter_stage(to_stage)
            self._metrics.record_outcome(to_stage)
