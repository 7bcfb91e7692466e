"""Prometheus metrics for pipeline observability.

Metrics Defined:
- bikeshare_runs_total: Counter of finished runs by operation and outcome
- bikeshare_run_failures_total: Counter of failed runs by operation and stage
- bikeshare_run_duration_seconds: Histogram of lock-request-to-release time
- bikeshare_lock_timeouts_total: Counter of runs that never got the lock
- bikeshare_runs_by_stage: Gauge of runs currently inside each active stage

The MetricsEventEmitter derives all of these from pipeline events, so the
orchestrator never talks to Prometheus directly. Metrics are exposed at
``/metrics`` by the API.
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

from bikeshare.events.emitter import EventEmitter
from bikeshare.events.models import EventType, PipelineEvent
from bikeshare.runs.models import RunStage, is_terminal_stage


logger = logging.getLogger(__name__)


# Runs are sub-second against a healthy store; the tail covers lock waits
DEFAULT_DURATION_BUCKETS = (
    0.01,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
)

# Stages a run can be "inside"; idle and terminal stages are not counted
ACTIVE_STAGES = tuple(
    stage.value
    for stage in RunStage
    if stage != RunStage.IDLE and not is_terminal_stage(stage)
)


class PipelineMetrics:
    """Container for all pipeline Prometheus metrics.

    Attributes:
        registry: The Prometheus registry for these metrics.

    Example:
        >>> metrics = PipelineMetrics(registry=CollectorRegistry())
        >>> metrics.record_run("checkout", "success")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize pipeline metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.runs_total = Counter(
            "bikeshare_runs_total",
            "Total number of pipeline runs that reached a terminal stage",
            labelnames=["operation", "outcome"],
            registry=self.registry,
        )

        self.run_failures_total = Counter(
            "bikeshare_run_failures_total",
            "Total number of failed pipeline runs",
            labelnames=["operation", "stage"],
            registry=self.registry,
        )

        self.run_duration_seconds = Histogram(
            "bikeshare_run_duration_seconds",
            "Time from lock request to lock release in seconds",
            labelnames=["operation"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.lock_timeouts_total = Counter(
            "bikeshare_lock_timeouts_total",
            "Total number of runs that could not acquire the global lock",
            labelnames=["operation"],
            registry=self.registry,
        )

        self.runs_by_stage = Gauge(
            "bikeshare_runs_by_stage",
            "Number of runs currently in each active stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        for stage in ACTIVE_STAGES:
            self.runs_by_stage.labels(stage=stage).set(0)

    def record_run(self, operation: str, outcome: str) -> None:
        self.runs_total.labels(operation=operation, outcome=outcome).inc()

    def record_failure(self, operation: str, stage: str) -> None:
        self.run_failures_total.labels(operation=operation, stage=stage).inc()

    def record_duration(self, operation: str, duration_seconds: float) -> None:
        self.run_duration_seconds.labels(operation=operation).observe(duration_seconds)

    def record_lock_timeout(self, operation: str) -> None:
        self.lock_timeouts_total.labels(operation=operation).inc()

    def move_stage(self, from_stage: Optional[str], to_stage: Optional[str]) -> None:
        """Move one run between stage gauges, ignoring uncounted stages."""
        if from_stage in ACTIVE_STAGES:
            self.runs_by_stage.labels(stage=from_stage).dec()
        if to_stage in ACTIVE_STAGES:
            self.runs_by_stage.labels(stage=to_stage).inc()


# Global metrics instance for the default registry
_default_metrics: Optional[PipelineMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> PipelineMetrics:
    """Get or create the pipeline metrics instance.

    Args:
        registry: Optional Prometheus registry. If given, a new instance
                  bound to it is returned; otherwise the global instance.
    """
    global _default_metrics

    if registry is not None:
        return PipelineMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = PipelineMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text-format output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STATE_TRANSITION: moves the run between stage gauges
    - ERROR: counts a failed run at its stage
    - COMPLETION: counts a successful run and records its duration
    - TIMEOUT: counts a lock timeout
    """

    def __init__(
        self,
        metrics: Optional[PipelineMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type == EventType.STATE_TRANSITION:
                self._metrics.move_stage(
                    event.details.get("from_stage"),
                    event.details.get("to_stage"),
                )
            elif event.event_type == EventType.ERROR:
                self._metrics.record_run(event.operation, "failure")
                self._metrics.record_failure(
                    event.operation, event.details.get("stage", "unknown")
                )
                self._record_duration(event)
            elif event.event_type == EventType.COMPLETION:
                self._metrics.record_run(event.operation, "success")
                self._record_duration(event)
            elif event.event_type == EventType.TIMEOUT:
                self._metrics.record_run(event.operation, "timeout")
                self._metrics.record_lock_timeout(event.operation)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "run_id": event.run_id},
            )

    def _record_duration(self, event: PipelineEvent) -> None:
        duration = event.details.get("duration_seconds")
        if isinstance(duration, (int, float)) and duration >= 0:
            self._metrics.record_duration(event.operation, float(duration))
