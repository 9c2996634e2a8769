"""Prometheus monitoring backend for the operator.

PrometheusMonitor turns sensor events into Prometheus metrics:

1. Reconciliation loop health - duration, throughput, errors, queue wait
2. Installation state - state transitions, node events, chart drift, status conflicts
3. High availability - enablement outcome and registry migration progress
"""

from typing import Any, Dict, List, Optional
import time
import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from ecoperator.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor.

    Metrics are prefixed ``ecop_`` and labelled by installation name where it
    applies. A custom ``registry`` keeps separate monitors from colliding on the
    process-wide default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        super().__init__()
        registry = registry if registry is not None else REGISTRY

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            "ecop_reconcile_duration_seconds",
            "Time spent in a reconcile pass",
            labelnames=["installation", "trigger_source", "result"],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            "ecop_reconcile_total",
            "Total number of reconcile passes",
            labelnames=["installation", "trigger_source", "result"],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            "ecop_reconcile_errors_total",
            "Total number of failed reconcile passes",
            labelnames=["installation", "error_type"],
            registry=registry,
        )

        self.reconcile_queue_depth = Gauge(
            "ecop_reconcile_queue_depth",
            "Current reconcile queue depth",
            labelnames=["installation"],
            registry=registry,
        )

        self.reconcile_queue_wait_seconds = Histogram(
            "ecop_reconcile_queue_wait_seconds",
            "Time a reconcile request waited in the queue",
            labelnames=["installation"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
            registry=registry,
        )

        # =============================================================================
        # Installation State Metrics
        # =============================================================================

        self.state_transitions = Counter(
            "ecop_installation_state_transitions_total",
            "Total number of Installation state transitions",
            labelnames=["installation", "from_state", "to_state"],
            registry=registry,
        )

        self.node_events = Counter(
            "ecop_node_events_total",
            "Total number of node added, updated and removed events",
            labelnames=["installation", "event"],
            registry=registry,
        )

        self.chart_drift_detected = Counter(
            "ecop_chart_drift_detected_total",
            "Total number of chart drift detections",
            labelnames=["installation", "chart"],
            registry=registry,
        )

        self.status_conflicts = Counter(
            "ecop_status_conflicts_total",
            "Total number of Installation status write conflicts",
            labelnames=["installation"],
            registry=registry,
        )

        # =============================================================================
        # High Availability Metrics
        # =============================================================================

        self.ha_enablement_duration = Histogram(
            "ecop_ha_enablement_duration_seconds",
            "Time spent enabling high availability",
            labelnames=["installation", "result"],
            buckets=[10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
            registry=registry,
        )

        self.ha_enablement_total = Counter(
            "ecop_ha_enablement_total",
            "Total number of high availability enablement attempts",
            labelnames=["installation", "result"],
            registry=registry,
        )

        self.migration_progress = Gauge(
            "ecop_registry_migration_progress_percent",
            "Percentage of registry files copied to the object store",
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(self, installation_name: str, trigger_source: str) -> Optional[Dict[str, Any]]:
        """Record reconcile start time."""
        return {
            "start_time": time.time(),
            "trigger_source": trigger_source,
        }

    def on_reconcile_complete(
        self,
        installation_name: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconcile duration and result."""
        if not state:
            return
        duration = time.time() - state["start_time"]
        result = "success" if success else "failure"
        labels = dict(
            installation=installation_name,
            trigger_source=state["trigger_source"],
            result=result,
        )
        self.reconcile_duration.labels(**labels).observe(duration)
        self.reconcile_total.labels(**labels).inc()
        if error:
            self.reconcile_errors.labels(
                installation=installation_name,
                error_type=error.__class__.__name__,
            ).inc()

    def on_reconcile_queued(self, installation_name: str, queue_depth: int) -> None:
        self.reconcile_queue_depth.labels(installation=installation_name).set(queue_depth)

    def on_reconcile_dequeued(self, installation_name: str, wait_time: float) -> None:
        self.reconcile_queue_wait_seconds.labels(installation=installation_name).observe(wait_time)
        self.reconcile_queue_depth.labels(installation=installation_name).dec()

    # =============================================================================
    # Installation State Hooks
    # =============================================================================

    def on_state_transition(self, installation_name: str, from_state: str, to_state: str) -> None:
        self.state_transitions.labels(
            installation=installation_name,
            from_state=from_state or "",
            to_state=to_state or "",
        ).inc()

    def on_node_event(self, installation_name: str, node_name: str, event: str) -> None:
        # node names stay out of the labels to bound cardinality
        self.node_events.labels(installation=installation_name, event=event).inc()

    def on_chart_drift(self, installation_name: str, charts: List[str]) -> None:
        for chart in charts:
            self.chart_drift_detected.labels(installation=installation_name, chart=chart).inc()

    def on_status_conflict(self, installation_name: str) -> None:
        self.status_conflicts.labels(installation=installation_name).inc()

    # =============================================================================
    # High Availability Hooks
    # =============================================================================

    def on_ha_enablement_start(self, installation_name: str) -> Optional[Dict[str, Any]]:
        self.migration_progress.set(0)
        return {"start_time": time.time()}

    def on_ha_enablement_complete(
        self,
        installation_name: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        result = "success" if success else "failure"
        self.ha_enablement_total.labels(installation=installation_name, result=result).inc()
        if state:
            duration = time.time() - state["start_time"]
            self.ha_enablement_duration.labels(
                installation=installation_name, result=result
            ).observe(duration)

    def on_migration_progress(self, percent: int) -> None:
        self.migration_progress.set(percent)
