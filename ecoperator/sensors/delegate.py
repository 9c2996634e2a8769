"""Sensor delegation for fan-out pattern.

SensorDelegate routes every sensor event to a set of monitoring backends.
Each backend receives the same events and keeps independent state; a
failing backend is logged and never affects the others or the caller.
"""

from typing import Any, Dict, List, Optional, Set
import logging

from ecoperator.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("installation-1", "timer")
        delegate.on_reconcile_complete("installation-1", state, True)
    """

    def __init__(self) -> None:
        """Initialize empty sensor delegate."""
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def _fan_out(self, hook: str, *args: Any) -> None:
        for sensor in self._sensors:
            try:
                getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    def _fan_out_start(self, hook: str, *args: Any) -> Optional[Dict[OperatorSensor, Any]]:
        if not self._sensors:
            return None
        states = {}
        for sensor in self._sensors:
            try:
                state = getattr(sensor, hook)(*args)
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )
        return states if states else None

    def _fan_out_complete(
        self,
        hook: str,
        name: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception],
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                getattr(sensor, hook)(name, sensor_state, success, error)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        installation_name: str,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        return self._fan_out_start("on_reconcile_start", installation_name, trigger_source)

    def on_reconcile_complete(
        self,
        installation_name: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._fan_out_complete("on_reconcile_complete", installation_name, state, success, error)

    def on_reconcile_queued(self, installation_name: str, queue_depth: int) -> None:
        self._fan_out("on_reconcile_queued", installation_name, queue_depth)

    def on_reconcile_dequeued(self, installation_name: str, wait_time: float) -> None:
        self._fan_out("on_reconcile_dequeued", installation_name, wait_time)

    # =============================================================================
    # Installation State Hooks
    # =============================================================================

    def on_state_transition(self, installation_name: str, from_state: str, to_state: str) -> None:
        self._fan_out("on_state_transition", installation_name, from_state, to_state)

    def on_node_event(self, installation_name: str, node_name: str, event: str) -> None:
        self._fan_out("on_node_event", installation_name, node_name, event)

    def on_chart_drift(self, installation_name: str, charts: List[str]) -> None:
        self._fan_out("on_chart_drift", installation_name, charts)

    def on_status_conflict(self, installation_name: str) -> None:
        self._fan_out("on_status_conflict", installation_name)

    # =============================================================================
    # High Availability Hooks
    # =============================================================================

    def on_ha_enablement_start(self, installation_name: str) -> Optional[Dict[OperatorSensor, Any]]:
        return self._fan_out_start("on_ha_enablement_start", installation_name)

    def on_ha_enablement_complete(
        self,
        installation_name: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._fan_out_complete("on_ha_enablement_complete", installation_name, state, success, error)

    def on_migration_progress(self, percent: int) -> None:
        self._fan_out("on_migration_progress", percent)
