"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring operator events. All hooks are no-ops by default, allowing
subclasses to override only the events they care about.

Hooks come in pairs where an operation has a duration: ``on_X_start()`` returns
an optional state dict that is handed back to ``on_X_complete()``.
"""

from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for Installation reconciliation monitoring.

    Hooks cover four areas:
    1. Reconciliation lifecycle (pass duration, queueing)
    2. Installation state machine (transitions, node events, chart drift)
    3. Write conflicts on the Installation status
    4. High availability enablement and registry data migration

    Example:
        class LoggingSensor(OperatorSensor):
            def on_state_transition(self, name, from_state, to_state):
                logger.info(f"{name}: {from_state} -> {to_state}")
    """

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        installation_name: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a reconcile pass begins.

        Args:
            installation_name: Name of the Installation being reconciled
            trigger_source: What triggered the pass (create, update, resume, timer, node, plan, chart)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        installation_name: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconcile pass completes.

        Args:
            installation_name: Name of the Installation being reconciled
            state: State dict returned from on_reconcile_start
            success: Whether the pass succeeded
            error: Exception if the pass failed
        """
        pass

    def on_reconcile_queued(self, installation_name: str, queue_depth: int) -> None:
        """Called when a reconcile request is queued."""
        pass

    def on_reconcile_dequeued(self, installation_name: str, wait_time: float) -> None:
        """Called when a reconcile request is taken off the queue."""
        pass

    # =============================================================================
    # Installation State Hooks
    # =============================================================================

    def on_state_transition(
        self,
        installation_name: str,
        from_state: str,
        to_state: str,
    ) -> None:
        """Called when the Installation lifecycle state changes within a pass."""
        pass

    def on_node_event(
        self,
        installation_name: str,
        node_name: str,
        event: str,
    ) -> None:
        """Called for every node added, updated or removed.

        Args:
            installation_name: Name of the Installation
            node_name: Name of the node
            event: One of "added", "updated", "removed"
        """
        pass

    def on_chart_drift(self, installation_name: str, charts: List[str]) -> None:
        """Called when the desired charts differ from the cluster config."""
        pass

    def on_status_conflict(self, installation_name: str) -> None:
        """Called when an Installation status write lost an optimistic concurrency race."""
        pass

    # =============================================================================
    # High Availability Hooks
    # =============================================================================

    def on_ha_enablement_start(self, installation_name: str) -> Optional[Dict[str, Any]]:
        """Called when high availability enablement begins."""
        pass

    def on_ha_enablement_complete(
        self,
        installation_name: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when high availability enablement completes or fails."""
        pass

    def on_migration_progress(self, percent: int) -> None:
        """Called when registry data migration reaches a new percentage."""
        pass
