"""Unit tests for the sensor fan-out and the Prometheus backend."""

from unittest.mock import Mock
from prometheus_client import CollectorRegistry
from ecoperator.sensors import OperatorSensor, PrometheusMonitor, SensorDelegate


class TestSensorDelegate:
    def test_events_reach_every_sensor(self):
        first, second = Mock(spec=OperatorSensor), Mock(spec=OperatorSensor)
        delegate = SensorDelegate()
        delegate.add(first)
        delegate.add(second)
        delegate.on_state_transition("inst", "Installing", "KubernetesInstalled")
        first.on_state_transition.assert_called_once_with("inst", "Installing", "KubernetesInstalled")
        second.on_state_transition.assert_called_once_with("inst", "Installing", "KubernetesInstalled")

    def test_failing_sensor_does_not_affect_others(self):
        broken, healthy = Mock(spec=OperatorSensor), Mock(spec=OperatorSensor)
        broken.on_node_event.side_effect = RuntimeError("boom")
        delegate = SensorDelegate()
        delegate.add(broken)
        delegate.add(healthy)
        delegate.on_node_event("inst", "node-a", "added")
        healthy.on_node_event.assert_called_once_with("inst", "node-a", "added")

    def test_start_state_is_routed_back_per_sensor(self):
        sensor = Mock(spec=OperatorSensor)
        sensor.on_reconcile_start.return_value = {"token": 1}
        delegate = SensorDelegate()
        delegate.add(sensor)
        state = delegate.on_reconcile_start("inst", "queue")
        delegate.on_reconcile_complete("inst", state, True, None)
        sensor.on_reconcile_complete.assert_called_once_with("inst", {"token": 1}, True, None)

    def test_no_sensors(self):
        assert SensorDelegate().on_reconcile_start("inst", "queue") is None


class TestPrometheusMonitor:
    def test_state_transitions_are_counted(self):
        registry = CollectorRegistry()
        monitor = PrometheusMonitor(registry=registry)
        monitor.on_state_transition("inst", "Installing", "KubernetesInstalled")
        value = registry.get_sample_value(
            "ecop_installation_state_transitions_total",
            {"installation": "inst", "from_state": "Installing", "to_state": "KubernetesInstalled"},
        )
        assert value == 1.0

    def test_migration_progress(self):
        registry = CollectorRegistry()
        monitor = PrometheusMonitor(registry=registry)
        monitor.on_migration_progress(60)
        assert registry.get_sample_value("ecop_registry_migration_progress_percent") == 60.0
