"""Operator sensor framework.

Hook based instrumentation of reconcile passes, Installation state changes and
high availability enablement.

Key components:
- OperatorSensor: Base class defining no-op lifecycle hooks
- SensorDelegate: Fan-out of every hook to multiple sensor backends
- PrometheusMonitor: Prometheus metrics exporter

Usage:
    from ecoperator.sensors import SensorDelegate, PrometheusMonitor

    delegate = SensorDelegate()
    delegate.add(PrometheusMonitor())
"""

from ecoperator.sensors.base import OperatorSensor
from ecoperator.sensors.delegate import SensorDelegate
from ecoperator.sensors.prometheus import PrometheusMonitor
from ecoperator.sensors.server import init_metrics_server

__all__ = [
    "OperatorSensor",
    "SensorDelegate",
    "PrometheusMonitor",
    "init_metrics_server",
]
