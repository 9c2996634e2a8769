"""HTTP server for exposing Prometheus metrics.

Serves /metrics with prometheus_client's built-in HTTP server on a daemon
thread so the operator event loop is never blocked.
"""

import logging
from threading import Thread
from typing import Optional
from prometheus_client import start_http_server

from ecoperator.types.settings import METRICS_PORT

logger = logging.getLogger(__name__)


def start_metrics_server(port: int = METRICS_PORT) -> None:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on
    """
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except OSError as e:
        logger.error(f"Failed to start metrics server on port {port}: {e}")
        raise


def init_metrics_server(port: Optional[int] = None) -> None:
    """Start the metrics server in a daemon thread."""
    port = METRICS_PORT if port is None else port
    thread = Thread(target=start_metrics_server, args=(port,), daemon=True)
    thread.start()
    logger.info(f"Metrics server initialization complete (port: {port})")
