import kopf
import logging
import ecoperator.handlers.installation as installation
import ecoperator.handlers.highavailability as highavailability
from ecoperator.types.settings import Settings
from ecoperator.resources.base import BaseResource
from ecoperator.web import MetricsWebClient
from ecoperator.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


# Configure Kopf settings
@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # In-cluster config first, local kubeconfig when running outside the cluster
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        logger.info("In-cluster config not found, trying local kubeconfig")
        try:
            await config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    memo.conf = Settings()
    BaseResource.conf = memo.conf
    BaseResource.web_client = MetricsWebClient()

    # One ApiClient shared by every resource
    BaseResource.shared_api_client = ApiClient()
    logger.info("Shared Kubernetes API client initialized")

    sensor_delegate = SensorDelegate()
    sensor_delegate.add(PrometheusMonitor())
    memo.sensor = sensor_delegate
    BaseResource.sensor = sensor_delegate
    logger.info("Sensor infrastructure initialized with PrometheusMonitor")

    try:
        init_metrics_server(memo.conf.metrics_port)
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        logger.warning("Continuing without metrics server")

    if not memo.conf.operator_version:
        logger.warning(
            "OPERATOR_VERSION is not set, installations requesting a different "
            "operator version will not be detected."
        )

    # Reconcile passes are serialized anyway, keep API load low
    settings.batching.worker_limit = 2

    # Only post events to the Kubernetes API for logging >= Warning
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING


@kopf.on.cleanup()
async def cleanup(logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    if BaseResource.shared_api_client:
        await BaseResource.shared_api_client.close()
        logger.info("Shared API client closed")

    if BaseResource.web_client:
        await BaseResource.web_client.close()
        logger.info("Web client closed")

    logger.info("Operator shutdown complete")


__all__ = [
    "installation",
    "highavailability",
]
