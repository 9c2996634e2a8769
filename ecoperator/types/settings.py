import os
from typing import Any, Optional

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Seconds between reconciles of an Installation when nothing triggers one
RECONCILE_REQUEUE_SECONDS = float(_getenv("RECONCILE_REQUEUE_SECONDS", 3600))

#: Seconds between polls while waiting on an upgrade plan or a chart to settle
PLAN_POLL_INTERVAL_SECONDS = float(_getenv("PLAN_POLL_INTERVAL_SECONDS", 5))

#: Maximum length of the aggregated chart error kept as the Installation reason
CHART_ERROR_MAX_LENGTH = int(_getenv("CHART_ERROR_MAX_LENGTH", 1024))

#: Seconds to wait for an addon chart to report the desired version and values
CHART_READY_TIMEOUT_SECONDS = float(_getenv("CHART_READY_TIMEOUT_SECONDS", 600))

#: Number of stream chunks buffered between the registry reader and the uploader
MIGRATION_PIPE_MAXSIZE = int(_getenv("MIGRATION_PIPE_MAXSIZE", 16))

#: Seconds between rqlite readiness polls during HA enablement
HA_POLL_INTERVAL_SECONDS = float(_getenv("HA_POLL_INTERVAL_SECONDS", 5))

#: Number of rqlite readiness polls before giving up
HA_POLL_STEPS = int(_getenv("HA_POLL_STEPS", 60))

#: Version of the running operator binary, reconciles stop when it differs from the desired version
OPERATOR_VERSION = _getenv("OPERATOR_VERSION", None)

#: Address the local artifact server listens on during airgap upgrades
K0S_UPGRADE_LOCAL_ADDRESS = _getenv("K0S_UPGRADE_LOCAL_ADDRESS", "127.0.0.1:50000")

#: Image used by the artifact copy jobs
UTILS_IMAGE = _getenv("EMBEDDEDCLUSTER_UTILS_IMAGE", None)

#: Port of the Prometheus metrics endpoint
METRICS_PORT = int(_getenv("METRICS_PORT", 8000))


class Settings:
    """Operator settings"""

    reconcile_requeue_seconds: float = RECONCILE_REQUEUE_SECONDS
    plan_poll_interval_seconds: float = PLAN_POLL_INTERVAL_SECONDS
    chart_error_max_length: int = CHART_ERROR_MAX_LENGTH
    chart_ready_timeout_seconds: float = CHART_READY_TIMEOUT_SECONDS
    migration_pipe_maxsize: int = MIGRATION_PIPE_MAXSIZE
    ha_poll_interval_seconds: float = HA_POLL_INTERVAL_SECONDS
    ha_poll_steps: int = HA_POLL_STEPS
    operator_version: Optional[str] = OPERATOR_VERSION
    k0s_upgrade_local_address: str = K0S_UPGRADE_LOCAL_ADDRESS
    utils_image: Optional[str] = UTILS_IMAGE
    metrics_port: int = METRICS_PORT

    def __init__(
        self,
        *args,
        reconcile_requeue_seconds: float = None,
        plan_poll_interval_seconds: float = None,
        chart_error_max_length: int = None,
        chart_ready_timeout_seconds: float = None,
        migration_pipe_maxsize: int = None,
        ha_poll_interval_seconds: float = None,
        ha_poll_steps: int = None,
        operator_version: str = None,
        k0s_upgrade_local_address: str = None,
        utils_image: str = None,
        metrics_port: int = None,
        **kwargs,
    ):
        if reconcile_requeue_seconds is not None:
            self.reconcile_requeue_seconds = reconcile_requeue_seconds

        if plan_poll_interval_seconds is not None:
            self.plan_poll_interval_seconds = plan_poll_interval_seconds

        if chart_error_max_length is not None:
            self.chart_error_max_length = chart_error_max_length

        if chart_ready_timeout_seconds is not None:
            self.chart_ready_timeout_seconds = chart_ready_timeout_seconds

        if migration_pipe_maxsize is not None:
            self.migration_pipe_maxsize = migration_pipe_maxsize

        if ha_poll_interval_seconds is not None:
            self.ha_poll_interval_seconds = ha_poll_interval_seconds

        if ha_poll_steps is not None:
            self.ha_poll_steps = ha_poll_steps

        if operator_version is not None:
            self.operator_version = operator_version

        if k0s_upgrade_local_address is not None:
            self.k0s_upgrade_local_address = k0s_upgrade_local_address

        if utils_image is not None:
            self.utils_image = utils_image

        if metrics_port is not None:
            self.metrics_port = metrics_port
