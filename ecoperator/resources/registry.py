import base64
import json
from typing import Optional, Tuple
from kubernetes_asyncio.client import V1ObjectMeta, V1Secret
from ecoperator.common.models.labels import Labels
from ecoperator.common.models.states import ConditionType, MigrationReason
from ecoperator.resources.base import BaseResource
from ecoperator.resources.charts import ChartReconciler
from ecoperator.types.models import InstallationRecord
from ecoperator.utils.helpers import condition_status, lower_band_ip, upsert_condition
from ecoperator.utils.objects import cached_property

REGISTRY_NAMESPACE = "registry"
REGISTRY_DEPLOYMENT = "registry"
MIGRATION_COMPLETE_SECRET = "registry-data-migration-complete"

SEAWEEDFS_NAMESPACE = "seaweedfs"
SEAWEEDFS_RELEASE = "seaweedfs"
SEAWEEDFS_S3_SECRET = "secret-seaweedfs-s3"
SEAWEEDFS_S3_CONFIG_KEY = "seaweedfs_s3_config"
SEAWEEDFS_ADMIN_IDENTITY = "anvAdmin"
SEAWEEDFS_S3_PORT = 8333
SEAWEEDFS_S3_SERVICE_IP_INDEX = 11

DEFAULT_SERVICE_CIDR = "10.96.0.0/12"


def service_cidr_for(record: Optional[InstallationRecord]) -> str:
    if record is not None and record.spec.network and record.spec.network.service_cidr:
        return record.spec.network.service_cidr
    return DEFAULT_SERVICE_CIDR


def seaweedfs_s3_endpoint(service_cidr: str) -> str:
    """Address of the seaweedfs s3 service, pinned inside the service CIDR."""
    ip = lower_band_ip(service_cidr or DEFAULT_SERVICE_CIDR, SEAWEEDFS_S3_SERVICE_IP_INDEX)
    return f"{ip}:{SEAWEEDFS_S3_PORT}"


def admin_credentials(s3_config: str) -> Tuple[str, str]:
    config = json.loads(s3_config)
    for identity in config.get("identities") or []:
        if identity.get("name") != SEAWEEDFS_ADMIN_IDENTITY:
            continue
        for cred in identity.get("credentials") or []:
            return cred["accessKey"], cred["secretKey"]
    raise ValueError(f"identity {SEAWEEDFS_ADMIN_IDENTITY} not found in seaweedfs s3 config")


class RegistryStorage(BaseResource):
    """State of the registry data migration into seaweedfs."""

    @cached_property
    def charts(self) -> ChartReconciler:
        return ChartReconciler()

    async def migration_completed(self) -> bool:
        secret = await self.fetch_secret(MIGRATION_COMPLETE_SECRET, REGISTRY_NAMESPACE)
        return secret is not None

    async def mark_migration_completed(self) -> None:
        secret = V1Secret(
            metadata=V1ObjectMeta(
                name=MIGRATION_COMPLETE_SECRET,
                namespace=REGISTRY_NAMESPACE,
                labels={Labels.DISASTER_RECOVERY_LABEL: Labels.DISASTER_RECOVERY_INSTALL},
            ),
            string_data={"migration": "complete"},
        )
        await self.create_secret(REGISTRY_NAMESPACE, secret)

    async def s3_credentials(self) -> Tuple[str, str]:
        secret = await self.fetch_secret(SEAWEEDFS_S3_SECRET, SEAWEEDFS_NAMESPACE)
        if secret is None or SEAWEEDFS_S3_CONFIG_KEY not in (secret.data or {}):
            raise ValueError(f"secret {SEAWEEDFS_NAMESPACE}/{SEAWEEDFS_S3_SECRET} not found")
        return admin_credentials(base64.b64decode(secret.data[SEAWEEDFS_S3_CONFIG_KEY]).decode())

    async def seaweedfs_healthy(self) -> bool:
        for chart in await self.charts.list_installed_charts():
            if chart.release_name != SEAWEEDFS_RELEASE:
                continue
            return not chart.status_error and bool(chart.status_version)
        return False

    async def reconcile(self, record: InstallationRecord) -> None:
        """Keep the registry migration condition of an airgap HA installation current."""
        if not (record.spec.air_gap and record.spec.high_availability):
            return
        status = record.status
        if condition_status(status.conditions, ConditionType.REGISTRY_MIGRATION) == "True":
            return

        if await self.migration_completed():
            cond = {
                "type": ConditionType.REGISTRY_MIGRATION,
                "status": "True",
                "reason": MigrationReason.COMPLETED,
                "message": "Registry data migration completed",
            }
        elif not await self.seaweedfs_healthy():
            cond = {
                "type": ConditionType.REGISTRY_MIGRATION,
                "status": "False",
                "reason": MigrationReason.SEAWEED_NOT_DEPLOYED,
                "message": "Seaweedfs chart is not deployed",
            }
        else:
            cond = {
                "type": ConditionType.REGISTRY_MIGRATION,
                "status": "False",
                "reason": MigrationReason.IN_PROGRESS,
                "message": "Registry data migration has not completed",
            }
        status.conditions = upsert_condition(status.conditions, cond)
