"""Turning a cluster highly available once it has three controllers."""
import asyncio
from typing import List, Tuple
from kubernetes_asyncio.client import V1Node
from ecoperator.addons import AddonApplier, AddonOptions, AdminConsole, Registry, SeaweedFS
from ecoperator.common.models.labels import Labels
from ecoperator.common.models.states import ConditionType, MigrationReason
from ecoperator.resources.base import BaseResource
from ecoperator.resources.migration import RegistryMigrator
from ecoperator.resources.registry import (
    REGISTRY_DEPLOYMENT,
    REGISTRY_NAMESPACE,
    RegistryStorage,
    seaweedfs_s3_endpoint,
)
from ecoperator.resources.release import EMBEDDED_CLUSTER_NAMESPACE, ReleaseResolver
from ecoperator.resources.store import InstallationStore
from ecoperator.types.models import InstallationRecord
from ecoperator.utils.errors import HAPreconditionError, MigrationError
from ecoperator.utils.helpers import upsert_condition
from ecoperator.utils.objects import cached_property

RESTORE_STATE_CONFIG_MAP = "disaster-recovery-restore-state"
MIN_CONTROLLERS = 3

RQLITE_NAMESPACE = "kotsadm"
RQLITE_STATEFUL_SET = "kotsadm-rqlite"
RQLITE_APP_LABEL = "kotsadm-rqlite"


def control_plane_count(nodes: List[V1Node]) -> int:
    return sum(1 for node in nodes if Labels.CONTROL_PLANE_LABEL in (node.metadata.labels or {}))


def can_enable_ha(
    record: InstallationRecord, nodes: List[V1Node], restore_in_progress: bool
) -> Tuple[bool, str]:
    """Check the preconditions for enabling high availability, with the reason when refused."""
    if record.spec.high_availability:
        return False, "already enabled"
    if restore_in_progress:
        return False, "a restore is in progress"
    if control_plane_count(nodes) < MIN_CONTROLLERS:
        return False, "number of control plane nodes is less than 3"
    return True, ""


class HighAvailabilityCoordinator(BaseResource):
    """Moves an Installation from a single controller to a highly available setup.

    Every step is safe to run again: chart upserts of an unchanged chart are
    no-ops and the registry copy re-uploads into the same bucket.
    """

    @cached_property
    def store(self) -> InstallationStore:
        return InstallationStore()

    @cached_property
    def release(self) -> ReleaseResolver:
        return ReleaseResolver()

    @cached_property
    def storage(self) -> RegistryStorage:
        return RegistryStorage()

    @cached_property
    def migrator(self) -> RegistryMigrator:
        return RegistryMigrator()

    async def restore_in_progress(self) -> bool:
        config_map = await self.fetch_config_map(RESTORE_STATE_CONFIG_MAP, EMBEDDED_CLUSTER_NAMESPACE)
        return config_map is not None

    async def check(self, record: InstallationRecord) -> Tuple[bool, str]:
        return can_enable_ha(record, await self.list_nodes(), await self.restore_in_progress())

    async def scale_registry_back(self) -> None:
        """Bring the registry back after a failed switch to high availability unless something already did."""
        try:
            deployment = await self.fetch_deployment(REGISTRY_DEPLOYMENT, REGISTRY_NAMESPACE)
            if deployment is None or (deployment.spec.replicas or 0) > 0:
                return
            self.logger.info("Scaling registry back to 1 replica after a failed high availability switch")
            await self.scale_deployment(REGISTRY_DEPLOYMENT, REGISTRY_NAMESPACE, 1)
        except Exception as e:
            self.logger.error(f"Failed to scale registry back to 1 replica: {e}")

    async def set_migration_condition(self, record: InstallationRecord, reason: str, message: str) -> None:
        status = "True" if reason == MigrationReason.COMPLETED else "False"
        record.status.conditions = upsert_condition(
            record.status.conditions,
            {
                "type": ConditionType.REGISTRY_MIGRATION,
                "status": status,
                "reason": reason,
                "message": message,
            },
        )
        updated = await self.store.update_status(record)
        record.resource_version = updated.resource_version
        record.body = updated.body

    async def migrate_registry(self, record: InstallationRecord, applier: AddonApplier) -> None:
        await applier.install(SeaweedFS.name)

        # the registry stays down from here until its highly available chart is in place
        try:
            await self.scale_deployment(REGISTRY_DEPLOYMENT, REGISTRY_NAMESPACE, 0)
            try:
                endpoint = seaweedfs_s3_endpoint(applier.options.service_cidr)
                await self.migrator.migrate(endpoint, self.report_progress)
            except Exception as e:
                await self.set_migration_condition(record, MigrationReason.FAILED, str(e))
                raise MigrationError(f"failed to migrate registry data: {e}") from e

            await self.storage.mark_migration_completed()
            await self.set_migration_condition(
                record, MigrationReason.COMPLETED, "Registry data migration completed"
            )
            await applier.install(Registry.name)
        except Exception:
            await self.scale_registry_back()
            raise

    def report_progress(self, percent: int) -> None:
        self.logger.info(f"Migrating data for high availability ({percent}%)")
        self.sensor.on_migration_progress(percent)

    async def rqlite_ready(self) -> bool:
        stateful_set = await self.fetch_stateful_set(RQLITE_STATEFUL_SET, RQLITE_NAMESPACE)
        if stateful_set is None or stateful_set.status is None:
            return False
        desired = stateful_set.spec.replicas or 0
        if (stateful_set.status.ready_replicas or 0) < desired:
            return False
        pods = await self.list_pods(RQLITE_NAMESPACE, {"app": RQLITE_APP_LABEL})
        if len(pods) < desired:
            return False
        for pod in pods:
            pod_ip = pod.status.pod_ip if pod.status is not None else None
            if not pod_ip or not await self.web_client.rqlite_synced(pod_ip):
                return False
        return True

    async def wait_for_rqlite(self) -> None:
        for _ in range(self.conf.ha_poll_steps):
            if await self.rqlite_ready():
                return
            await asyncio.sleep(self.conf.ha_poll_interval_seconds)
        raise HAPreconditionError("timed out waiting for rqlite to become highly available")

    async def enable(self, record: InstallationRecord) -> None:
        """Enable high availability for ``record``.

        Raises HAPreconditionError when the cluster does not qualify and
        MigrationError when the registry data could not be moved.
        """
        ok, reason = await self.check(record)
        if not ok:
            raise HAPreconditionError(reason)

        meta = await self.release.metadata_for(record.spec, record.version)
        applier = AddonApplier(
            record, meta, AddonOptions.from_record(record, high_availability=True)
        )

        if record.spec.air_gap and not await self.storage.migration_completed():
            await self.migrate_registry(record, applier)

        self.logger.info(f"Updating the admin console of {record.name} for high availability")
        await applier.upgrade(AdminConsole.name)
        await self.wait_for_rqlite()

        latest = await self.store.latest()
        await self.store.set_high_availability(latest or record)
        self.logger.info(f"High availability enabled for {record.name}")
