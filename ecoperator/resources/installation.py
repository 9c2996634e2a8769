"""The Installation reconcile pass."""
import base64
import copy
from typing import Dict, List, Optional
import kopf
import yaml
from kubernetes_asyncio.client import ApiException
from marshmallow import ValidationError
from ecoperator.addons import AddonApplier
from ecoperator.common.models.states import ConditionType, InstallationState
from ecoperator.resources.base import BaseResource
from ecoperator.resources.charts import ChartReconciler
from ecoperator.resources.nodes import NodeEventsBatch, NodeStatusTracker
from ecoperator.resources.openebs import StaleVolumeCleaner
from ecoperator.resources.registry import RegistryStorage
from ecoperator.resources.release import ReleaseResolver
from ecoperator.resources.store import InstallationStore, sort_installations
from ecoperator.resources.upgrade import UpgradeOrchestrator
from ecoperator.types.models import InstallationRecord, InstallationStatus
from ecoperator.types.schemas import ConfigSpecSchema
from ecoperator.utils.errors import MetadataError, ReconcileError, StatusConflictError
from ecoperator.utils.helpers import condition_status, upsert_condition
from ecoperator.utils.objects import cached_property

CONFIG_SECRET_KEY = "config.yaml"
OBSOLETE_REASON = "This is not the most recent installation object"

UPGRADE_STARTED = "UpgradeStarted"
UPGRADE_SUCCEEDED = "UpgradeSucceeded"
UPGRADE_FAILED = "UpgradeFailed"

NODE_EVENT_MESSAGES = {
    "NodeAdded": "Node {} has been added",
    "NodeUpdated": "Node {} has been updated",
    "NodeRemoved": "Node {} has been removed",
}


def coalesce_installations(records: List[InstallationRecord]) -> InstallationRecord:
    """Pick the authoritative installation.

    The newest record wins. When it has not tracked any node yet it inherits
    the node statuses of the newest older record that has.
    """
    records = sort_installations(records)
    newest = records[0]
    if len(records) == 1 or newest.status.nodes_status:
        return newest
    for older in records[1:]:
        if older.status.nodes_status:
            newest.status.nodes_status = copy.deepcopy(older.status.nodes_status)
            break
    return newest


def normalize_version(version: Optional[str]) -> str:
    if not version:
        return ""
    return version if version.startswith("v") else f"v{version}"


def high_availability_condition(record: InstallationRecord) -> Dict:
    spec = record.spec
    ready = bool(spec.high_availability) and (
        not spec.air_gap
        or condition_status(record.status.conditions, ConditionType.REGISTRY_MIGRATION) == "True"
    )
    if ready:
        return {
            "type": ConditionType.HIGH_AVAILABILITY,
            "status": "True",
            "reason": "HighAvailabilityReady",
            "message": "High availability is enabled",
        }
    return {
        "type": ConditionType.HIGH_AVAILABILITY,
        "status": "False",
        "reason": "HighAvailabilityNotReady",
        "message": "High availability is not enabled",
    }


def installation_event(before: InstallationStatus, record: InstallationRecord) -> Optional[tuple]:
    """The upgrade event to report for a state change, None when there is nothing to report."""
    after = record.status
    if not before.state or before.state == after.state:
        return None
    if after.state == InstallationState.INSTALLING:
        return UPGRADE_STARTED, {"clusterID": record.spec.cluster_id, "version": record.version}
    if after.state == InstallationState.INSTALLED:
        return UPGRADE_SUCCEEDED, {"clusterID": record.spec.cluster_id}
    if after.state == InstallationState.FAILED:
        return UPGRADE_FAILED, {"clusterID": record.spec.cluster_id, "reason": after.reason}
    return None


class InstallationController(BaseResource):
    """Drives the authoritative Installation towards its desired state.

    This is the only component that persists Installation status.
    """

    @cached_property
    def store(self) -> InstallationStore:
        return InstallationStore()

    @cached_property
    def nodes(self) -> NodeStatusTracker:
        return NodeStatusTracker()

    @cached_property
    def upgrade(self) -> UpgradeOrchestrator:
        return UpgradeOrchestrator()

    @cached_property
    def charts(self) -> ChartReconciler:
        return ChartReconciler()

    @cached_property
    def release(self) -> ReleaseResolver:
        return ReleaseResolver()

    @cached_property
    def registry(self) -> RegistryStorage:
        return RegistryStorage()

    @cached_property
    def volumes(self) -> StaleVolumeCleaner:
        return StaleVolumeCleaner()

    def post_event(self, record: InstallationRecord, type_: str, reason: str, message: str) -> None:
        kopf.event(record.body, type=type_, reason=reason, message=message)

    @staticmethod
    def active_installations(records: List[InstallationRecord]) -> List[InstallationRecord]:
        return [r for r in records if r.status.state != InstallationState.OBSOLETE]

    async def load_config_secret(self, record: InstallationRecord) -> None:
        """Replace ``spec.config`` with the configuration kept in the referenced secret."""
        ref = record.spec.config_secret
        if ref is None:
            return
        try:
            secret = await self.fetch_secret(ref.name, ref.namespace)
        except ApiException as e:
            raise ReconcileError(f"failed to get config secret: {e.reason}") from e
        if secret is None:
            raise ReconcileError(f"failed to get config secret: {ref.namespace}/{ref.name} not found")
        data = (secret.data or {}).get(CONFIG_SECRET_KEY)
        if data is None:
            raise ReconcileError(f"failed to parse config spec from secret: {CONFIG_SECRET_KEY} not found")
        try:
            document = yaml.safe_load(base64.b64decode(data).decode()) or {}
            record.spec.config = ConfigSpecSchema().load(document.get("spec") or {})
        except (yaml.YAMLError, ValidationError, ValueError, AttributeError) as e:
            raise ReconcileError(f"failed to parse config spec from secret: {e}") from e

    def stale_binary(self, record: InstallationRecord) -> bool:
        running = self.conf.operator_version
        if not running or not record.version:
            return False
        return normalize_version(running) != normalize_version(record.version)

    async def persist(self, record: InstallationRecord) -> None:
        updated = await self.store.update_status(record)
        record.resource_version = updated.resource_version
        record.body = updated.body

    async def disable_old(self, records: List[InstallationRecord], current: InstallationRecord) -> None:
        """Mark every other active installation obsolete. Failures are retried next pass."""
        for record in records:
            if record.name == current.name:
                continue
            record.status.nodes_status = []
            record.status.set_state(InstallationState.OBSOLETE, OBSOLETE_REASON)
            try:
                await self.store.update_status(record)
            except (ApiException, ReconcileError) as e:
                self.logger.warning(f"Failed to mark {record.name} obsolete: {e}")

    async def reconcile_charts(self, record: InstallationRecord) -> None:
        status = record.status
        if not record.version:
            if status.state == InstallationState.KUBERNETES_INSTALLED:
                status.set_state(InstallationState.INSTALLED, "Installed")
            return
        if status.state in (InstallationState.FAILED, InstallationState.INSTALLED):
            self.logger.info(f"Skipping chart reconciliation of {record.name} in state {status.state}")
            return

        try:
            meta = await self.release.metadata_for(record.spec, record.version)
        except MetadataError as e:
            status.set_state(InstallationState.HELM_CHART_UPDATE_FAILURE, str(e))
            return
        if not meta.configs.charts:
            self.logger.info(f"Release {record.version} ships no addons")
            if status.state == InstallationState.KUBERNETES_INSTALLED:
                status.set_state(InstallationState.INSTALLED, "Installed")
            return

        applier = AddonApplier(record, meta)
        await self.charts.reconcile(
            record.name,
            record.spec,
            status,
            meta,
            applier.charts(),
            lambda type_, reason, message: self.post_event(record, type_, reason, message),
        )

    async def report_nodes(self, record: InstallationRecord, batch: NodeEventsBatch) -> None:
        for event_name, payload in batch.events():
            self.post_event(
                record, "Normal", event_name, NODE_EVENT_MESSAGES[event_name].format(payload["nodeName"])
            )
        if not record.spec.air_gap:
            await self.nodes.notify(record.spec.metrics_base_url, batch)

    async def report_installation(self, before: InstallationStatus, record: InstallationRecord) -> None:
        if before.state != record.status.state:
            self.sensor.on_state_transition(record.name, before.state, record.status.state)
        if record.spec.air_gap or not record.spec.metrics_base_url or self.web_client is None:
            return
        event = installation_event(before, record)
        if event is None:
            return
        name, payload = event
        try:
            await self.web_client.notify_event(record.spec.metrics_base_url, name, payload)
        except Exception as e:
            self.logger.error(f"Failed to notify {name} for {record.name}: {e}")

    async def finish(
        self,
        records: List[InstallationRecord],
        record: InstallationRecord,
        before: InstallationStatus,
        batch: NodeEventsBatch,
    ) -> None:
        await self.persist(record)
        await self.disable_old(records, record)
        await self.report_nodes(record, batch)
        await self.report_installation(before, record)

    async def reconcile(self) -> Optional[InstallationRecord]:
        """Run one pass and return the authoritative installation, if any."""
        # obsolete records still count as history for the upgrade decision
        installations = await self.store.list_installations()
        records = self.active_installations(installations)
        if not records:
            self.logger.info("No active installations found")
            return None
        record = coalesce_installations(records)

        if not record.spec.cluster_id:
            self.logger.info(f"Installation {record.name} has no cluster id, nothing to do")
            return record

        try:
            await self.load_config_secret(record)
        except ReconcileError as e:
            record.status.set_state(InstallationState.FAILED, str(e))
            await self.persist(record)
            await self.disable_old(records, record)
            raise

        if self.stale_binary(record):
            self.logger.info(
                f"Operator {self.conf.operator_version} does not match desired version "
                f"{record.version}, skipping reconcile of {record.name}"
            )
            return record

        before = copy.deepcopy(record.status)
        try:
            batch = await self.nodes.reconcile(
                record.name, record.status, record.spec.cluster_id, record.version
            )
            await self.upgrade.reconcile(record, installations)

            if record.status.kubernetes_installed:
                live = {node.name for node in record.status.nodes_status or []}
                removed = await self.volumes.cleanup(live)
                if removed:
                    self.logger.info(f"Removed {removed} stale local volume claims")
                await self.registry.reconcile(record)
                await self.reconcile_charts(record)
                record.status.conditions = upsert_condition(
                    record.status.conditions, high_availability_condition(record)
                )

            await self.finish(records, record, before, batch)
        except StatusConflictError as e:
            self.logger.info(f"{e}, the next pass picks up the latest object")
        return record
