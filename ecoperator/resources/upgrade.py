"""Runtime version upgrades driven through the k0s autopilot Plan."""
import asyncio
import uuid
from typing import Dict, List, Optional, Tuple
from ecoperator.common.models.labels import Labels
from ecoperator.common.models.states import InstallationState, PlanState
from ecoperator.common.models.version import K0S_SUFFIX, KubeVersion, truncate_k0s_suffix
from ecoperator.resources.artifacts import ArtifactsDistributor
from ecoperator.resources.base import BaseResource
from ecoperator.resources.release import ReleaseResolver
from ecoperator.types.models import InstallationRecord, InstallationStatus, ReleaseMetadata
from ecoperator.utils.errors import MetadataError
from ecoperator.utils.objects import cached_property
from ecoperator.web.client import MetricsWebClient

PLAN_GROUP = "autopilot.k0sproject.io"
PLAN_VERSION = "v1beta2"
PLAN_PLURAL = "plans"
PLAN_NAME = "autopilot"
PLAN_PLATFORM = "linux-amd64"


def plan_state(plan: Dict) -> str:
    return (plan.get("status") or {}).get("state") or PlanState.EMPTY


def plan_has_ended(plan: Dict) -> bool:
    return plan_state(plan) in PlanState.ENDED


def plan_belongs_to(plan: Dict, installation_name: str) -> bool:
    annotations = (plan.get("metadata") or {}).get("annotations") or {}
    if annotations.get(Labels.INSTALLATION_NAME_ANNOTATION) == installation_name:
        return True
    return (plan.get("spec") or {}).get("id") == installation_name


def plan_updates_to(plan: Dict, k0s_version: str) -> bool:
    """Whether the plan carries a k0s update command for the given version."""
    for command in (plan.get("spec") or {}).get("commands") or []:
        update = command.get("k0supdate")
        if update and update.get("version") == k0s_version:
            return True
    return False


def plan_reason(plan: Dict) -> str:
    """Summarise why a plan ended up in a failure state."""
    state = plan_state(plan)
    if state not in PlanState.FAILURES:
        return ""
    failing = []
    for command in (plan.get("status") or {}).get("commands") or []:
        for key in ("k0supdate", "airgapupdate"):
            update = command.get(key) or {}
            for group in ("controllers", "workers"):
                for target in update.get(group) or []:
                    target_state = target.get("state")
                    if target_state and target_state != PlanState.COMPLETED:
                        failing.append(f"{target.get('name')}({target_state})")
    reason = f"Upgrade plan failed with state {state}"
    if failing:
        reason = f"{reason}: {', '.join(failing)}"
    return reason


def installation_state_for_plan(plan: Dict) -> Tuple[str, str]:
    state = plan_state(plan)
    reason = plan_reason(plan)
    if state == PlanState.EMPTY:
        return InstallationState.ENQUEUED, reason
    if state in PlanState.IN_PROGRESS:
        return InstallationState.INSTALLING, reason
    if state == PlanState.COMPLETED:
        return InstallationState.KUBERNETES_INSTALLED, reason
    if state in PlanState.FAILURES:
        return InstallationState.FAILED, reason
    return InstallationState.FAILED, reason or f"Unexpected plan state {state}"


def static_targets(nodes: List[str]) -> Dict:
    return {"discovery": {"static": {"nodes": nodes}}}


def previous_installation(
    current: InstallationRecord, records: List[InstallationRecord]
) -> Optional[InstallationRecord]:
    """The newest installation created before ``current``."""
    older = [r for r in records if r.name < current.name]
    if not older:
        return None
    return max(older, key=lambda r: r.name)


def mark_kubernetes_installed(status: InstallationStatus, reason: str = "") -> None:
    # later stages of an already converged version must not be reset
    if not status.kubernetes_installed:
        status.set_state(InstallationState.KUBERNETES_INSTALLED, reason)


class UpgradeOrchestrator(BaseResource):
    """Moves the cluster runtime to the version an Installation asks for."""

    @cached_property
    def release(self) -> ReleaseResolver:
        return ReleaseResolver()

    @cached_property
    def artifacts(self) -> ArtifactsDistributor:
        return ArtifactsDistributor()

    async def fetch_plan(self) -> Optional[Dict]:
        return await self.get_cluster_custom_object(PLAN_GROUP, PLAN_VERSION, PLAN_PLURAL, PLAN_NAME)

    async def delete_plan(self) -> None:
        await self.delete_cluster_custom_object(PLAN_GROUP, PLAN_VERSION, PLAN_PLURAL, PLAN_NAME)

    async def wait_for_plan(self) -> Dict:
        """Poll the plan until it reaches a terminal state. There is no upper bound."""
        while True:
            plan = await self.fetch_plan()
            if plan is not None and plan_has_ended(plan):
                return plan
            await asyncio.sleep(self.conf.plan_poll_interval_seconds)

    async def upgrade_targets(self) -> Tuple[List[str], List[str]]:
        controllers, workers = [], []
        for node in await self.list_nodes():
            labels = node.metadata.labels or {}
            if Labels.CONTROL_PLANE_LABEL in labels:
                controllers.append(node.metadata.name)
            else:
                workers.append(node.metadata.name)
        return controllers, workers

    def k0s_binary_url(self, record: InstallationRecord, meta: ReleaseMetadata) -> str:
        if record.spec.air_gap:
            return f"http://{self.conf.k0s_upgrade_local_address}/bin/k0s-upgrade"
        return MetricsWebClient.k0s_binary_url(record.spec.metrics_base_url, meta.kubernetes_version)

    def build_plan(
        self,
        record: InstallationRecord,
        meta: ReleaseMetadata,
        controllers: List[str],
        workers: List[str],
    ) -> Dict:
        commands = []
        if record.spec.air_gap:
            images_url = (
                f"http://{self.conf.k0s_upgrade_local_address}"
                f"/images/images-amd64-{record.name}.tar"
            )
            commands.append(
                {
                    "airgapupdate": {
                        "version": meta.kubernetes_version,
                        "platforms": {PLAN_PLATFORM: {"url": images_url}},
                        "workers": static_targets(controllers + workers),
                    }
                }
            )
        commands.append(
            {
                "k0supdate": {
                    "version": meta.kubernetes_version,
                    "platforms": {
                        PLAN_PLATFORM: {
                            "url": self.k0s_binary_url(record, meta),
                            "sha256": meta.k0s_sha or "",
                        }
                    },
                    "targets": {
                        "controllers": static_targets(controllers),
                        "workers": static_targets(workers),
                    },
                }
            }
        )
        return {
            "apiVersion": f"{PLAN_GROUP}/{PLAN_VERSION}",
            "kind": "Plan",
            "metadata": {
                "name": PLAN_NAME,
                "annotations": {Labels.INSTALLATION_NAME_ANNOTATION: record.name},
            },
            "spec": {
                "id": str(uuid.uuid4()),
                "timestamp": "now",
                "commands": commands,
            },
        }

    async def upgrade_needed(
        self,
        record: InstallationRecord,
        records: List[InstallationRecord],
        running: KubeVersion,
        desired: KubeVersion,
        meta: ReleaseMetadata,
    ) -> bool:
        """Decide whether the runtime has to change.

        When the truncated versions match, the packaging counter may still
        differ, so the previous installation's release is consulted.
        """
        if running < desired:
            return True
        previous = previous_installation(record, records)
        if previous is None or not previous.version:
            return False
        try:
            previous_meta = await self.release.metadata_for(previous.spec, previous.version)
        except MetadataError as e:
            self.logger.warning(f"Unable to read metadata of {previous.name}, upgrading anyway: {e}")
            return True
        return previous_meta.kubernetes_version != meta.kubernetes_version

    async def start_upgrade(self, record: InstallationRecord, meta: ReleaseMetadata) -> None:
        controllers, workers = await self.upgrade_targets()
        plan = self.build_plan(record, meta, controllers, workers)
        await self.create_cluster_custom_object(PLAN_GROUP, PLAN_VERSION, PLAN_PLURAL, plan)
        self.logger.info(f"Upgrade plan {plan['spec']['id']} created for {record.name}")
        record.status.set_state(InstallationState.ENQUEUED, "")

    async def reconcile(self, record: InstallationRecord, records: List[InstallationRecord]) -> None:
        """Advance the runtime version for ``record``, updating its status in memory.

        ``records`` holds every installation, obsolete ones included.
        """
        status = record.status
        if not record.version or len(records) == 1:
            mark_kubernetes_installed(status)
            return

        if record.spec.air_gap:
            await self.release.stage_metadata(record.name, record.spec)

        try:
            meta = await self.release.metadata_for(record.spec, record.version)
        except MetadataError as e:
            status.set_state(InstallationState.FAILED, str(e))
            return

        git_version = await self.server_version()
        try:
            running = KubeVersion.from_str(truncate_k0s_suffix(git_version))
        except ValueError:
            status.set_state(InstallationState.FAILED, f"Invalid running version {git_version}")
            return

        desired_str = meta.kubernetes_version or ""
        try:
            if K0S_SUFFIX not in desired_str:
                raise ValueError(desired_str)
            desired = KubeVersion.from_str(truncate_k0s_suffix(desired_str))
        except ValueError:
            status.set_state(InstallationState.FAILED, f"Invalid desired version {desired_str}")
            return

        if running > desired:
            status.set_state(InstallationState.FAILED, "Downgrades not supported")
            return

        if record.spec.air_gap:
            if not await self.artifacts.copy_to_nodes(record.name, record.spec, status):
                return

        plan = await self.fetch_plan()
        if plan is None:
            if await self.upgrade_needed(record, records, running, desired, meta):
                await self.start_upgrade(record, meta)
            else:
                mark_kubernetes_installed(status)
            return

        if plan_belongs_to(plan, record.name) and plan_updates_to(plan, desired_str):
            state, reason = installation_state_for_plan(plan)
            if state == InstallationState.KUBERNETES_INSTALLED:
                mark_kubernetes_installed(status, reason)
            else:
                status.set_state(state, reason)
            return

        if not plan_has_ended(plan):
            plan_id = (plan.get("spec") or {}).get("id")
            status.set_state(InstallationState.WAITING, f"Another upgrade is in progress ({plan_id})")
            return

        # the next reconcile creates a fresh plan
        self.logger.info("Deleting finished upgrade plan left by another installation")
        await self.delete_plan()
