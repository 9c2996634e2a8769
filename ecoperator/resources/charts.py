"""Chart lifecycle: merging the desired chart set, drift and completion checks."""
import asyncio
import copy
import os
import time
from typing import Callable, Dict, List, Optional, Tuple
from ecoperator.common.models.states import InstallationState
from ecoperator.resources.base import BaseResource
from ecoperator.types.base import BaseModel
from ecoperator.types.models import (
    Chart,
    HelmExtensions,
    InstallationSpec,
    InstallationStatus,
    InstalledChart,
    ReleaseMetadata,
)
from ecoperator.types.schemas import HelmExtensionsSchema
from ecoperator.types.schemas.installation import DEFAULT_DATA_DIR
from ecoperator.utils.errors import ReconcileError
from ecoperator.utils.helpers import merge_values, sha256_hex, truncate_text, yaml_diff

CLUSTER_CONFIG_GROUP = "k0s.k0sproject.io"
CLUSTER_CONFIG_VERSION = "v1beta1"
CLUSTER_CONFIG_PLURAL = "clusterconfigs"
CLUSTER_CONFIG_NAME = "k0s"
CLUSTER_CONFIG_NAMESPACE = "kube-system"

CHART_GROUP = "helm.k0sproject.io"
CHART_VERSION = "v1beta1"
CHART_PLURAL = "charts"
CHART_NAMESPACE = "kube-system"

DEFAULT_VENDOR_CHART_ORDER = 10
# k0s sorts chart orders as strings, offsetting them keeps every order three digits wide
CHART_ORDER_OFFSET = 100
REPOSITORIES_DRIFT = "repositories"
CHART_ERRORS_PREFIX = "failed to update helm charts: \n"

EVENT_CHART_ERRORS = "ChartErrors"
EVENT_ADDONS_UPGRADED = "AddonsUpgraded"
EVENT_PENDING_CHARTS = "PendingHelmCharts"
EVENT_CHARTS_UPDATED = "HelmChartsUpdated"


def _empty_helm() -> HelmExtensions:
    return HelmExtensions(concurrency_level=0, charts=[], repositories=[])


def merge_helm_configs(
    spec: InstallationSpec,
    meta: Optional[ReleaseMetadata],
    addon_charts: Optional[List[Chart]] = None,
) -> HelmExtensions:
    """Build the desired chart set for an installation.

    Built in charts come first, then vendor charts and the topology specific
    sets. Addon charts rendered for the current topology replace built in
    charts of the same name.
    """
    combined = HelmExtensions(concurrency_level=1, charts=[], repositories=[])
    if meta is not None:
        combined.charts.extend(copy.deepcopy(meta.configs.charts or []))
        combined.repositories.extend(copy.deepcopy(meta.configs.repositories or []))

    vendor = spec.config.helm if spec.config is not None else None
    if vendor is not None:
        if vendor.concurrency_level and vendor.concurrency_level > 0:
            combined.concurrency_level = min(vendor.concurrency_level, combined.concurrency_level)
        combined.charts.extend(copy.deepcopy(vendor.charts or []))
        for chart in combined.charts:
            if not chart.order:
                chart.order = DEFAULT_VENDOR_CHART_ORDER
        combined.repositories.extend(copy.deepcopy(vendor.repositories or []))

    if meta is not None and spec.air_gap:
        combined.charts.extend(copy.deepcopy(meta.airgap_configs.charts or []))
        combined.repositories.extend(copy.deepcopy(meta.airgap_configs.repositories or []))

    if meta is not None and spec.disaster_recovery_supported:
        velero = meta.builtin_configs.get("velero")
        if velero is not None:
            combined.charts.extend(copy.deepcopy(velero.charts or []))
            combined.repositories.extend(copy.deepcopy(velero.repositories or []))

    for rendered in addon_charts or []:
        for idx, chart in enumerate(combined.charts):
            if chart.name == rendered.name:
                combined.charts[idx] = copy.deepcopy(rendered)
                break
        else:
            combined.charts.append(copy.deepcopy(rendered))

    for chart in combined.charts:
        chart.order = (chart.order or 0) + CHART_ORDER_OFFSET
    return combined


def patch_extensions_for_airgap(config: HelmExtensions, data_dir: Optional[str]) -> HelmExtensions:
    """Point every chart at its archive on the node's disk and drop the repositories."""
    charts_dir = os.path.join(data_dir or DEFAULT_DATA_DIR, "charts")
    config.repositories = []
    for chart in config.charts:
        chart.chart_name = os.path.join(charts_dir, f"{chart.name}-{chart.version}.tgz")
    return config


def apply_user_overrides(config: HelmExtensions, spec: InstallationSpec) -> HelmExtensions:
    if spec.config is None:
        return config
    for chart in config.charts:
        override = spec.config.override_for_builtin(chart.name)
        if override:
            chart.values = merge_values(chart.values, override)
    return config


def desired_helm_config(
    spec: InstallationSpec, meta: ReleaseMetadata, addon_charts: Optional[List[Chart]] = None
) -> HelmExtensions:
    combined = merge_helm_configs(spec, meta, addon_charts)
    if spec.air_gap:
        data_dir = spec.runtime_config.data_dir if spec.runtime_config else None
        combined = patch_extensions_for_airgap(combined, data_dir)
    return apply_user_overrides(combined, spec)


def chart_drift(desired: HelmExtensions, current: HelmExtensions) -> Tuple[bool, List[str]]:
    """Compare the desired chart set with the one in the cluster config.

    Returns whether anything drifted and the sorted names that did.
    """
    drifted = set()
    if len(current.repositories or []) != len(desired.repositories or []):
        drifted.add(REPOSITORIES_DRIFT)

    for target in desired.charts or []:
        existing = current.chart(target.name)
        if existing is None:
            drifted.add(target.name)
            continue
        if target.version != existing.version:
            drifted.add(target.name)
            continue
        try:
            if yaml_diff(target.values, existing.values):
                drifted.add(target.name)
        except ValueError as e:
            raise ReconcileError(f"failed to compare values of chart {target.name}: {e}") from e

    names = sorted(drifted)
    return bool(names), names


class ChartCompletion(BaseModel):
    """Partition of configured charts by what their live Chart objects report."""

    complete: List[str]
    incomplete: List[str]
    errors: Dict[str, str]
    unmatched: List[str]

    @property
    def pending(self) -> List[str]:
        return sorted(self.incomplete + self.unmatched)


def chart_completion(config: HelmExtensions, installed: List[InstalledChart]) -> ChartCompletion:
    """Check whether every configured chart has been applied.

    Each chart lands in exactly one partition. A chart reporting an error is
    collected with its message and never counted as incomplete.
    """
    by_release = {chart.release_name: chart for chart in installed}
    result = ChartCompletion(complete=[], incomplete=[], errors={}, unmatched=[])
    for chart in config.charts or []:
        live = by_release.get(chart.name)
        if live is None:
            result.unmatched.append(chart.name)
            continue
        if live.status_error:
            result.errors[chart.name] = live.status_error
            continue
        try:
            values_changed = yaml_diff(chart.values, live.spec_values)
        except ValueError as e:
            raise ReconcileError(f"failed to compare values of chart {chart.name}: {e}") from e
        if (
            values_changed
            or sha256_hex(live.spec_values) != live.status_values_hash
            or live.status_version != chart.version
        ):
            result.incomplete.append(chart.name)
        else:
            result.complete.append(chart.name)
    return result


def aggregate_chart_errors(errors: Dict[str, str], limit: int) -> str:
    lines = "".join(f"{name}: {errors[name]}\n" for name in sorted(errors))
    return truncate_text(CHART_ERRORS_PREFIX + lines, limit)


def format_names(names: List[str]) -> str:
    return "[" + " ".join(names) + "]"


class ChartDecision(BaseModel):
    """Outcome of the chart policy for one pass."""

    state: Optional[str]
    reason: Optional[str]
    pending: Optional[List[str]]
    write: bool
    event_reason: Optional[str]
    event_message: Optional[str]
    event_type: str

    def __init__(self, **kwargs) -> None:
        for key in ("state", "reason", "pending", "event_reason", "event_message"):
            kwargs.setdefault(key, None)
        kwargs.setdefault("write", False)
        kwargs.setdefault("event_type", "Normal")
        super().__init__(**kwargs)

    @property
    def is_noop(self) -> bool:
        return self.state is None and not self.write


def decide_chart_action(
    status: InstallationStatus,
    drift: bool,
    drift_names: List[str],
    completion: ChartCompletion,
    error_limit: int,
) -> ChartDecision:
    """Turn the drift and completion signals into the next status and write."""
    pending = completion.pending
    if completion.errors and not drift:
        reason = aggregate_chart_errors(completion.errors, error_limit)
        decision = ChartDecision(state=InstallationState.HELM_CHART_UPDATE_FAILURE, reason=reason)
        if status.state != decision.state or status.reason != reason:
            decision.event_reason = EVENT_CHART_ERRORS
            decision.event_message = reason
            decision.event_type = "Warning"
        return decision

    if not pending and not drift:
        decision = ChartDecision(state=InstallationState.INSTALLED, reason="Addons upgraded")
        if status.state != InstallationState.INSTALLED:
            decision.event_reason = EVENT_ADDONS_UPGRADED
            decision.event_message = "Addons upgraded"
        return decision

    if pending:
        reason = f"Pending charts: {format_names(pending)}"
        decision = ChartDecision(
            state=InstallationState.PENDING_CHART_CREATION, reason=reason, pending=pending
        )
        if (
            status.state != InstallationState.PENDING_CHART_CREATION
            or list(status.pending_charts or []) != pending
        ):
            decision.event_reason = EVENT_PENDING_CHARTS
            decision.event_message = reason
        return decision

    if status.state == InstallationState.ADDONS_INSTALLING:
        # a write is already in flight
        return ChartDecision()

    return ChartDecision(
        state=InstallationState.ADDONS_INSTALLING,
        reason="Installing addons",
        write=True,
        event_reason=EVENT_CHARTS_UPDATED,
        event_message=f"Updated helm charts {format_names(drift_names)}",
    )


def installed_chart(obj: Dict) -> InstalledChart:
    spec = obj.get("spec") or {}
    status = obj.get("status") or {}
    return InstalledChart(
        name=(obj.get("metadata") or {}).get("name"),
        release_name=spec.get("releaseName") or "",
        spec_values=spec.get("values") or "",
        spec_version=spec.get("version") or "",
        status_version=status.get("version") or "",
        status_values_hash=status.get("valuesHash") or "",
        status_error=status.get("error") or "",
    )


class ChartReconciler(BaseResource):
    """Reads and writes the chart configuration of the k0s cluster config."""

    async def fetch_cluster_config(self) -> Dict:
        config = await self.get_namespaced_custom_object(
            CLUSTER_CONFIG_GROUP,
            CLUSTER_CONFIG_VERSION,
            CLUSTER_CONFIG_NAMESPACE,
            CLUSTER_CONFIG_PLURAL,
            CLUSTER_CONFIG_NAME,
        )
        if config is None:
            raise ReconcileError("cluster config k0s not found")
        return config

    @staticmethod
    def current_helm(cluster_config: Dict) -> HelmExtensions:
        helm = ((cluster_config.get("spec") or {}).get("extensions") or {}).get("helm")
        if not helm:
            return _empty_helm()
        return HelmExtensionsSchema().load(helm)

    async def list_installed_charts(self) -> List[InstalledChart]:
        items = await self.list_namespaced_custom_objects(
            CHART_GROUP, CHART_VERSION, CHART_NAMESPACE, CHART_PLURAL
        )
        return [installed_chart(item) for item in items]

    async def write_helm_config(self, cluster_config: Dict, helm: HelmExtensions) -> None:
        body = copy.deepcopy(cluster_config)
        spec = body.setdefault("spec", {})
        extensions = spec.get("extensions") or {}
        extensions["helm"] = HelmExtensionsSchema().dump(helm)
        spec["extensions"] = extensions
        await self.replace_namespaced_custom_object(
            CLUSTER_CONFIG_GROUP,
            CLUSTER_CONFIG_VERSION,
            CLUSTER_CONFIG_NAMESPACE,
            CLUSTER_CONFIG_PLURAL,
            CLUSTER_CONFIG_NAME,
            body,
        )

    async def upsert_chart(self, chart: Chart, repositories=None) -> None:
        """Add or replace one chart in the cluster config."""
        cluster_config = await self.fetch_cluster_config()
        helm = self.current_helm(cluster_config)
        for idx, existing in enumerate(helm.charts):
            if existing.name == chart.name:
                helm.charts[idx] = chart
                break
        else:
            helm.charts.append(chart)
        known = {repo.name for repo in helm.repositories}
        for repo in repositories or []:
            if repo.name not in known:
                helm.repositories.append(repo)
        await self.write_helm_config(cluster_config, helm)

    async def chart_converged(self, chart: Chart) -> bool:
        """Whether the live Chart object reports the given version and values."""
        completion = chart_completion(
            HelmExtensions(concurrency_level=1, charts=[chart], repositories=[]),
            await self.list_installed_charts(),
        )
        if chart.name in completion.errors:
            raise ReconcileError(f"chart {chart.name} failed: {completion.errors[chart.name]}")
        return chart.name in completion.complete

    async def wait_for_chart(self, chart: Chart) -> None:
        deadline = time.monotonic() + self.conf.chart_ready_timeout_seconds
        while not await self.chart_converged(chart):
            if time.monotonic() > deadline:
                raise ReconcileError(f"timed out waiting for chart {chart.name}")
            await asyncio.sleep(self.conf.plan_poll_interval_seconds)

    async def reconcile(
        self,
        installation_name: str,
        spec: InstallationSpec,
        status: InstallationStatus,
        meta: ReleaseMetadata,
        addon_charts: List[Chart],
        post_event: Callable[[str, str, str], None],
    ) -> ChartDecision:
        """Drive the chart set towards the desired configuration.

        Updates ``status`` in memory and writes the cluster config when drift
        calls for it.
        """
        cluster_config = await self.fetch_cluster_config()
        desired = desired_helm_config(spec, meta, addon_charts)
        existing = self.current_helm(cluster_config)

        drift, drift_names = chart_drift(desired, existing)
        if drift:
            self.sensor.on_chart_drift(installation_name, drift_names)
            self.logger.info(f"Chart drift detected for {installation_name}: {drift_names}")

        completion = chart_completion(existing, await self.list_installed_charts())
        decision = decide_chart_action(
            status, drift, drift_names, completion, self.conf.chart_error_max_length
        )
        if decision.is_noop:
            return decision

        if decision.write:
            await self.write_helm_config(cluster_config, desired)
        status.set_state(decision.state, decision.reason, decision.pending)
        if decision.event_reason:
            post_event(decision.event_type, decision.event_reason, decision.event_message)
        return decision
