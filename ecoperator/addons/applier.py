from typing import List, Optional
from ecoperator.addons.base import Addon, AddonOptions
from ecoperator.addons.components import (
    AdminConsole,
    EmbeddedClusterOperator,
    OpenEBS,
    Registry,
    SeaweedFS,
    Velero,
)
from ecoperator.resources.base import BaseResource
from ecoperator.resources.charts import ChartReconciler, desired_helm_config
from ecoperator.types.models import Chart, InstallationRecord, ReleaseMetadata
from ecoperator.utils.errors import ReconcileError
from ecoperator.utils.objects import cached_property


def addons_for(options: AddonOptions, meta: ReleaseMetadata) -> List[Addon]:
    """The addons of a topology, in install order."""
    addons: List[Addon] = [OpenEBS(options, meta)]
    if options.air_gap and options.high_availability:
        addons.append(SeaweedFS(options, meta))
    if options.air_gap:
        addons.append(Registry(options, meta))
    addons.append(EmbeddedClusterOperator(options, meta))
    addons.append(AdminConsole(options, meta))
    if options.disaster_recovery:
        addons.append(Velero(options, meta))
    return addons


class AddonApplier(BaseResource):
    """Renders, installs and upgrades the addons of one Installation."""

    record: InstallationRecord
    meta: ReleaseMetadata
    options: AddonOptions

    def __init__(
        self,
        record: InstallationRecord,
        meta: ReleaseMetadata,
        options: Optional[AddonOptions] = None,
    ) -> None:
        self.record = record
        self.meta = meta
        self.options = options or AddonOptions.from_record(record)

    @cached_property
    def charts_reconciler(self) -> ChartReconciler:
        return ChartReconciler()

    @cached_property
    def addons(self) -> List[Addon]:
        return addons_for(self.options, self.meta)

    def addon(self, name: str) -> Addon:
        for addon in self.addons:
            if addon.name == name:
                return addon
        raise ReconcileError(f"addon {name} is not part of this topology")

    def charts(self) -> List[Chart]:
        """Rendered charts of every addon the release ships."""
        rendered = []
        for addon in self.addons:
            chart = addon.chart()
            if chart is not None:
                rendered.append(chart)
        return rendered

    async def apply(self, name: str, prepare: bool) -> None:
        addon = self.addon(name)
        desired = desired_helm_config(self.record.spec, self.meta, self.charts())
        chart = desired.chart(addon.name)
        if chart is None:
            raise ReconcileError(f"release does not ship a chart for addon {name}")
        if prepare:
            await addon.prepare()
        self.logger.info(f"Applying {addon!r} for {self.record.name}")
        await self.charts_reconciler.upsert_chart(chart, desired.repositories)
        await self.charts_reconciler.wait_for_chart(chart)

    async def install(self, name: str) -> None:
        await self.apply(name, prepare=True)

    async def upgrade(self, name: str) -> None:
        await self.apply(name, prepare=False)
