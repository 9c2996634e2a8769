import copy
from typing import Any, Dict, List, Optional
from ecoperator.resources.base import BaseResource
from ecoperator.resources.registry import DEFAULT_SERVICE_CIDR, service_cidr_for
from ecoperator.types.base import BaseModel
from ecoperator.types.models import (
    Chart,
    HelmExtensions,
    InstallationRecord,
    ProxySpec,
    ReleaseMetadata,
)
from ecoperator.types.schemas.installation import DEFAULT_DATA_DIR
from ecoperator.utils.helpers import set_helm_values


class AddonOptions(BaseModel):
    """Topology and identity an addon renders its values from.

    Built once per pass from the Installation and handed to every addon, so
    no addon reads shared module state.
    """

    cluster_id: str
    binary_name: str
    air_gap: bool
    high_availability: bool
    disaster_recovery: bool
    service_cidr: str
    data_dir: str
    proxy: Optional[ProxySpec]

    @classmethod
    def from_record(cls, record: InstallationRecord, **overrides) -> "AddonOptions":
        spec = record.spec
        options = dict(
            cluster_id=spec.cluster_id or "",
            binary_name=spec.binary_name or "",
            air_gap=bool(spec.air_gap),
            high_availability=bool(spec.high_availability),
            disaster_recovery=spec.disaster_recovery_supported,
            service_cidr=service_cidr_for(record) or DEFAULT_SERVICE_CIDR,
            data_dir=(spec.runtime_config.data_dir if spec.runtime_config else None)
            or DEFAULT_DATA_DIR,
            proxy=spec.proxy,
        )
        options.update(overrides)
        return cls(**options)

    def proxy_env(self) -> List[Dict[str, str]]:
        """Proxy settings as container environment variables."""
        if self.proxy is None:
            return []
        env = []
        for name, value in (
            ("HTTP_PROXY", self.proxy.http_proxy),
            ("HTTPS_PROXY", self.proxy.https_proxy),
            ("NO_PROXY", self.proxy.no_proxy),
        ):
            if value:
                env.append({"name": name, "value": value})
        return env


class Addon(BaseResource):
    """A chart the operator manages for the current topology.

    Subclasses pick their base chart out of the release metadata and layer
    topology specific values on top of it.
    """

    name: str = None
    namespace: str = None

    options: AddonOptions
    meta: ReleaseMetadata

    def __init__(self, options: AddonOptions, meta: ReleaseMetadata) -> None:
        self.options = options
        self.meta = meta

    def source(self) -> Optional[HelmExtensions]:
        """The chart set of the release metadata that carries this addon."""
        raise NotImplementedError()

    def generate_values(self) -> Dict[str, Any]:
        """Values to set on the base chart, keyed by dotted path."""
        return {}

    def base_chart(self) -> Optional[Chart]:
        source = self.source()
        if source is None or not source.charts:
            return None
        chart = source.chart(self.name)
        if chart is None and len(source.charts) == 1:
            chart = source.charts[0]
        return chart

    def chart(self) -> Optional[Chart]:
        """Render the addon chart, None when the release does not ship it."""
        base = self.base_chart()
        if base is None:
            return None
        chart = copy.deepcopy(base)
        chart.name = self.name
        chart.values = set_helm_values(chart.values, self.generate_values())
        return chart

    def repositories(self):
        source = self.source()
        return list(source.repositories or []) if source is not None else []

    @property
    def version(self) -> Optional[str]:
        base = self.base_chart()
        return base.version if base is not None else None

    async def prepare(self) -> None:
        """Create whatever the chart expects to exist before its first install."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.version}>"
