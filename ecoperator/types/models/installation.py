from typing import Dict, List, Optional
from ecoperator.common.models.states import InstallationState
from ecoperator.types.base import BaseModel
from ecoperator.types.models.charts import HelmExtensions


class ConfigSecret(BaseModel):
    name: str
    namespace: str


class LicenseInfo(BaseModel):
    is_disaster_recovery_supported: bool


class NetworkSpec(BaseModel):
    pod_cidr: Optional[str]
    service_cidr: Optional[str]
    node_port_range: Optional[str]


class ProxySpec(BaseModel):
    http_proxy: Optional[str]
    https_proxy: Optional[str]
    no_proxy: Optional[str]


class ArtifactsLocation(BaseModel):
    images: str
    helm_charts: str
    embedded_cluster_binary: str
    embedded_cluster_metadata: str


class RuntimeConfig(BaseModel):
    data_dir: str


class BuiltInExtension(BaseModel):
    name: str
    values: str


class UnsupportedOverrides(BaseModel):
    k0s: Optional[str]
    built_in_extensions: List[BuiltInExtension]


class Extensions(BaseModel):
    helm: Optional[HelmExtensions]


class ConfigSpec(BaseModel):
    version: Optional[str]
    extensions: Optional[Extensions]
    unsupported_overrides: Optional[UnsupportedOverrides]

    @property
    def helm(self) -> Optional[HelmExtensions]:
        return self.extensions.helm if self.extensions else None

    def override_for_builtin(self, name: str) -> str:
        """End user values overrides for a built in chart, empty when there are none."""
        if self.unsupported_overrides is None:
            return ""
        for ext in self.unsupported_overrides.built_in_extensions or []:
            if ext.name == name:
                return ext.values or ""
        return ""


class InstallationSpec(BaseModel):
    cluster_id: Optional[str]
    metrics_base_url: Optional[str]
    air_gap: bool
    high_availability: bool
    binary_name: Optional[str]
    config_secret: Optional[ConfigSecret]
    artifacts: Optional[ArtifactsLocation]
    config: Optional[ConfigSpec]
    license_info: Optional[LicenseInfo]
    network: Optional[NetworkSpec]
    proxy: Optional[ProxySpec]
    runtime_config: Optional[RuntimeConfig]
    end_user_k0s_config_overrides: Optional[str]

    @property
    def version(self) -> Optional[str]:
        """Desired version, None when the installation requests none."""
        if self.config is None or not self.config.version:
            return None
        return self.config.version

    @property
    def disaster_recovery_supported(self) -> bool:
        return bool(self.license_info and self.license_info.is_disaster_recovery_supported)


class NodeStatus(BaseModel):
    name: str
    hash: str


class InstallationStatus(BaseModel):
    state: str
    reason: str
    nodes_status: List[NodeStatus]
    conditions: List[Dict]
    pending_charts: Optional[List[str]]

    def set_state(self, state: str, reason: str, pending_charts: Optional[List[str]] = None):
        self.state = state
        self.reason = reason
        self.pending_charts = pending_charts

    @property
    def kubernetes_installed(self) -> bool:
        return self.state in InstallationState.KUBERNETES_INSTALLED_STATES


class InstallationRecord(BaseModel):
    """One Installation object as read from the API server."""

    name: str
    resource_version: Optional[str]
    creation_timestamp: Optional[str]
    annotations: Dict[str, str]
    spec: InstallationSpec
    status: InstallationStatus
    body: Dict

    @property
    def version(self) -> Optional[str]:
        return self.spec.version
