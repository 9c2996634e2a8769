from .charts import Chart, Repository, HelmExtensions, InstalledChart
from .installation import (
    ArtifactsLocation,
    BuiltInExtension,
    ConfigSecret,
    ConfigSpec,
    Extensions,
    InstallationRecord,
    InstallationSpec,
    InstallationStatus,
    LicenseInfo,
    NetworkSpec,
    NodeStatus,
    ProxySpec,
    RuntimeConfig,
    UnsupportedOverrides,
)
from .release import ReleaseMetadata

__all__ = [
    "ArtifactsLocation",
    "BuiltInExtension",
    "Chart",
    "ConfigSecret",
    "ConfigSpec",
    "Extensions",
    "HelmExtensions",
    "InstallationRecord",
    "InstallationSpec",
    "InstallationStatus",
    "InstalledChart",
    "LicenseInfo",
    "NetworkSpec",
    "NodeStatus",
    "ProxySpec",
    "ReleaseMetadata",
    "Repository",
    "RuntimeConfig",
    "UnsupportedOverrides",
]
