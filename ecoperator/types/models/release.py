from typing import Dict, List, Optional
from ecoperator.types.base import BaseModel
from ecoperator.types.models.charts import HelmExtensions

KUBERNETES_VERSION_KEY = "Kubernetes"


class ReleaseMetadata(BaseModel):
    """Everything a release ships: component versions, binaries and built in charts."""

    versions: Dict[str, str]
    k0s_sha: Optional[str]
    k0s_binary_url: Optional[str]
    artifacts: Dict[str, str]
    configs: HelmExtensions
    airgap_configs: HelmExtensions
    builtin_configs: Dict[str, HelmExtensions]
    images: List[str]

    @property
    def kubernetes_version(self) -> Optional[str]:
        return (self.versions or {}).get(KUBERNETES_VERSION_KEY)
