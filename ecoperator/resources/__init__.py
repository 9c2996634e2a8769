from .base import BaseResource
from .nodes import NodeStatusTracker
from .charts import ChartReconciler
from .release import ReleaseResolver
from .artifacts import ArtifactsDistributor
from .upgrade import UpgradeOrchestrator
from .store import InstallationStore
from .registry import RegistryStorage
from .openebs import StaleVolumeCleaner

__all__ = [
    "ArtifactsDistributor",
    "BaseResource",
    "ChartReconciler",
    "InstallationStore",
    "NodeStatusTracker",
    "RegistryStorage",
    "ReleaseResolver",
    "StaleVolumeCleaner",
    "UpgradeOrchestrator",
]
