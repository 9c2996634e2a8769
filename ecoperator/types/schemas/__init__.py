from .charts import ChartSchema, RepositorySchema, HelmExtensionsSchema
from .installation import (
    ConfigSpecSchema,
    InstallationSpecSchema,
    InstallationStatusSchema,
    NodeStatusSchema,
    dump_status,
    load_installation,
)
from .release import ReleaseMetadataSchema

__all__ = [
    "ChartSchema",
    "ConfigSpecSchema",
    "HelmExtensionsSchema",
    "InstallationSpecSchema",
    "InstallationStatusSchema",
    "NodeStatusSchema",
    "ReleaseMetadataSchema",
    "RepositorySchema",
    "dump_status",
    "load_installation",
]
