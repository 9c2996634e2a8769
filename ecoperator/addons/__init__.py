from .base import Addon, AddonOptions
from .components import (
    AdminConsole,
    EmbeddedClusterOperator,
    OpenEBS,
    Registry,
    SeaweedFS,
    Velero,
)
from .applier import AddonApplier, addons_for

__all__ = [
    "Addon",
    "AddonApplier",
    "AddonOptions",
    "AdminConsole",
    "EmbeddedClusterOperator",
    "OpenEBS",
    "Registry",
    "SeaweedFS",
    "Velero",
    "addons_for",
]
