from typing import Dict


class ResourceLabels:
    """Label and annotation keys shared with the installer."""

    EMBEDDED_CLUSTER_DOMAIN = "embedded-cluster.replicated.com/"

    INSTALLATION_NAME_ANNOTATION = EMBEDDED_CLUSTER_DOMAIN + "installation-name"

    ENABLE_HA_ANNOTATION = "embeddedcluster.replicated.com/enable-ha"

    JOB_INSTALLATION_LABEL = "embedded-cluster/installation"

    JOB_ARTIFACTS_HASH_LABEL = "embedded-cluster/artifacts-config-hash"

    CONTROL_PLANE_LABEL = "node-role.kubernetes.io/control-plane"

    NODE_ROLE_PREFIX = "node-role.kubernetes.io/"

    DISASTER_RECOVERY_LABEL = "replicated.com/disaster-recovery"

    DISASTER_RECOVERY_INSTALL = "ec-install"

    STORAGE_PROVISIONER_ANNOTATION = "volume.kubernetes.io/storage-provisioner"

    SELECTED_NODE_ANNOTATION = "volume.kubernetes.io/selected-node"

    OPENEBS_LOCAL_PROVISIONER = "openebs.io/local"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_NAME_LABEL = KUBERNETES_DOMAIN + "name"

    KUBERNETES_COMPONENT_LABEL = KUBERNETES_DOMAIN + "component"

    KUBERNETES_PART_OF_LABEL = KUBERNETES_DOMAIN + "part-of"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    APPLICATION_NAME = "embedded-cluster"

    OPERATOR_NAME = "embedded-cluster-operator"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = labels if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def include(self, label: str, value: str) -> "Labels":
        return self.update({label: value})

    def as_dict(self) -> Dict[str, str]:
        return self._labels.copy()

    @classmethod
    def for_component(cls, component: str) -> "Labels":
        return cls(
            {
                cls.KUBERNETES_COMPONENT_LABEL: component,
                cls.KUBERNETES_PART_OF_LABEL: cls.APPLICATION_NAME,
                cls.KUBERNETES_MANAGED_BY_LABEL: cls.OPERATOR_NAME,
            }
        )
