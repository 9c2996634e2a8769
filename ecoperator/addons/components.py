"""The addons the operator deploys, one class per chart."""
import json
import secrets
import string
from typing import Dict, Optional, Tuple
from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1Secret,
    V1Service,
    V1ServicePort,
    V1ServiceSpec,
)
from ecoperator.addons.base import Addon
from ecoperator.common.models.labels import Labels
from ecoperator.resources.registry import (
    REGISTRY_NAMESPACE,
    SEAWEEDFS_ADMIN_IDENTITY,
    SEAWEEDFS_NAMESPACE,
    SEAWEEDFS_S3_CONFIG_KEY,
    SEAWEEDFS_S3_PORT,
    SEAWEEDFS_S3_SECRET,
    SEAWEEDFS_S3_SERVICE_IP_INDEX,
    RegistryStorage,
    seaweedfs_s3_endpoint,
)
from ecoperator.types.models import HelmExtensions
from ecoperator.utils.helpers import lower_band_ip
from ecoperator.utils.objects import cached_property

SEAWEEDFS_S3_SERVICE = "ec-seaweedfs-s3"
SEAWEEDFS_READ_ONLY_IDENTITY = "anvReadOnly"
REGISTRY_S3_SECRET = "seaweedfs-s3-rw"
REGISTRY_SERVICE_IP_INDEX = 10
REGISTRY_S3_BUCKET = "registry"
REGISTRY_S3_ROOT = "/registry"
S3_REGION = "us-east-1"
ACCESS_KEY_LENGTH = 20
SECRET_KEY_LENGTH = 40

_KEY_ALPHABET = string.ascii_letters + string.digits


def random_key(length: int) -> str:
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))


def seaweedfs_s3_config(admin: Tuple[str, str], read_only: Tuple[str, str]) -> str:
    """Identities document consumed by the seaweedfs s3 gateway."""
    return json.dumps(
        {
            "identities": [
                {
                    "name": SEAWEEDFS_ADMIN_IDENTITY,
                    "credentials": [{"accessKey": admin[0], "secretKey": admin[1]}],
                    "actions": ["Admin", "Read", "Write"],
                },
                {
                    "name": SEAWEEDFS_READ_ONLY_IDENTITY,
                    "credentials": [{"accessKey": read_only[0], "secretKey": read_only[1]}],
                    "actions": ["Read"],
                },
            ]
        }
    )


class OpenEBS(Addon):
    name = "openebs"
    namespace = "openebs"

    def source(self) -> Optional[HelmExtensions]:
        return self.meta.configs

    def generate_values(self) -> Dict:
        return {"localpv-provisioner.localpv.basePath": f"{self.options.data_dir}/openebs-local"}


class SeaweedFS(Addon):
    """Replicated object store backing the registry in airgap HA clusters."""

    name = "seaweedfs"
    namespace = SEAWEEDFS_NAMESPACE

    def source(self) -> Optional[HelmExtensions]:
        return (self.meta.builtin_configs or {}).get("seaweedfs")

    def generate_values(self) -> Dict:
        return {
            "filer.s3.enabled": True,
            "filer.s3.existingConfigSecret": SEAWEEDFS_S3_SECRET,
        }

    def labels(self, component: str) -> Dict[str, str]:
        return (
            Labels.for_component(component)
            .include(Labels.KUBERNETES_NAME_LABEL, "seaweedfs")
            .include(Labels.KUBERNETES_DOMAIN + "instance", "seaweedfs")
            .as_dict()
        )

    def s3_service(self) -> V1Service:
        cluster_ip = lower_band_ip(self.options.service_cidr, SEAWEEDFS_S3_SERVICE_IP_INDEX)
        return V1Service(
            metadata=V1ObjectMeta(
                name=SEAWEEDFS_S3_SERVICE,
                namespace=SEAWEEDFS_NAMESPACE,
                labels=self.labels("s3"),
            ),
            spec=V1ServiceSpec(
                cluster_ip=cluster_ip,
                ports=[
                    V1ServicePort(
                        name="swfs-s3",
                        port=SEAWEEDFS_S3_PORT,
                        protocol="TCP",
                        target_port=SEAWEEDFS_S3_PORT,
                    )
                ],
                selector={
                    Labels.KUBERNETES_COMPONENT_LABEL: "filer",
                    Labels.KUBERNETES_NAME_LABEL: "seaweedfs",
                },
            ),
        )

    def s3_secret(self) -> V1Secret:
        config = seaweedfs_s3_config(
            (random_key(ACCESS_KEY_LENGTH), random_key(SECRET_KEY_LENGTH)),
            (random_key(ACCESS_KEY_LENGTH), random_key(SECRET_KEY_LENGTH)),
        )
        return V1Secret(
            metadata=V1ObjectMeta(
                name=SEAWEEDFS_S3_SECRET,
                namespace=SEAWEEDFS_NAMESPACE,
                labels=self.labels("s3"),
            ),
            string_data={SEAWEEDFS_S3_CONFIG_KEY: config},
        )

    async def ensure_s3_service(self) -> None:
        desired = self.s3_service()
        existing = await self.fetch_service(SEAWEEDFS_S3_SERVICE, SEAWEEDFS_NAMESPACE)
        if existing is not None:
            if existing.spec.cluster_ip == desired.spec.cluster_ip:
                return
            # the cluster ip of a service is immutable
            self.logger.info(f"Recreating service {SEAWEEDFS_S3_SERVICE} with ip {desired.spec.cluster_ip}")
            await self.delete_service(SEAWEEDFS_S3_SERVICE, SEAWEEDFS_NAMESPACE)
        await self.create_service(SEAWEEDFS_NAMESPACE, desired)

    async def ensure_s3_secret(self) -> None:
        if await self.fetch_secret(SEAWEEDFS_S3_SECRET, SEAWEEDFS_NAMESPACE) is not None:
            return
        await self.create_secret(SEAWEEDFS_NAMESPACE, self.s3_secret())

    async def prepare(self) -> None:
        await self.ensure_namespace(SEAWEEDFS_NAMESPACE)
        await self.ensure_s3_service()
        await self.ensure_s3_secret()


class Registry(Addon):
    """In-cluster image registry, backed by seaweedfs once highly available."""

    name = "docker-registry"
    namespace = REGISTRY_NAMESPACE

    @cached_property
    def storage(self) -> RegistryStorage:
        return RegistryStorage()

    def source(self) -> Optional[HelmExtensions]:
        if self.options.high_availability:
            return (self.meta.builtin_configs or {}).get("registry-ha")
        return self.meta.airgap_configs

    def generate_values(self) -> Dict:
        values = {
            "service.clusterIP": lower_band_ip(self.options.service_cidr, REGISTRY_SERVICE_IP_INDEX),
        }
        if not self.options.high_availability:
            return values
        values.update(
            {
                "replicaCount": 2,
                "storage": "s3",
                "s3.region": S3_REGION,
                "s3.regionEndpoint": f"http://{seaweedfs_s3_endpoint(self.options.service_cidr)}",
                "s3.bucket": REGISTRY_S3_BUCKET,
                "s3.rootdirectory": REGISTRY_S3_ROOT,
                "s3.encrypt": False,
                "s3.secure": True,
                "secrets.s3.secretRef": REGISTRY_S3_SECRET,
            }
        )
        return values

    async def prepare(self) -> None:
        await self.ensure_namespace(REGISTRY_NAMESPACE)
        if not self.options.high_availability:
            return
        access_key, secret_key = await self.storage.s3_credentials()
        secret = V1Secret(
            metadata=V1ObjectMeta(
                name=REGISTRY_S3_SECRET,
                namespace=REGISTRY_NAMESPACE,
                labels=Labels.for_component("registry").as_dict(),
            ),
            string_data={"s3AccessKey": access_key, "s3SecretKey": secret_key},
        )
        await self.create_secret(REGISTRY_NAMESPACE, secret)


class EmbeddedClusterOperator(Addon):
    name = "embedded-cluster-operator"
    namespace = "embedded-cluster"

    def source(self) -> Optional[HelmExtensions]:
        return self.meta.configs

    def generate_values(self) -> Dict:
        values = {
            "embeddedBinaryName": self.options.binary_name,
            "embeddedClusterID": self.options.cluster_id,
        }
        env = self.options.proxy_env()
        if env:
            values["extraEnv"] = env
        return values


class AdminConsole(Addon):
    name = "admin-console"
    namespace = "kotsadm"

    def source(self) -> Optional[HelmExtensions]:
        return self.meta.configs

    def generate_values(self) -> Dict:
        values = {
            "embeddedClusterID": self.options.cluster_id,
            "isAirgap": "true" if self.options.air_gap else "false",
            "isHA": self.options.high_availability,
            "isHelmManaged": False,
        }
        env = self.options.proxy_env()
        if env:
            values["extraEnv"] = env
        return values


class Velero(Addon):
    """Backup and restore, shipped to disaster recovery licences only."""

    name = "velero"
    namespace = "velero"

    def source(self) -> Optional[HelmExtensions]:
        return (self.meta.builtin_configs or {}).get("velero")

    def generate_values(self) -> Dict:
        env = {item["name"]: item["value"] for item in self.options.proxy_env()}
        if not env:
            return {}
        return {"configuration.extraEnvVars": env}
