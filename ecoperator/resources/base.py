import logging
import mmh3
import hashlib
from logging import Logger
from typing import Any, Dict, List, Optional
from ecoperator.utils.objects import cached_property
from ecoperator.utils.helpers import canonicalize_dict
from ecoperator.utils.errors import already_exists_error, not_found_error
from ecoperator.types.settings import Settings
from ecoperator.sensors import SensorDelegate
from ecoperator.web import MetricsWebClient
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    AppsV1Api,
    BatchV1Api,
    CoreV1Api,
    CustomObjectsApi,
    V1ConfigMap,
    V1DeleteOptions,
    V1Deployment,
    V1Job,
    V1Namespace,
    V1Node,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1Pod,
    V1Secret,
    V1Service,
    V1StatefulSet,
    VersionApi,
)


class BaseResource:
    """Shared plumbing for every object the operator reads or writes.

    Class attributes are wired once at startup (see ``ecoperator.app``) and
    shared by all instances; tests assign mocks to the cached API properties.
    """

    OPERATOR_NAME = "embedded-cluster-operator"

    logger: Logger = logging.getLogger(__name__)
    conf: Settings = Settings()
    web_client: MetricsWebClient = None
    sensor: SensorDelegate = SensorDelegate()
    shared_api_client: ApiClient = None

    @cached_property
    def api_client(self) -> ApiClient:
        # Use the shared API client if available, otherwise create a new one
        if self.shared_api_client is not None:
            return self.shared_api_client
        return ApiClient()

    @cached_property
    def core_v1_api(self) -> CoreV1Api:
        return CoreV1Api(self.api_client)

    @cached_property
    def apps_v1_api(self) -> AppsV1Api:
        return AppsV1Api(self.api_client)

    @cached_property
    def batch_v1_api(self) -> BatchV1Api:
        return BatchV1Api(self.api_client)

    @cached_property
    def custom_objects_api(self) -> CustomObjectsApi:
        return CustomObjectsApi(self.api_client)

    @cached_property
    def version_api(self) -> VersionApi:
        return VersionApi(self.api_client)

    def compute_hash(self, data: Any) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        hash_obj = hashlib.sha256(mumur_str.encode("utf-8"))
        full_hash = hash_obj.hexdigest()

        # Return first 16 characters for readability in labels/annotations
        return full_hash[:16]

    # ---------------------------------------------------------------------
    # Core objects
    # ---------------------------------------------------------------------

    async def server_version(self) -> str:
        """Return the git version reported by the API server."""
        info = await self.version_api.get_code()
        return info.git_version

    async def list_nodes(self) -> List[V1Node]:
        nodes = await self.core_v1_api.list_node()
        return list(nodes.items or [])

    async def fetch_config_map(self, name: str, namespace: str) -> Optional[V1ConfigMap]:
        try:
            return await self.core_v1_api.read_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_config_map(self, namespace: str, config_map: V1ConfigMap) -> None:
        try:
            await self.core_v1_api.create_namespaced_config_map(namespace=namespace, body=config_map)
        except ApiException as ex:
            if already_exists_error(ex):
                await self.core_v1_api.replace_namespaced_config_map(
                    name=config_map.metadata.name,
                    namespace=namespace,
                    body=config_map,
                )
            else:
                raise

    async def fetch_secret(self, name: str, namespace: str) -> Optional[V1Secret]:
        try:
            return await self.core_v1_api.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_secret(self, namespace: str, secret: V1Secret) -> None:
        try:
            await self.core_v1_api.create_namespaced_secret(namespace=namespace, body=secret)
        except ApiException as ex:
            if already_exists_error(ex):
                await self.core_v1_api.replace_namespaced_secret(
                    name=secret.metadata.name,
                    namespace=namespace,
                    body=secret,
                )
            else:
                raise

    async def ensure_namespace(self, name: str) -> None:
        try:
            await self.core_v1_api.create_namespace(body=V1Namespace(metadata=V1ObjectMeta(name=name)))
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def fetch_service(self, name: str, namespace: str) -> Optional[V1Service]:
        try:
            return await self.core_v1_api.read_namespaced_service(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_service(self, namespace: str, service: V1Service) -> None:
        await self.core_v1_api.create_namespaced_service(namespace=namespace, body=service)

    async def delete_service(self, name: str, namespace: str) -> None:
        try:
            await self.core_v1_api.delete_namespaced_service(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def list_pods(
        self, namespace: str = None, label_selector: Dict[str, str] = None
    ) -> List[V1Pod]:
        """List pods, across all namespaces when none is given."""
        label_selector_str = None
        if label_selector:
            label_selector_str = ",".join([f"{k}={v}" for k, v in label_selector.items()])
        if namespace is None:
            pods = await self.core_v1_api.list_pod_for_all_namespaces(
                label_selector=label_selector_str
            )
        else:
            pods = await self.core_v1_api.list_namespaced_pod(
                namespace=namespace, label_selector=label_selector_str
            )
        return list(pods.items or [])

    async def fetch_pod(self, name: str, namespace: str) -> Optional[V1Pod]:
        try:
            return await self.core_v1_api.read_namespaced_pod(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_pod(self, namespace: str, pod: V1Pod) -> None:
        try:
            await self.core_v1_api.create_namespaced_pod(namespace=namespace, body=pod)
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def delete_pod(self, name: str, namespace: str) -> None:
        try:
            await self.core_v1_api.delete_namespaced_pod(
                name=name, namespace=namespace, body=V1DeleteOptions()
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def list_persistent_volume_claims(self) -> List[V1PersistentVolumeClaim]:
        pvcs = await self.core_v1_api.list_persistent_volume_claim_for_all_namespaces()
        return list(pvcs.items or [])

    async def delete_persistent_volume_claim(self, name: str, namespace: str) -> None:
        try:
            await self.core_v1_api.delete_namespaced_persistent_volume_claim(
                name=name, namespace=namespace, body=V1DeleteOptions()
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def delete_persistent_volume(self, name: str) -> None:
        try:
            await self.core_v1_api.delete_persistent_volume(name=name, body=V1DeleteOptions())
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    # ---------------------------------------------------------------------
    # Workloads
    # ---------------------------------------------------------------------

    async def fetch_job(self, name: str, namespace: str) -> Optional[V1Job]:
        try:
            return await self.batch_v1_api.read_namespaced_job(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_job(self, namespace: str, job: V1Job) -> None:
        await self.batch_v1_api.create_namespaced_job(namespace=namespace, body=job)

    async def delete_job(self, name: str, namespace: str) -> None:
        try:
            await self.batch_v1_api.delete_namespaced_job(
                name=name,
                namespace=namespace,
                body=V1DeleteOptions(propagation_policy="Foreground"),
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def fetch_deployment(self, name: str, namespace: str) -> Optional[V1Deployment]:
        try:
            return await self.apps_v1_api.read_namespaced_deployment(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def scale_deployment(self, name: str, namespace: str, replicas: int) -> None:
        await self.apps_v1_api.patch_namespaced_deployment_scale(
            name=name, namespace=namespace, body={"spec": {"replicas": replicas}}
        )

    async def fetch_stateful_set(self, name: str, namespace: str) -> Optional[V1StatefulSet]:
        try:
            return await self.apps_v1_api.read_namespaced_stateful_set(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    # ---------------------------------------------------------------------
    # Custom objects
    # ---------------------------------------------------------------------

    async def get_cluster_custom_object(
        self, group: str, version: str, plural: str, name: str
    ) -> Optional[Dict]:
        try:
            return await self.custom_objects_api.get_cluster_custom_object(
                group=group, version=version, plural=plural, name=name
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def list_cluster_custom_objects(
        self, group: str, version: str, plural: str
    ) -> List[Dict]:
        result = await self.custom_objects_api.list_cluster_custom_object(
            group=group, version=version, plural=plural
        )
        return list(result.get("items") or [])

    async def create_cluster_custom_object(
        self, group: str, version: str, plural: str, body: Dict
    ) -> Dict:
        return await self.custom_objects_api.create_cluster_custom_object(
            group=group, version=version, plural=plural, body=body
        )

    async def delete_cluster_custom_object(
        self, group: str, version: str, plural: str, name: str
    ) -> None:
        try:
            await self.custom_objects_api.delete_cluster_custom_object(
                group=group, version=version, plural=plural, name=name
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def get_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str
    ) -> Optional[Dict]:
        try:
            return await self.custom_objects_api.get_namespaced_custom_object(
                group=group, version=version, namespace=namespace, plural=plural, name=name
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def list_namespaced_custom_objects(
        self, group: str, version: str, namespace: str, plural: str
    ) -> List[Dict]:
        result = await self.custom_objects_api.list_namespaced_custom_object(
            group=group, version=version, namespace=namespace, plural=plural
        )
        return list(result.get("items") or [])

    async def replace_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: Dict
    ) -> Dict:
        return await self.custom_objects_api.replace_namespaced_custom_object(
            group=group, version=version, namespace=namespace, plural=plural, name=name, body=body
        )
