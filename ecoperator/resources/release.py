import base64
import json
from typing import Optional
from aiohttp import BasicAuth
from marshmallow import ValidationError
from kubernetes_asyncio.client import V1ConfigMap, V1ObjectMeta
from ecoperator.resources.base import BaseResource
from ecoperator.types.models import InstallationSpec, ReleaseMetadata
from ecoperator.types.schemas import ReleaseMetadataSchema
from ecoperator.utils.errors import MetadataError
from ecoperator.utils.helpers import slugify
from ecoperator.web.client import parse_reference, strip_version_prefix

EMBEDDED_CLUSTER_NAMESPACE = "embedded-cluster"
METADATA_CONFIGMAP_PREFIX = "version-metadata-"
METADATA_CONFIGMAP_KEY = "metadata.json"
METADATA_LAYER_TITLE = "version-metadata.json"

REGISTRY_CREDS_SECRET = "registry-creds"
REGISTRY_CREDS_NAMESPACE = "kotsadm"
DOCKER_CONFIG_KEY = ".dockerconfigjson"


def metadata_config_map_name(version: str) -> str:
    return METADATA_CONFIGMAP_PREFIX + slugify(strip_version_prefix(version))


def registry_auth_for(docker_config: str, host: str) -> Optional[BasicAuth]:
    """Extract basic auth for a registry host from a dockerconfigjson document."""
    auths = (json.loads(docker_config) or {}).get("auths") or {}
    entry = auths.get(host)
    if not entry:
        return None
    if entry.get("username"):
        return BasicAuth(entry["username"], entry.get("password") or "")
    if entry.get("auth"):
        user, _, password = base64.b64decode(entry["auth"]).decode().partition(":")
        return BasicAuth(user, password)
    return None


class ReleaseResolver(BaseResource):
    """Finds the release metadata that describes a version."""

    async def metadata_for(self, spec: InstallationSpec, version: str) -> ReleaseMetadata:
        """Return the release metadata for ``version``.

        Airgap installations read it from the staged config map, everything
        else fetches it from the public files endpoint.
        """
        if spec.air_gap:
            name = metadata_config_map_name(version)
            config_map = await self.fetch_config_map(name, EMBEDDED_CLUSTER_NAMESPACE)
            if config_map is None or METADATA_CONFIGMAP_KEY not in (config_map.data or {}):
                raise MetadataError(f"version metadata config map {name} not found")
            try:
                return ReleaseMetadataSchema().load(json.loads(config_map.data[METADATA_CONFIGMAP_KEY]))
            except (ValueError, ValidationError) as e:
                raise MetadataError(f"failed to parse version metadata: {e}") from e

        if not spec.metrics_base_url:
            raise MetadataError("no metrics base url to fetch release metadata from")
        try:
            return await self.web_client.fetch_metadata(spec.metrics_base_url, version)
        except MetadataError:
            raise
        except Exception as e:
            raise MetadataError(f"failed to fetch release metadata for {version}: {e}") from e

    async def registry_auth(self, reference: str) -> Optional[BasicAuth]:
        secret = await self.fetch_secret(REGISTRY_CREDS_SECRET, REGISTRY_CREDS_NAMESPACE)
        if secret is None or not secret.data or DOCKER_CONFIG_KEY not in secret.data:
            return None
        host, _, _ = parse_reference(reference)
        docker_config = base64.b64decode(secret.data[DOCKER_CONFIG_KEY]).decode()
        return registry_auth_for(docker_config, host)

    async def stage_metadata(self, installation_name: str, spec: InstallationSpec) -> None:
        """Copy the version metadata from the in-cluster registry into a config map."""
        if spec.artifacts is None or not spec.version:
            self.logger.info(f"Skipping version metadata copy for {installation_name}")
            return

        name = metadata_config_map_name(spec.version)
        if await self.fetch_config_map(name, EMBEDDED_CLUSTER_NAMESPACE) is not None:
            return

        reference = spec.artifacts.embedded_cluster_metadata
        auth = await self.registry_auth(reference)
        data = await self.web_client.pull_layer(reference, METADATA_LAYER_TITLE, auth=auth)
        config_map = V1ConfigMap(
            metadata=V1ObjectMeta(name=name, namespace=EMBEDDED_CLUSTER_NAMESPACE),
            data={METADATA_CONFIGMAP_KEY: data.decode()},
        )
        await self.create_config_map(EMBEDDED_CLUSTER_NAMESPACE, config_map)
        self.logger.info(f"Version metadata for {spec.version} copied to {name}")
