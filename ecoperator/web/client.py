"""HTTP clients for the replicated endpoints and the in-cluster registry."""
import logging
from typing import Any, Dict, Optional, Tuple
from aiohttp import BasicAuth
from yarl import URL
from ecoperator.types.models import ReleaseMetadata
from ecoperator.types.schemas import ReleaseMetadataSchema
from .error import NotFoundError
from .session import SessionManager

logger = logging.getLogger(__name__)

METRICS_PATH = "/embedded_cluster_metrics/{event}"
METADATA_PATH = "/embedded-cluster-public-files/metadata/v{version}.json"
K0S_BINARY_PATH = "/embedded-cluster-public-files/k0s-binaries/{version}"

OCI_MANIFEST_TYPES = ", ".join(
    [
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)
OCI_TITLE_ANNOTATION = "org.opencontainers.image.title"

RQLITE_PORT = 4001
RQLITE_SYNCED = "sync ok"


def parse_reference(reference: str) -> Tuple[str, str, str]:
    """Split ``host[:port]/repo/path:tag`` into host, repository and tag."""
    host, _, rest = reference.partition("/")
    if not rest:
        raise ValueError(f"invalid artifact reference {reference!r}")
    if "@" in rest:
        repository, _, tag = rest.partition("@")
    else:
        repository, sep, tag = rest.rpartition(":")
        if not sep:
            repository, tag = rest, "latest"
    return host, repository, tag


def strip_version_prefix(version: str) -> str:
    return version[1:] if version.startswith("v") else version


class MetricsWebClient(SessionManager):
    """Client for the replicated metrics and public files endpoints."""

    def __init__(self, **kwargs: Any) -> None:
        headers = kwargs.pop("headers", None) or {}
        headers["Content-Type"] = "application/json"
        super().__init__(headers=headers, **kwargs)

    async def notify_event(self, base_url: str, event: str, payload: Dict) -> None:
        """Post an event to the metrics endpoint."""
        url = URL(base_url).with_path(METRICS_PATH.format(event=event))
        await self.post(url, data={"event": payload})

    async def fetch_metadata(self, base_url: str, version: str) -> ReleaseMetadata:
        """Fetch the release metadata for a version from the public files bucket."""
        path = METADATA_PATH.format(version=strip_version_prefix(version))
        url = URL(base_url).with_path(path)
        return await self.get(url, schema=ReleaseMetadataSchema())

    @staticmethod
    def k0s_binary_url(base_url: str, k0s_version: str) -> str:
        return str(URL(base_url).with_path(K0S_BINARY_PATH.format(version=k0s_version)))

    async def pull_layer(
        self,
        reference: str,
        title: str,
        auth: Optional[BasicAuth] = None,
    ) -> bytes:
        """Pull a single titled layer of an OCI artifact over the registry v2 API."""
        host, repository, tag = parse_reference(reference)
        base = URL(f"http://{host}")
        headers = {"Accept": OCI_MANIFEST_TYPES}
        if auth is not None:
            headers["Authorization"] = auth.encode()
        manifest_url = base.with_path(f"/v2/{repository}/manifests/{tag}")
        manifest = await self.get(manifest_url, headers=headers)
        for layer in manifest.get("layers") or []:
            annotations = layer.get("annotations") or {}
            if annotations.get(OCI_TITLE_ANNOTATION) == title:
                blob_url = base.with_path(f"/v2/{repository}/blobs/{layer['digest']}")
                logger.info(f"Pulling {title} from {host}/{repository}:{tag}")
                return await self.get_bytes(blob_url, headers=headers)
        raise NotFoundError(f"layer {title} not found in {reference}")

    async def rqlite_synced(self, pod_ip: str) -> bool:
        """Whether the rqlite node at ``pod_ip`` reports itself in sync with the leader."""
        url = URL.build(
            scheme="http",
            host=pod_ip,
            port=RQLITE_PORT,
            path="/readyz",
            query_string="sync&timeout=5s",
        )
        try:
            body = await self.get_text(url)
        except Exception as e:
            logger.debug(f"rqlite at {pod_ip} not ready: {e}")
            return False
        return RQLITE_SYNCED in body
