import hashlib
import json
from typing import Dict, Tuple
from kubernetes_asyncio.client import (
    V1Container,
    V1EnvVar,
    V1HostPathVolumeSource,
    V1Job,
    V1JobSpec,
    V1Node,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
    V1Volume,
    V1VolumeMount,
)
from ecoperator.common.models.labels import Labels
from ecoperator.common.models.states import InstallationState, JobState
from ecoperator.resources.base import BaseResource
from ecoperator.resources.release import EMBEDDED_CLUSTER_NAMESPACE
from ecoperator.types.models import InstallationSpec, InstallationStatus
from ecoperator.utils.helpers import name_with_length_limit

COPY_ARTIFACTS_JOB_PREFIX = "copy-artifacts-"
COPY_ARTIFACTS_CONTAINER = "embedded-cluster-updater"
DEFAULT_UTILS_IMAGE = "busybox:latest"
HOST_DATA_DIR = "/var/lib/embedded-cluster"
JOB_SERVICE_ACCOUNT = "embedded-cluster-operator"
JOB_BACKOFF_LIMIT = 2

COPY_ARTIFACTS_SCRIPT = "\n".join(
    [
        "/var/lib/embedded-cluster/bin/local-artifact-mirror pull binaries $INSTALLATION",
        "/var/lib/embedded-cluster/bin/local-artifact-mirror pull images $INSTALLATION",
        "/var/lib/embedded-cluster/bin/local-artifact-mirror pull helmcharts $INSTALLATION",
        "mv /var/lib/embedded-cluster/bin/k0s /var/lib/embedded-cluster/bin/k0s-upgrade",
        "rm /var/lib/embedded-cluster/images/images-amd64-* || true",
        "cd /var/lib/embedded-cluster/images/",
        "mv images-amd64.tar images-amd64-${INSTALLATION}.tar",
        "echo 'done'",
    ]
)


def artifacts_hash(spec: InstallationSpec) -> str:
    """Short digest of the artifact locations, used to spot configuration changes."""
    artifacts = spec.artifacts
    data = json.dumps(
        {
            "images": artifacts.images,
            "helmCharts": artifacts.helm_charts,
            "embeddedClusterBinary": artifacts.embedded_cluster_binary,
            "embeddedClusterMetadata": artifacts.embedded_cluster_metadata,
        }
    )
    return hashlib.sha256(data.encode()).hexdigest()[:10]


def job_state(job: V1Job) -> str:
    status = job.status
    if status is not None and (status.succeeded or 0) > 0:
        return JobState.SUCCEEDED
    for cond in (status.conditions if status is not None else None) or []:
        if cond.type == "Failed" and cond.status == "True":
            return f"{JobState.FAILED}: {cond.message}"
    return JobState.RUNNING


class ArtifactsDistributor(BaseResource):
    """Runs one job per node that pulls the airgap artifacts onto the host."""

    def prepare_job(self, installation_name: str, node: V1Node, config_hash: str) -> V1Job:
        labels = {
            Labels.JOB_INSTALLATION_LABEL: installation_name,
            Labels.JOB_ARTIFACTS_HASH_LABEL: config_hash,
        }
        image = self.conf.utils_image or DEFAULT_UTILS_IMAGE
        container = V1Container(
            name=COPY_ARTIFACTS_CONTAINER,
            image=image,
            command=["/bin/sh", "-e", "-c", COPY_ARTIFACTS_SCRIPT],
            env=[V1EnvVar(name="INSTALLATION", value=installation_name)],
            volume_mounts=[V1VolumeMount(name="host", mount_path=HOST_DATA_DIR)],
        )
        pod_spec = V1PodSpec(
            node_name=node.metadata.name,
            restart_policy="Never",
            service_account_name=JOB_SERVICE_ACCOUNT,
            containers=[container],
            volumes=[
                V1Volume(
                    name="host",
                    host_path=V1HostPathVolumeSource(path=HOST_DATA_DIR, type="Directory"),
                )
            ],
        )
        return V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=V1ObjectMeta(
                name=name_with_length_limit(COPY_ARTIFACTS_JOB_PREFIX, node.metadata.name),
                namespace=EMBEDDED_CLUSTER_NAMESPACE,
                labels=labels,
            ),
            spec=V1JobSpec(
                backoff_limit=JOB_BACKOFF_LIMIT,
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(labels=dict(labels)),
                    spec=pod_spec,
                ),
            ),
        )

    async def node_job_state(self, installation_name: str, node: V1Node, config_hash: str) -> str:
        name = name_with_length_limit(COPY_ARTIFACTS_JOB_PREFIX, node.metadata.name)
        job = await self.fetch_job(name, EMBEDDED_CLUSTER_NAMESPACE)
        if job is None:
            await self.create_job(
                EMBEDDED_CLUSTER_NAMESPACE, self.prepare_job(installation_name, node, config_hash)
            )
            self.logger.info(f"Artifact job for node {node.metadata.name} created")
            return JobState.CREATED

        labels = job.metadata.labels or {}
        stale = labels.get(Labels.JOB_INSTALLATION_LABEL) != installation_name
        changed = labels.get(Labels.JOB_ARTIFACTS_HASH_LABEL) != config_hash
        if stale or changed:
            self.logger.info(f"Deleting previous job {name} (stale={stale}, changed={changed})")
            await self.delete_job(name, EMBEDDED_CLUSTER_NAMESPACE)
            return JobState.WAITING_DELETION
        return job_state(job)

    async def copy_to_nodes(
        self, installation_name: str, spec: InstallationSpec, status: InstallationStatus
    ) -> bool:
        """Make sure every node holds this installation's artifacts.

        Returns True once all jobs succeeded. Otherwise the status carries the
        per node progress.
        """
        if spec.artifacts is None:
            status.set_state(
                InstallationState.FAILED,
                "Artifacts locations not specified for an airgap installation",
            )
            return False

        config_hash = artifacts_hash(spec)
        states: Dict[str, str] = {}
        for node in await self.list_nodes():
            states[node.metadata.name] = await self.node_job_state(
                installation_name, node, config_hash
            )

        ready, reason = summarize_job_states(states)
        if ready:
            return True
        state = InstallationState.COPYING_ARTIFACTS
        if JobState.FAILED in reason:
            state = InstallationState.FAILED
        status.set_state(state, reason)
        return False


def summarize_job_states(states: Dict[str, str]) -> Tuple[bool, str]:
    ready = all(state == JobState.SUCCEEDED for state in states.values())
    parts = [f"{name}({states[name]})" for name in sorted(states)]
    return ready, "Copying artifacts to nodes: " + ", ".join(parts)
