from typing import Set
from kubernetes_asyncio.client import V1PersistentVolumeClaim
from ecoperator.common.models.labels import Labels
from ecoperator.resources.base import BaseResource


def is_stale_local_claim(pvc: V1PersistentVolumeClaim, live_nodes: Set[str]) -> bool:
    """Whether a local volume claim is pinned to a node that no longer exists."""
    annotations = pvc.metadata.annotations or {}
    if annotations.get(Labels.STORAGE_PROVISIONER_ANNOTATION) != Labels.OPENEBS_LOCAL_PROVISIONER:
        return False
    node = annotations.get(Labels.SELECTED_NODE_ANNOTATION)
    return bool(node) and node not in live_nodes


class StaleVolumeCleaner(BaseResource):
    """Frees workloads stuck on local volumes of removed nodes."""

    async def cleanup(self, live_nodes: Set[str]) -> int:
        """Delete the pods, claim and volume of every stale local claim.

        Returns how many claims were removed.
        """
        removed = 0
        for pvc in await self.list_persistent_volume_claims():
            if not is_stale_local_claim(pvc, live_nodes):
                continue
            name, namespace = pvc.metadata.name, pvc.metadata.namespace
            self.logger.info(f"Removing stale volume claim {namespace}/{name}")
            for pod in await self.list_pods(namespace=namespace):
                for volume in (pod.spec.volumes if pod.spec else None) or []:
                    claim = volume.persistent_volume_claim
                    if claim is not None and claim.claim_name == name:
                        await self.delete_pod(pod.metadata.name, namespace)
                        break
            await self.delete_persistent_volume_claim(name, namespace)
            if pvc.spec is not None and pvc.spec.volume_name:
                await self.delete_persistent_volume(pvc.spec.volume_name)
            removed += 1
        return removed
