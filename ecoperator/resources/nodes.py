from typing import Dict, List, Optional
from kubernetes_asyncio.client import V1Node
from ecoperator.common.models.labels import Labels
from ecoperator.resources.base import BaseResource
from ecoperator.types.base import BaseModel
from ecoperator.types.models import InstallationStatus, NodeStatus

NODE_ADDED = "NodeAdded"
NODE_UPDATED = "NodeUpdated"
NODE_REMOVED = "NodeRemoved"

SENSOR_EVENTS = {NODE_ADDED: "added", NODE_UPDATED: "updated", NODE_REMOVED: "removed"}


class NodeEventsBatch(BaseModel):
    """Node changes detected by one tracker run."""

    added: List[Dict]
    updated: List[Dict]
    removed: List[Dict]

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("added", [])
        kwargs.setdefault("updated", [])
        kwargs.setdefault("removed", [])
        super().__init__(**kwargs)

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    def events(self):
        """Yield (event name, payload) pairs in added, updated, removed order."""
        for payload in self.added:
            yield NODE_ADDED, payload
        for payload in self.updated:
            yield NODE_UPDATED, payload
        for payload in self.removed:
            yield NODE_REMOVED, payload


def node_roles(labels: Dict[str, str]) -> List[str]:
    prefix = Labels.NODE_ROLE_PREFIX
    return sorted(key[len(prefix):] for key in labels if key.startswith(prefix))


def node_event(node: V1Node, cluster_id: str, version: Optional[str]) -> Dict:
    """Describe a live node with the attributes that matter to the deployment."""
    metadata = node.metadata
    labels = dict(metadata.labels or {})
    taints = []
    if node.spec is not None:
        for taint in node.spec.taints or []:
            taints.append({"key": taint.key, "value": taint.value or "", "effect": taint.effect})
    capacity = {}
    info = {}
    if node.status is not None:
        raw = node.status.capacity or {}
        capacity = {key: str(raw[key]) for key in ("cpu", "memory", "pods") if key in raw}
        node_info = node.status.node_info
        if node_info is not None:
            info = {
                "kernelVersion": node_info.kernel_version,
                "osImage": node_info.os_image,
                "kubeletVersion": node_info.kubelet_version,
            }
    return {
        "clusterID": cluster_id,
        "version": version or "",
        "nodeName": metadata.name,
        "role": ",".join(node_roles(labels)),
        "labels": labels,
        "taints": taints,
        "capacity": capacity,
        "nodeInfo": info,
    }


class NodeStatusTracker(BaseResource):
    """Diffs the live node inventory against the node statuses kept on an Installation."""

    def track(
        self, status: InstallationStatus, events: List[Dict], cluster_id: Optional[str] = None
    ) -> NodeEventsBatch:
        """Apply the live node events to ``status`` and return what changed.

        Only the in-memory status is touched. Running it twice against the
        same nodes yields an empty batch the second time.
        """
        batch = NodeEventsBatch()
        known = {ns.name: ns for ns in status.nodes_status or []}
        live = set()
        for event in events:
            name = event["nodeName"]
            live.add(name)
            digest = self.compute_hash(event)
            current = known.get(name)
            if current is None:
                known[name] = NodeStatus(name=name, hash=digest)
                batch.added.append(event)
            elif current.hash != digest:
                current.hash = digest
                batch.updated.append(event)

        for name in list(known):
            if name not in live:
                del known[name]
                batch.removed.append({"clusterID": cluster_id, "nodeName": name})

        status.nodes_status = [known[name] for name in sorted(known)]
        return batch

    async def live_events(self, cluster_id: str, version: Optional[str]) -> List[Dict]:
        nodes = await self.list_nodes()
        return [node_event(node, cluster_id, version) for node in nodes]

    async def reconcile(
        self, installation_name: str, status: InstallationStatus, cluster_id: str, version: Optional[str]
    ) -> NodeEventsBatch:
        events = await self.live_events(cluster_id, version)
        batch = self.track(status, events, cluster_id)
        for event_name, payload in batch.events():
            self.sensor.on_node_event(installation_name, payload["nodeName"], SENSOR_EVENTS[event_name])
        return batch

    async def notify(self, base_url: Optional[str], batch: NodeEventsBatch) -> None:
        """Post node events to the metrics endpoint. Failures are only logged."""
        if not base_url or self.web_client is None:
            return
        for event_name, payload in batch.events():
            try:
                await self.web_client.notify_event(base_url, event_name, payload)
            except Exception as e:
                self.logger.error(f"Failed to notify {event_name} for {payload['nodeName']}: {e}")
