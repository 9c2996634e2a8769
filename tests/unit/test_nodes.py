"""Unit tests for node status tracking."""

import asyncio
from unittest.mock import AsyncMock, Mock
from kubernetes_asyncio.client import V1Node, V1ObjectMeta
from ecoperator.resources.nodes import NodeEventsBatch, NodeStatusTracker, node_event
from ecoperator.types.models import InstallationStatus, NodeStatus


def node_payload(name, role="control-plane", labels=None):
    return {
        "clusterID": "cluster-1",
        "version": "v1.30.1",
        "nodeName": name,
        "role": role,
        "labels": labels or {},
        "taints": [],
        "capacity": {},
        "nodeInfo": {},
    }


def empty_status():
    return InstallationStatus(state="", reason="", nodes_status=[], conditions=[], pending_charts=None)


class TestNodeStatusTracker:
    def test_new_nodes_are_added(self):
        status = empty_status()
        batch = NodeStatusTracker().track(status, [node_payload("node-b"), node_payload("node-a")])
        assert [e["nodeName"] for e in batch.added] == ["node-b", "node-a"]
        assert [ns.name for ns in status.nodes_status] == ["node-a", "node-b"]

    def test_second_run_is_idempotent(self):
        tracker = NodeStatusTracker()
        status = empty_status()
        events = [node_payload("node-a")]
        tracker.track(status, events)
        batch = tracker.track(status, events)
        assert batch.is_empty()

    def test_changed_node_is_updated(self):
        tracker = NodeStatusTracker()
        status = empty_status()
        tracker.track(status, [node_payload("node-a")])
        batch = tracker.track(status, [node_payload("node-a", labels={"zone": "b"})])
        assert [e["nodeName"] for e in batch.updated] == ["node-a"]
        assert not batch.added

    def test_missing_node_is_removed(self):
        status = empty_status()
        status.nodes_status = [NodeStatus(name="gone", hash="abc")]
        batch = NodeStatusTracker().track(status, [], cluster_id="cluster-1")
        assert batch.removed == [{"clusterID": "cluster-1", "nodeName": "gone"}]
        assert status.nodes_status == []

    def test_events_are_ordered_added_updated_removed(self):
        batch = NodeEventsBatch(
            added=[{"nodeName": "a"}], updated=[{"nodeName": "u"}], removed=[{"nodeName": "r"}]
        )
        assert [name for name, _ in batch.events()] == ["NodeAdded", "NodeUpdated", "NodeRemoved"]

    def test_notify_failures_are_logged(self):
        tracker = NodeStatusTracker()
        tracker.web_client = Mock(notify_event=AsyncMock(side_effect=RuntimeError("down")))
        tracker.logger = Mock()
        batch = NodeEventsBatch(added=[node_payload("node-a")])
        asyncio.run(tracker.notify("https://replicated.app", batch))
        tracker.logger.error.assert_called_once()

    def test_notify_without_base_url_is_skipped(self):
        tracker = NodeStatusTracker()
        tracker.web_client = Mock(notify_event=AsyncMock())
        asyncio.run(tracker.notify(None, NodeEventsBatch(added=[node_payload("node-a")])))
        tracker.web_client.notify_event.assert_not_awaited()


class TestNodeEvent:
    def test_roles_come_from_labels(self):
        node = V1Node(
            metadata=V1ObjectMeta(
                name="node-a",
                labels={
                    "node-role.kubernetes.io/control-plane": "true",
                    "kubernetes.io/os": "linux",
                },
            )
        )
        event = node_event(node, "cluster-1", None)
        assert event["nodeName"] == "node-a"
        assert event["role"] == "control-plane"
        assert event["version"] == ""
