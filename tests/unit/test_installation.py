"""Unit tests for the Installation reconcile pass."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch
import pytest
from ecoperator.common.models.states import InstallationState
from ecoperator.resources.installation import (
    InstallationController,
    coalesce_installations,
    high_availability_condition,
    installation_event,
    normalize_version,
)
from ecoperator.resources.nodes import NodeEventsBatch
from ecoperator.resources.upgrade import UpgradeOrchestrator
from ecoperator.types.settings import Settings
from ecoperator.utils.errors import ReconcileError, StatusConflictError
from ecoperator.utils.helpers import condition_status

OLDER = "20240101000000"
NEWEST = "20240201000000"


@pytest.fixture
def controller():
    controller = InstallationController()
    controller.store = Mock(
        list_installations=AsyncMock(return_value=[]),
        update_status=AsyncMock(side_effect=lambda record: record),
    )
    controller.nodes = Mock(reconcile=AsyncMock(return_value=NodeEventsBatch()), notify=AsyncMock())
    controller.volumes = Mock(cleanup=AsyncMock(return_value=0))
    controller.registry = Mock(reconcile=AsyncMock())
    controller.logger = Mock()
    return controller


class TestCoalesceInstallations:
    def test_newest_inherits_node_statuses(self, make_record):
        older = make_record(OLDER, status={"nodesStatus": [{"name": "node-a", "hash": "h1"}]})
        newest = make_record(NEWEST)
        chosen = coalesce_installations([older, newest])
        assert chosen.name == NEWEST
        assert [ns.name for ns in chosen.status.nodes_status] == ["node-a"]
        assert chosen.status.nodes_status is not older.status.nodes_status

    def test_newest_keeps_its_own_node_statuses(self, make_record):
        older = make_record(OLDER, status={"nodesStatus": [{"name": "node-a", "hash": "h1"}]})
        newest = make_record(NEWEST, status={"nodesStatus": [{"name": "node-b", "hash": "h2"}]})
        chosen = coalesce_installations([newest, older])
        assert [ns.name for ns in chosen.status.nodes_status] == ["node-b"]

    def test_creation_time_breaks_name_ties(self, make_record):
        first = make_record(NEWEST, creation_timestamp="2024-02-01T00:00:00Z", spec={"clusterID": "a"})
        second = make_record(NEWEST, creation_timestamp="2024-02-01T00:00:05Z", spec={"clusterID": "b"})
        assert coalesce_installations([first, second]).spec.cluster_id == "b"


class TestInstallationEvent:
    def test_upgrade_started(self, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1", "config": {"version": "1.5.0"}})
        before = make_record(NEWEST, status={"state": InstallationState.ENQUEUED}).status
        record.status.set_state(InstallationState.INSTALLING, "")
        assert installation_event(before, record) == ("UpgradeStarted", {"clusterID": "c1", "version": "1.5.0"})

    def test_upgrade_failed_carries_reason(self, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1"})
        before = make_record(NEWEST, status={"state": InstallationState.INSTALLING}).status
        record.status.set_state(InstallationState.FAILED, "Downgrades not supported")
        assert installation_event(before, record) == (
            "UpgradeFailed",
            {"clusterID": "c1", "reason": "Downgrades not supported"},
        )

    def test_first_observation_reports_nothing(self, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1"})
        before = make_record(NEWEST).status
        record.status.set_state(InstallationState.INSTALLED, "Installed")
        assert installation_event(before, record) is None


class TestHighAvailabilityCondition:
    def test_online_ha_is_ready(self, make_record):
        record = make_record(NEWEST, spec={"highAvailability": True})
        assert high_availability_condition(record)["status"] == "True"

    def test_airgap_ha_waits_for_migration(self, make_record):
        record = make_record(NEWEST, spec={"highAvailability": True, "airGap": True})
        assert high_availability_condition(record)["reason"] == "HighAvailabilityNotReady"

    def test_airgap_ha_after_migration(self, make_record):
        record = make_record(
            NEWEST,
            spec={"highAvailability": True, "airGap": True},
            status={"conditions": [{"type": "RegistryMigrationStatus", "status": "True"}]},
        )
        assert high_availability_condition(record)["status"] == "True"


class TestStaleBinary:
    def test_version_prefix_is_normalized(self):
        assert normalize_version("1.5.0") == "v1.5.0"
        assert normalize_version("v1.5.0") == "v1.5.0"

    def test_mismatch_skips_the_pass(self, controller, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1", "config": {"version": "1.6.0"}})
        controller.store.list_installations = AsyncMock(return_value=[record])
        controller.conf = Settings(operator_version="v1.5.0")
        result = asyncio.run(controller.reconcile())
        assert result is record
        controller.store.update_status.assert_not_awaited()


class TestInstallationReconcile:
    def test_no_installations(self, controller):
        assert asyncio.run(controller.reconcile()) is None

    def test_missing_cluster_id_is_left_alone(self, controller, make_record):
        record = make_record(NEWEST)
        controller.store.list_installations = AsyncMock(return_value=[record])
        assert asyncio.run(controller.reconcile()) is record
        controller.store.update_status.assert_not_awaited()

    def test_obsolete_installations_are_ignored(self, controller, make_record):
        obsolete = make_record(NEWEST, spec={"clusterID": "c1"}, status={"state": InstallationState.OBSOLETE})
        controller.store.list_installations = AsyncMock(return_value=[obsolete])
        assert asyncio.run(controller.reconcile()) is None

    def test_unversioned_installation_is_installed(self, controller, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1", "metricsBaseURL": "https://replicated.app"})
        controller.store.list_installations = AsyncMock(return_value=[record])
        result = asyncio.run(controller.reconcile())
        assert result.status.state == InstallationState.INSTALLED
        assert condition_status(result.status.conditions, "HighAvailability") == "False"
        controller.store.update_status.assert_awaited_once()
        controller.registry.reconcile.assert_awaited_once()
        controller.nodes.notify.assert_awaited_once()

    def test_airgap_skips_node_notifications(self, controller, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1", "airGap": True, "metricsBaseURL": "https://x"})
        controller.store.list_installations = AsyncMock(return_value=[record])
        asyncio.run(controller.reconcile())
        controller.nodes.notify.assert_not_awaited()

    def test_older_installations_become_obsolete(self, controller, make_record):
        older = make_record(OLDER, spec={"clusterID": "c1"}, status={"state": InstallationState.INSTALLED})
        newest = make_record(NEWEST, spec={"clusterID": "c1"})
        controller.store.list_installations = AsyncMock(return_value=[newest, older])
        controller.upgrade = Mock(reconcile=AsyncMock())
        asyncio.run(controller.reconcile())
        written = [call.args[0] for call in controller.store.update_status.await_args_list]
        assert [r.name for r in written] == [NEWEST, OLDER]
        assert older.status.state == InstallationState.OBSOLETE
        assert older.status.reason == "This is not the most recent installation object"
        assert older.status.nodes_status == []

    def test_running_upgrade_is_not_converged_once_older_is_obsolete(self, controller, make_record, release_metadata):
        older = make_record(
            OLDER,
            spec={"clusterID": "c1", "config": {"version": "1.4.0+k8s-1.29"}},
            status={"state": InstallationState.OBSOLETE},
        )
        newest = make_record(
            NEWEST,
            spec={"clusterID": "c1", "config": {"version": "1.5.0+k8s-1.30"}},
            status={"state": InstallationState.ENQUEUED},
        )
        controller.store.list_installations = AsyncMock(return_value=[newest, older])
        upgrade = UpgradeOrchestrator()
        upgrade.release = Mock(metadata_for=AsyncMock(return_value=release_metadata))
        upgrade.server_version = AsyncMock(return_value="v1.29.5+k0s")
        upgrade.fetch_plan = AsyncMock(
            return_value={
                "metadata": {
                    "name": "autopilot",
                    "annotations": {"embedded-cluster.replicated.com/installation-name": NEWEST},
                },
                "spec": {"id": "random", "commands": [{"k0supdate": {"version": "v1.30.1+k0s.0"}}]},
                "status": {"state": "Schedulable"},
            }
        )
        controller.upgrade = upgrade
        controller.reconcile_charts = AsyncMock()
        asyncio.run(controller.reconcile())
        assert newest.status.state == InstallationState.INSTALLING
        controller.reconcile_charts.assert_not_awaited()
        written = [call.args[0].name for call in controller.store.update_status.await_args_list]
        assert written == [NEWEST]

    def test_config_secret_failure_is_persisted(self, controller, make_record):
        older = make_record(OLDER, spec={"clusterID": "c1"}, status={"nodesStatus": [{"name": "node-a", "hash": "h"}]})
        newest = make_record(
            NEWEST,
            spec={"clusterID": "c1", "configSecret": {"name": "ec-config", "namespace": "embedded-cluster"}},
        )
        controller.store.list_installations = AsyncMock(return_value=[newest, older])
        controller.fetch_secret = AsyncMock(return_value=None)
        with pytest.raises(ReconcileError, match="failed to get config secret"):
            asyncio.run(controller.reconcile())
        assert newest.status.state == InstallationState.FAILED
        assert [ns.name for ns in newest.status.nodes_status] == ["node-a"]
        assert older.status.state == InstallationState.OBSOLETE

    def test_status_conflict_ends_the_pass_quietly(self, controller, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1"})
        controller.store.list_installations = AsyncMock(return_value=[record])
        controller.store.update_status = AsyncMock(side_effect=StatusConflictError("conflict"))
        assert asyncio.run(controller.reconcile()) is record

    def test_node_changes_are_posted_as_events(self, controller, make_record):
        record = make_record(NEWEST, spec={"clusterID": "c1"})
        controller.store.list_installations = AsyncMock(return_value=[record])
        controller.nodes.reconcile = AsyncMock(
            return_value=NodeEventsBatch(added=[{"nodeName": "node-a"}], removed=[{"nodeName": "node-b"}])
        )
        with patch("ecoperator.resources.installation.kopf.event") as event:
            asyncio.run(controller.reconcile())
        reasons = [call.kwargs["reason"] for call in event.call_args_list]
        assert reasons == ["NodeAdded", "NodeRemoved"]
        assert event.call_args_list[0].kwargs["message"] == "Node node-a has been added"


class TestReconcileCharts:
    def test_failed_installation_is_skipped(self, controller, make_record):
        record = make_record(
            NEWEST, spec={"config": {"version": "1.5.0"}}, status={"state": InstallationState.FAILED}
        )
        controller.release = Mock(metadata_for=AsyncMock())
        asyncio.run(controller.reconcile_charts(record))
        controller.release.metadata_for.assert_not_awaited()

    def test_release_without_addons(self, controller, make_record, release_metadata):
        record = make_record(
            NEWEST, spec={"config": {"version": "1.5.0"}}, status={"state": InstallationState.KUBERNETES_INSTALLED}
        )
        release_metadata.configs.charts = []
        controller.release = Mock(metadata_for=AsyncMock(return_value=release_metadata))
        asyncio.run(controller.reconcile_charts(record))
        assert record.status.state == InstallationState.INSTALLED

    def test_charts_are_reconciled_with_rendered_addons(self, controller, make_record, release_metadata):
        record = make_record(
            NEWEST,
            spec={"clusterID": "c1", "config": {"version": "1.5.0"}},
            status={"state": InstallationState.KUBERNETES_INSTALLED},
        )
        controller.release = Mock(metadata_for=AsyncMock(return_value=release_metadata))
        controller.charts = Mock(reconcile=AsyncMock())
        asyncio.run(controller.reconcile_charts(record))
        rendered = controller.charts.reconcile.await_args.args[4]
        assert [c.name for c in rendered] == ["openebs", "embedded-cluster-operator", "admin-console"]
