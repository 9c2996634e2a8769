"""Unit tests for addon selection and rendering."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock
import pytest
from ecoperator.addons import (
    AddonApplier,
    AddonOptions,
    AdminConsole,
    Registry,
    SeaweedFS,
    Velero,
    addons_for,
)
from ecoperator.addons.components import seaweedfs_s3_config
from ecoperator.resources.registry import admin_credentials
from ecoperator.utils.errors import ReconcileError
from ecoperator.utils.helpers import load_values


def options(**overrides):
    values = dict(
        cluster_id="cluster-1",
        binary_name="my-app",
        air_gap=False,
        high_availability=False,
        disaster_recovery=False,
        service_cidr="10.96.0.0/12",
        data_dir="/var/lib/embedded-cluster",
        proxy=None,
    )
    values.update(overrides)
    return AddonOptions(**values)


class TestAddonsFor:
    def test_online_single_node(self, release_metadata):
        names = [a.name for a in addons_for(options(), release_metadata)]
        assert names == ["openebs", "embedded-cluster-operator", "admin-console"]

    def test_airgap_ha_with_disaster_recovery(self, release_metadata):
        topology = options(air_gap=True, high_availability=True, disaster_recovery=True)
        names = [a.name for a in addons_for(topology, release_metadata)]
        assert names == [
            "openebs",
            "seaweedfs",
            "docker-registry",
            "embedded-cluster-operator",
            "admin-console",
            "velero",
        ]


class TestAddonOptions:
    def test_from_record(self, make_record):
        record = make_record(
            "20240101000000",
            spec={
                "clusterID": "c1",
                "binaryName": "my-app",
                "airGap": True,
                "network": {"serviceCIDR": "10.100.0.0/16"},
                "runtimeConfig": {"dataDir": "/data"},
            },
        )
        opts = AddonOptions.from_record(record, high_availability=True)
        assert opts.cluster_id == "c1"
        assert opts.air_gap is True
        assert opts.high_availability is True
        assert opts.service_cidr == "10.100.0.0/16"
        assert opts.data_dir == "/data"

    def test_proxy_env(self, make_record):
        record = make_record(
            "20240101000000", spec={"proxy": {"httpProxy": "http://proxy:3128", "noProxy": "10.0.0.0/8"}}
        )
        assert AddonOptions.from_record(record).proxy_env() == [
            {"name": "HTTP_PROXY", "value": "http://proxy:3128"},
            {"name": "NO_PROXY", "value": "10.0.0.0/8"},
        ]


class TestRendering:
    def test_admin_console_values(self, release_metadata):
        chart = AdminConsole(options(air_gap=True, high_availability=True), release_metadata).chart()
        values = load_values(chart.values)
        assert values["isHA"] is True
        assert values["isAirgap"] == "true"
        assert values["embeddedClusterID"] == "cluster-1"
        assert chart.version == "1.109.0"

    def test_registry_single_node(self, release_metadata):
        chart = Registry(options(air_gap=True), release_metadata).chart()
        values = load_values(chart.values)
        assert values["service"]["clusterIP"] == "10.96.0.10"
        assert values["replicaCount"] == 1
        assert "s3" not in values

    def test_registry_ha_uses_seaweedfs(self, release_metadata):
        chart = Registry(options(air_gap=True, high_availability=True), release_metadata).chart()
        values = load_values(chart.values)
        assert values["replicaCount"] == 2
        assert values["storage"] == "s3"
        assert values["s3"]["regionEndpoint"] == "http://10.96.0.11:8333"
        assert values["secrets"]["s3"]["secretRef"] == "seaweedfs-s3-rw"

    def test_velero_without_proxy_keeps_builtin_values(self, release_metadata):
        chart = Velero(options(disaster_recovery=True), release_metadata).chart()
        assert chart.values == ""

    def test_missing_chart_renders_nothing(self, release_metadata):
        release_metadata.builtin_configs.pop("seaweedfs")
        assert SeaweedFS(options(air_gap=True, high_availability=True), release_metadata).chart() is None


class TestSeaweedFS:
    def test_s3_config_round_trips_admin_credentials(self):
        config = seaweedfs_s3_config(("admin-key", "admin-secret"), ("ro-key", "ro-secret"))
        assert admin_credentials(config) == ("admin-key", "admin-secret")
        identities = json.loads(config)["identities"]
        assert identities[1]["actions"] == ["Read"]

    def test_service_is_recreated_when_ip_changes(self, release_metadata):
        addon = SeaweedFS(options(air_gap=True, high_availability=True), release_metadata)
        existing = Mock()
        existing.spec.cluster_ip = "10.96.0.99"
        addon.fetch_service = AsyncMock(return_value=existing)
        addon.delete_service = AsyncMock()
        addon.create_service = AsyncMock()
        addon.logger = Mock()
        asyncio.run(addon.ensure_s3_service())
        addon.delete_service.assert_awaited_once()
        created = addon.create_service.await_args.args[1]
        assert created.spec.cluster_ip == "10.96.0.11"

    def test_existing_secret_is_kept(self, release_metadata):
        addon = SeaweedFS(options(air_gap=True, high_availability=True), release_metadata)
        addon.fetch_secret = AsyncMock(return_value=Mock())
        addon.create_secret = AsyncMock()
        asyncio.run(addon.ensure_s3_secret())
        addon.create_secret.assert_not_awaited()


class TestAddonApplier:
    def test_unknown_addon(self, make_record, release_metadata):
        applier = AddonApplier(make_record("20240101000000"), release_metadata)
        with pytest.raises(ReconcileError):
            applier.addon("velero")

    def test_upgrade_upserts_and_waits(self, make_record, release_metadata):
        record = make_record("20240101000000", spec={"clusterID": "c1"})
        applier = AddonApplier(record, release_metadata, options(high_availability=True))
        applier.charts_reconciler = Mock(upsert_chart=AsyncMock(), wait_for_chart=AsyncMock())
        applier.logger = Mock()
        asyncio.run(applier.upgrade("admin-console"))
        chart = applier.charts_reconciler.upsert_chart.await_args.args[0]
        assert chart.name == "admin-console"
        assert load_values(chart.values)["isHA"] is True
        assert chart.order == 103
        applier.charts_reconciler.wait_for_chart.assert_awaited_once_with(chart)
