"""Unit tests for the chart merge, drift, completion and policy logic."""

import pytest
from ecoperator.common.models.states import InstallationState
from ecoperator.resources.charts import (
    ChartCompletion,
    chart_completion,
    chart_drift,
    decide_chart_action,
    desired_helm_config,
    merge_helm_configs,
)
from ecoperator.types.models import Chart, HelmExtensions, InstalledChart, InstallationStatus, Repository
from ecoperator.utils.errors import ReconcileError
from ecoperator.utils.helpers import load_values, sha256_hex


def chart(name, version="1.0.0", values="", order=0):
    return Chart(
        name=name,
        chart_name=f"oci://proxy.example.com/{name}",
        version=version,
        values=values,
        target_ns=name,
        order=order,
        force_upgrade=None,
        timeout=None,
    )


def helm(*charts, repositories=None):
    return HelmExtensions(concurrency_level=1, charts=list(charts), repositories=repositories or [])


def installed(name, values="", version="1.0.0", error="", values_hash=None):
    return InstalledChart(
        name=f"k0s-addon-chart-{name}",
        release_name=name,
        spec_values=values,
        spec_version=version,
        status_version=version,
        status_values_hash=sha256_hex(values) if values_hash is None else values_hash,
        status_error=error,
    )


def status(state="", reason="", pending=None):
    return InstallationStatus(state=state, reason=reason, nodes_status=[], conditions=[], pending_charts=pending)


class TestMergeHelmConfigs:
    def test_builtin_then_vendor_with_offset_orders(self, make_record, release_metadata):
        record = make_record(
            "20240101000000",
            spec={
                "config": {
                    "version": "1.5.0+k8s-1.30",
                    "extensions": {
                        "helm": {"charts": [{"name": "vendor-app", "version": "0.1.0"}]}
                    },
                }
            },
        )
        combined = merge_helm_configs(record.spec, release_metadata)
        names = [c.name for c in combined.charts]
        assert names == ["openebs", "embedded-cluster-operator", "admin-console", "vendor-app"]
        assert combined.chart("openebs").order == 101
        assert combined.chart("vendor-app").order == 110

    def test_airgap_and_disaster_recovery_sets(self, make_record, release_metadata):
        record = make_record(
            "20240101000000",
            spec={"airGap": True, "licenseInfo": {"isDisasterRecoverySupported": True}},
        )
        names = [c.name for c in merge_helm_configs(record.spec, release_metadata).charts]
        assert "docker-registry" in names
        assert "velero" in names

    def test_rendered_addon_replaces_builtin(self, make_record, release_metadata):
        record = make_record("20240101000000", spec={})
        rendered = chart("admin-console", version="1.109.0", values="isHA: true\n", order=3)
        combined = merge_helm_configs(record.spec, release_metadata, [rendered])
        assert [c.name for c in combined.charts].count("admin-console") == 1
        assert load_values(combined.chart("admin-console").values) == {"isHA": True}

    def test_airgap_points_at_local_archives(self, make_record, release_metadata):
        record = make_record(
            "20240101000000",
            spec={"airGap": True, "runtimeConfig": {"dataDir": "/data/ec"}},
        )
        desired = desired_helm_config(record.spec, release_metadata)
        assert desired.repositories == []
        assert desired.chart("openebs").chart_name == "/data/ec/charts/openebs-4.1.0.tgz"

    def test_end_user_overrides_are_merged(self, make_record, release_metadata):
        record = make_record(
            "20240101000000",
            spec={
                "config": {
                    "unsupportedOverrides": {
                        "builtInExtensions": [{"name": "openebs", "values": "engines:\n  replicated: true\n"}]
                    }
                }
            },
        )
        desired = desired_helm_config(record.spec, release_metadata)
        assert load_values(desired.chart("openebs").values) == {"engines": {"replicated": True}}


class TestChartDrift:
    def test_no_drift(self):
        desired = helm(chart("a", values="x: 1\n"), chart("b"))
        current = helm(chart("a", values="x: 1"), chart("b"))
        assert chart_drift(desired, current) == (False, [])

    def test_single_version_change(self):
        desired = helm(chart("a"), chart("b", version="2.0.0"))
        current = helm(chart("a"), chart("b"))
        assert chart_drift(desired, current) == (True, ["b"])

    def test_missing_chart_and_repositories(self):
        repo = Repository(name="r", url="https://charts.example.com")
        desired = helm(chart("a"), chart("b"), repositories=[repo])
        current = helm(chart("a"))
        assert chart_drift(desired, current) == (True, ["b", "repositories"])

    def test_unparsable_values_fail_the_pass(self):
        with pytest.raises(ReconcileError):
            chart_drift(helm(chart("a", values="x: [1")), helm(chart("a")))


class TestChartCompletion:
    def test_each_chart_lands_in_one_partition(self):
        config = helm(
            chart("done", values="x: 1\n"),
            chart("broken"),
            chart("behind", version="2.0.0"),
            chart("missing"),
        )
        live = [
            installed("done", values="x: 1\n"),
            installed("broken", error="release failed"),
            installed("behind", version="1.0.0"),
        ]
        result = chart_completion(config, live)
        assert result.complete == ["done"]
        assert result.errors == {"broken": "release failed"}
        assert result.incomplete == ["behind"]
        assert result.unmatched == ["missing"]
        assert result.pending == ["behind", "missing"]

    def test_stale_values_hash_is_incomplete(self):
        result = chart_completion(helm(chart("a")), [installed("a", values_hash="old")])
        assert result.incomplete == ["a"]


class TestDecideChartAction:
    def completion(self, complete=None, incomplete=None, errors=None, unmatched=None):
        return ChartCompletion(
            complete=complete or [],
            incomplete=incomplete or [],
            errors=errors or {},
            unmatched=unmatched or [],
        )

    def test_errors_without_drift(self):
        decision = decide_chart_action(
            status(InstallationState.ADDONS_INSTALLING), False, [], self.completion(errors={"b": "boom"}), 1024
        )
        assert decision.state == InstallationState.HELM_CHART_UPDATE_FAILURE
        assert decision.reason == "failed to update helm charts: \nb: boom\n"
        assert decision.event_type == "Warning"

    def test_error_reason_is_truncated(self):
        decision = decide_chart_action(status(), False, [], self.completion(errors={"b": "x" * 100}), 40)
        assert len(decision.reason) == 40

    def test_drift_takes_precedence_over_errors(self):
        decision = decide_chart_action(
            status(InstallationState.KUBERNETES_INSTALLED), True, ["b"], self.completion(errors={"b": "boom"}), 1024
        )
        assert decision.state == InstallationState.ADDONS_INSTALLING
        assert decision.write is True
        assert decision.event_message == "Updated helm charts [b]"

    def test_everything_applied(self):
        decision = decide_chart_action(
            status(InstallationState.ADDONS_INSTALLING), False, [], self.completion(complete=["a"]), 1024
        )
        assert decision.state == InstallationState.INSTALLED
        assert decision.event_reason == "AddonsUpgraded"

    def test_pending_charts(self):
        decision = decide_chart_action(
            status(InstallationState.ADDONS_INSTALLING), False, [], self.completion(unmatched=["b"], incomplete=["a"]), 1024
        )
        assert decision.state == InstallationState.PENDING_CHART_CREATION
        assert decision.pending == ["a", "b"]
        assert decision.reason == "Pending charts: [a b]"

    def test_unchanged_pending_posts_no_event(self):
        decision = decide_chart_action(
            status(InstallationState.PENDING_CHART_CREATION, pending=["b"]),
            False,
            [],
            self.completion(unmatched=["b"]),
            1024,
        )
        assert decision.event_reason is None

    def test_write_in_flight_is_a_noop(self):
        decision = decide_chart_action(
            status(InstallationState.ADDONS_INSTALLING), True, ["a"], self.completion(complete=["a"]), 1024
        )
        assert decision.is_noop
