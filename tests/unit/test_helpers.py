"""Unit tests for the values and condition helpers."""

import pytest
from ecoperator.utils.helpers import (
    condition_status,
    lower_band_ip,
    merge_values,
    name_with_length_limit,
    set_helm_values,
    load_values,
    upsert_condition,
    yaml_diff,
)


class TestYamlDiff:
    def test_key_order_is_not_a_difference(self):
        assert yaml_diff("a: 1\nb: 2\n", "b: 2\na: 1\n") is False

    def test_comments_and_whitespace_are_not_a_difference(self):
        assert yaml_diff("a:   1  # one\n", "a: 1") is False

    def test_changed_value(self):
        assert yaml_diff("a: 1\n", "a: 2\n") is True

    def test_empty_documents_are_equal(self):
        assert yaml_diff("", None) is False

    def test_invalid_document_names_the_side(self):
        with pytest.raises(ValueError, match="yaml B values error"):
            yaml_diff("a: 1", "a: [1")


class TestMergeValues:
    def test_override_wins(self):
        merged = merge_values("a: 1\nb:\n  c: 2\n", "b:\n  c: 3\n")
        assert load_values(merged) == {"a": 1, "b": {"c": 3}}

    def test_null_deletes(self):
        merged = merge_values("a: 1\nb: 2\n", "b: null\n")
        assert load_values(merged) == {"a": 1}

    def test_empty_override_keeps_values(self):
        assert merge_values("a: 1\n", "") == "a: 1\n"


class TestSetHelmValues:
    def test_nested_path_is_created(self):
        result = set_helm_values("a: 1\n", {"service.clusterIP": "10.96.0.10"})
        assert load_values(result) == {"a": 1, "service": {"clusterIP": "10.96.0.10"}}

    def test_siblings_and_dotted_keys_survive(self):
        values = "s3:\n  bucket: old\n  secure: false\npodAnnotations:\n  prometheus.io/scrape: \"true\"\n"
        result = load_values(set_helm_values(values, {"s3.bucket": "registry", "s3.region": "us-east-1"}))
        assert result["s3"] == {"bucket": "registry", "secure": False, "region": "us-east-1"}
        assert result["podAnnotations"] == {"prometheus.io/scrape": "true"}

    def test_no_paths_keeps_document(self):
        assert set_helm_values("a: 1\n", {}) == "a: 1\n"


class TestConditions:
    def test_insert_and_status(self):
        conds = upsert_condition([], {"type": "HighAvailability", "status": "False"})
        assert condition_status(conds, "HighAvailability") == "False"
        assert conds[0]["lastTransitionTime"]

    def test_transition_time_kept_while_status_is_unchanged(self):
        conds = [{"type": "HighAvailability", "status": "False", "lastTransitionTime": "t0"}]
        conds = upsert_condition(conds, {"type": "HighAvailability", "status": "False", "reason": "x"})
        assert conds[0]["lastTransitionTime"] == "t0"
        assert conds[0]["reason"] == "x"

    def test_transition_time_bumped_when_status_flips(self):
        conds = [{"type": "HighAvailability", "status": "False", "lastTransitionTime": "t0"}]
        conds = upsert_condition(conds, {"type": "HighAvailability", "status": "True"})
        assert conds[0]["lastTransitionTime"] != "t0"

    def test_missing_condition_is_unknown(self):
        assert condition_status(None, "HighAvailability") == "Unknown"


class TestNetworkHelpers:
    def test_lower_band_ip(self):
        assert lower_band_ip("10.96.0.0/12", 10) == "10.96.0.10"

    def test_lower_band_ip_out_of_range(self):
        with pytest.raises(ValueError):
            lower_band_ip("10.0.0.0/30", 10)


class TestNameWithLengthLimit:
    def test_short_name_is_unchanged(self):
        assert name_with_length_limit("copy-artifacts-", "node1") == "copy-artifacts-node1"

    def test_long_name_is_trimmed_with_digest(self):
        name = name_with_length_limit("copy-artifacts-", "n" * 80)
        assert len(name) == 63
        assert name.startswith("copy-artifacts-nnn")
