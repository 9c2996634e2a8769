"""Unit tests for reading and writing Installation objects."""

import asyncio
from unittest.mock import AsyncMock, Mock
import pytest
from kubernetes_asyncio.client import ApiException
from ecoperator.common.models.states import InstallationState
from ecoperator.resources.store import InstallationStore, sort_installations
from ecoperator.utils.errors import StatusConflictError


@pytest.fixture
def store():
    store = InstallationStore()
    store.custom_objects_api = Mock()
    store.sensor = Mock()
    return store


class TestSortInstallations:
    def test_newest_first(self, make_record):
        records = [make_record("20240101000000"), make_record("20240301000000"), make_record("20240201000000")]
        assert [r.name for r in sort_installations(records)] == [
            "20240301000000",
            "20240201000000",
            "20240101000000",
        ]


class TestUpdateStatus:
    def test_status_is_written_with_resource_version(self, store, make_record):
        record = make_record("20240101000000", resource_version="42")
        record.status.set_state(InstallationState.INSTALLED, "Installed")
        updated = make_record("20240101000000", status={"state": "Installed"}, resource_version="43").body
        store.custom_objects_api.replace_cluster_custom_object_status = AsyncMock(return_value=updated)

        result = asyncio.run(store.update_status(record))

        body = store.custom_objects_api.replace_cluster_custom_object_status.await_args.kwargs["body"]
        assert body["metadata"]["resourceVersion"] == "42"
        assert body["status"]["state"] == "Installed"
        assert "pendingCharts" not in body["status"]
        assert result.resource_version == "43"

    def test_conflict_is_reported(self, store, make_record):
        record = make_record("20240101000000")
        store.custom_objects_api.replace_cluster_custom_object_status = AsyncMock(
            side_effect=ApiException(status=409, reason="Conflict")
        )
        with pytest.raises(StatusConflictError):
            asyncio.run(store.update_status(record))
        store.sensor.on_status_conflict.assert_called_once_with("20240101000000")

    def test_other_errors_propagate(self, store, make_record):
        record = make_record("20240101000000")
        store.custom_objects_api.replace_cluster_custom_object_status = AsyncMock(
            side_effect=ApiException(status=500, reason="Internal Server Error")
        )
        with pytest.raises(ApiException):
            asyncio.run(store.update_status(record))


class TestSetHighAvailability:
    def test_spec_flag_is_set(self, store, make_record):
        record = make_record("20240101000000", spec={"clusterID": "c1"})
        store.custom_objects_api.replace_cluster_custom_object = AsyncMock()
        asyncio.run(store.set_high_availability(record))
        body = store.custom_objects_api.replace_cluster_custom_object.await_args.kwargs["body"]
        assert body["spec"] == {"clusterID": "c1", "highAvailability": True}
        assert "highAvailability" not in record.body["spec"]
