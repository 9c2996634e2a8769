"""Builders shared by the unit tests."""

import pytest
from ecoperator.resources.base import BaseResource
from ecoperator.sensors import SensorDelegate
from ecoperator.types.schemas import load_installation
from ecoperator.types.schemas.release import ReleaseMetadataSchema


def installation_body(name, spec=None, status=None, resource_version="1", creation_timestamp=None):
    return {
        "apiVersion": "embeddedcluster.replicated.com/v1beta1",
        "kind": "Installation",
        "metadata": {
            "name": name,
            "resourceVersion": resource_version,
            "creationTimestamp": creation_timestamp or "2024-01-01T00:00:00Z",
        },
        "spec": spec or {},
        "status": status or {},
    }


@pytest.fixture
def make_record():
    """Factory for InstallationRecord objects built from raw Installation bodies."""

    def _make(name, spec=None, status=None, **kwargs):
        return load_installation(installation_body(name, spec, status, **kwargs))

    return _make


@pytest.fixture
def release_metadata():
    """Release metadata shipping the core addons, the airgap registry and velero."""
    return ReleaseMetadataSchema().load(
        {
            "Versions": {"Kubernetes": "v1.30.1+k0s.0"},
            "Configs": {
                "charts": [
                    {
                        "name": "openebs",
                        "chartname": "oci://proxy.example.com/openebs",
                        "version": "4.1.0",
                        "values": "engines:\n  replicated: false\n",
                        "namespace": "openebs",
                        "order": 1,
                    },
                    {
                        "name": "embedded-cluster-operator",
                        "chartname": "oci://proxy.example.com/embedded-cluster-operator",
                        "version": "1.5.0",
                        "values": "",
                        "namespace": "embedded-cluster",
                        "order": 2,
                    },
                    {
                        "name": "admin-console",
                        "chartname": "oci://proxy.example.com/admin-console",
                        "version": "1.109.0",
                        "values": "isHA: false\n",
                        "namespace": "kotsadm",
                        "order": 3,
                    },
                ],
                "repositories": [],
            },
            "AirgapConfigs": {
                "charts": [
                    {
                        "name": "docker-registry",
                        "chartname": "oci://proxy.example.com/docker-registry",
                        "version": "2.2.3",
                        "values": "replicaCount: 1\n",
                        "namespace": "registry",
                        "order": 3,
                    }
                ]
            },
            "BuiltinConfigs": {
                "velero": {
                    "charts": [
                        {
                            "name": "velero",
                            "chartname": "oci://proxy.example.com/velero",
                            "version": "7.1.0",
                            "values": "",
                            "namespace": "velero",
                            "order": 3,
                        }
                    ]
                },
                "seaweedfs": {
                    "charts": [
                        {
                            "name": "seaweedfs",
                            "chartname": "oci://proxy.example.com/seaweedfs",
                            "version": "3.67.0",
                            "values": "",
                            "namespace": "seaweedfs",
                            "order": 2,
                        }
                    ]
                },
                "registry-ha": {
                    "charts": [
                        {
                            "name": "docker-registry",
                            "chartname": "oci://proxy.example.com/docker-registry",
                            "version": "2.2.3",
                            "values": "",
                            "namespace": "registry",
                            "order": 3,
                        }
                    ]
                },
            },
        }
    )


@pytest.fixture(autouse=True)
def quiet_sensor():
    """Give every test a sensor delegate without backends."""
    original = BaseResource.sensor
    BaseResource.sensor = SensorDelegate()
    yield
    BaseResource.sensor = original
