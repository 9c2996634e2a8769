from typing import Dict
from marshmallow import fields
from ecoperator.types.base import BaseSchema
from ecoperator.types.models.installation import (
    ArtifactsLocation,
    BuiltInExtension,
    ConfigSecret,
    ConfigSpec,
    Extensions,
    InstallationRecord,
    InstallationSpec,
    InstallationStatus,
    LicenseInfo,
    NetworkSpec,
    NodeStatus,
    ProxySpec,
    RuntimeConfig,
    UnsupportedOverrides,
)
from ecoperator.types.schemas.charts import HelmExtensionsSchema

DEFAULT_DATA_DIR = "/var/lib/embedded-cluster"


class ConfigSecretSchema(BaseSchema):
    __model__ = ConfigSecret

    name = fields.Str(required=True)
    namespace = fields.Str(required=True)


class LicenseInfoSchema(BaseSchema):
    __model__ = LicenseInfo

    is_disaster_recovery_supported = fields.Bool(
        data_key="isDisasterRecoverySupported", load_default=False
    )


class NetworkSpecSchema(BaseSchema):
    __model__ = NetworkSpec

    pod_cidr = fields.Str(data_key="podCIDR", load_default=None, allow_none=True)
    service_cidr = fields.Str(data_key="serviceCIDR", load_default=None, allow_none=True)
    node_port_range = fields.Str(data_key="nodePortRange", load_default=None, allow_none=True)


class ProxySpecSchema(BaseSchema):
    __model__ = ProxySpec

    http_proxy = fields.Str(data_key="httpProxy", load_default=None, allow_none=True)
    https_proxy = fields.Str(data_key="httpsProxy", load_default=None, allow_none=True)
    no_proxy = fields.Str(data_key="noProxy", load_default=None, allow_none=True)


class ArtifactsLocationSchema(BaseSchema):
    __model__ = ArtifactsLocation

    images = fields.Str(load_default="")
    helm_charts = fields.Str(data_key="helmCharts", load_default="")
    embedded_cluster_binary = fields.Str(data_key="embeddedClusterBinary", load_default="")
    embedded_cluster_metadata = fields.Str(data_key="embeddedClusterMetadata", load_default="")


class RuntimeConfigSchema(BaseSchema):
    __model__ = RuntimeConfig

    data_dir = fields.Str(data_key="dataDir", load_default=DEFAULT_DATA_DIR)


class BuiltInExtensionSchema(BaseSchema):
    __model__ = BuiltInExtension

    name = fields.Str(required=True)
    values = fields.Str(load_default="")


class UnsupportedOverridesSchema(BaseSchema):
    __model__ = UnsupportedOverrides

    k0s = fields.Str(load_default=None, allow_none=True)
    built_in_extensions = fields.List(
        fields.Nested(BuiltInExtensionSchema),
        data_key="builtInExtensions",
        load_default=list,
    )


class ExtensionsSchema(BaseSchema):
    __model__ = Extensions

    helm = fields.Nested(HelmExtensionsSchema, load_default=None, allow_none=True)


class ConfigSpecSchema(BaseSchema):
    __model__ = ConfigSpec

    version = fields.Str(load_default=None, allow_none=True)
    extensions = fields.Nested(ExtensionsSchema, load_default=None, allow_none=True)
    unsupported_overrides = fields.Nested(
        UnsupportedOverridesSchema,
        data_key="unsupportedOverrides",
        load_default=None,
        allow_none=True,
    )


class InstallationSpecSchema(BaseSchema):
    __model__ = InstallationSpec

    cluster_id = fields.Str(data_key="clusterID", load_default=None, allow_none=True)
    metrics_base_url = fields.Str(data_key="metricsBaseURL", load_default=None, allow_none=True)
    air_gap = fields.Bool(data_key="airGap", load_default=False)
    high_availability = fields.Bool(data_key="highAvailability", load_default=False)
    binary_name = fields.Str(data_key="binaryName", load_default=None, allow_none=True)
    config_secret = fields.Nested(
        ConfigSecretSchema, data_key="configSecret", load_default=None, allow_none=True
    )
    artifacts = fields.Nested(ArtifactsLocationSchema, load_default=None, allow_none=True)
    config = fields.Nested(ConfigSpecSchema, load_default=None, allow_none=True)
    license_info = fields.Nested(
        LicenseInfoSchema, data_key="licenseInfo", load_default=None, allow_none=True
    )
    network = fields.Nested(NetworkSpecSchema, load_default=None, allow_none=True)
    proxy = fields.Nested(ProxySpecSchema, load_default=None, allow_none=True)
    runtime_config = fields.Nested(
        RuntimeConfigSchema, data_key="runtimeConfig", load_default=None, allow_none=True
    )
    end_user_k0s_config_overrides = fields.Str(
        data_key="endUserK0sConfigOverrides", load_default=None, allow_none=True
    )


class NodeStatusSchema(BaseSchema):
    __model__ = NodeStatus

    name = fields.Str(required=True)
    hash = fields.Str(load_default="")


class InstallationStatusSchema(BaseSchema):
    __model__ = InstallationStatus

    state = fields.Str(load_default="", allow_none=True)
    reason = fields.Str(load_default="", allow_none=True)
    nodes_status = fields.List(
        fields.Nested(NodeStatusSchema),
        data_key="nodesStatus",
        load_default=list,
        allow_none=True,
    )
    conditions = fields.List(fields.Dict(), load_default=list, allow_none=True)
    pending_charts = fields.List(
        fields.Str(), data_key="pendingCharts", load_default=None, allow_none=True
    )


def load_installation(body: Dict) -> InstallationRecord:
    """Build an InstallationRecord from a raw Installation object."""
    metadata = body.get("metadata") or {}
    return InstallationRecord(
        name=metadata.get("name"),
        resource_version=metadata.get("resourceVersion"),
        creation_timestamp=metadata.get("creationTimestamp"),
        annotations=dict(metadata.get("annotations") or {}),
        spec=InstallationSpecSchema().load(body.get("spec") or {}),
        status=InstallationStatusSchema().load(body.get("status") or {}),
        body=body,
    )


def dump_status(status: InstallationStatus) -> Dict:
    data = InstallationStatusSchema().dump(status)
    return {key: value for key, value in data.items() if value is not None}
