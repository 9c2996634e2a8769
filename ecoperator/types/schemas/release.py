from marshmallow import fields, pre_load
from ecoperator.types.base import BaseSchema
from ecoperator.types.models.release import ReleaseMetadata
from ecoperator.types.schemas.charts import HelmExtensionsSchema


class ReleaseMetadataSchema(BaseSchema):
    """Release metadata document as published with every release."""

    __model__ = ReleaseMetadata

    versions = fields.Dict(
        keys=fields.Str(), values=fields.Str(), data_key="Versions", load_default=dict
    )
    k0s_sha = fields.Str(data_key="K0sSHA", load_default=None, allow_none=True)
    k0s_binary_url = fields.Str(data_key="K0sBinaryURL", load_default=None, allow_none=True)
    artifacts = fields.Dict(
        keys=fields.Str(), values=fields.Str(), data_key="Artifacts", load_default=dict
    )
    configs = fields.Nested(HelmExtensionsSchema, data_key="Configs", load_default=None)
    airgap_configs = fields.Nested(
        HelmExtensionsSchema, data_key="AirgapConfigs", load_default=None
    )
    builtin_configs = fields.Dict(
        keys=fields.Str(),
        values=fields.Nested(HelmExtensionsSchema),
        data_key="BuiltinConfigs",
        load_default=dict,
    )
    images = fields.List(fields.Str(), data_key="Images", load_default=list)

    @pre_load
    def fill_configs(self, data, **kwargs):
        data = dict(data or {})
        for key in ("Configs", "AirgapConfigs"):
            if data.get(key) is None:
                data[key] = {}
        for key in ("Versions", "Artifacts", "BuiltinConfigs"):
            if data.get(key) is None:
                data[key] = {}
        if data.get("Images") is None:
            data["Images"] = []
        return data
