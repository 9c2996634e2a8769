from marshmallow import fields, post_dump, pre_load
from ecoperator.types.base import BaseSchema
from ecoperator.types.models.charts import Chart, HelmExtensions, Repository


class _OmitEmptySchema(BaseSchema):
    """Drops unset keys on dump, the k0s config carries them as omitempty."""

    @post_dump
    def drop_none(self, data, **kwargs):
        return {k: v for k, v in data.items() if v is not None}


class ChartSchema(_OmitEmptySchema):
    __model__ = Chart

    name = fields.Str(required=True)
    chart_name = fields.Str(data_key="chartname", load_default=None)
    version = fields.Str(load_default=None)
    values = fields.Str(load_default="", allow_none=True)
    target_ns = fields.Str(data_key="namespace", load_default=None)
    order = fields.Int(load_default=0)
    force_upgrade = fields.Bool(data_key="forceUpgrade", load_default=None, allow_none=True)
    timeout = fields.Raw(load_default=None, allow_none=True)


class RepositorySchema(_OmitEmptySchema):
    __model__ = Repository

    name = fields.Str(required=True)
    url = fields.Str(load_default=None)
    ca_file = fields.Str(data_key="caFile", load_default=None, allow_none=True)
    cert_file = fields.Str(data_key="certFile", load_default=None, allow_none=True)
    key_file = fields.Str(data_key="keyfile", load_default=None, allow_none=True)
    insecure = fields.Bool(load_default=None, allow_none=True)
    username = fields.Str(load_default=None, allow_none=True)
    password = fields.Str(load_default=None, allow_none=True)


class HelmExtensionsSchema(_OmitEmptySchema):
    __model__ = HelmExtensions

    concurrency_level = fields.Int(data_key="concurrencyLevel", load_default=0)
    charts = fields.List(fields.Nested(ChartSchema), load_default=list, allow_none=True)
    repositories = fields.List(
        fields.Nested(RepositorySchema), load_default=list, allow_none=True
    )

    @pre_load
    def nulls_to_empty(self, data, **kwargs):
        # k0s writes explicit nulls for empty lists
        data = dict(data or {})
        for key in ("charts", "repositories"):
            if data.get(key) is None:
                data[key] = []
        return data
