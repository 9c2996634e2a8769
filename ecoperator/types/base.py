from types import SimpleNamespace
from typing import Any, Dict
from marshmallow import EXCLUDE, Schema, post_load

JSON = Dict[str, Any]
MAX_REPR_LENGTH = 96


class BaseModel(SimpleNamespace):
    """Attribute bag built by a schema's ``make_object``.

    Models carry snake_case attributes; the schemas own the mapping to the
    camelCase keys used on the wire.
    """

    def __repr__(self) -> str:
        text = super().__repr__()
        return text if len(text) <= MAX_REPR_LENGTH else f"{text[:MAX_REPR_LENGTH]}...)"

    def as_dict(self) -> Dict[str, Any]:
        result = {}
        for key, value in self.__dict__.items():
            if isinstance(value, BaseModel):
                result[key] = value.as_dict()
            elif isinstance(value, list):
                result[key] = [
                    item.as_dict() if isinstance(item, BaseModel) else item
                    for item in value
                ]
            else:
                result[key] = value
        return result


class UnknownModel(BaseModel):
    """Fallback model for schemas that do not name one."""


class BaseSchema(Schema):
    """Schema that turns loaded payloads into models and ignores unknown keys."""

    __model__: Any = UnknownModel

    class Meta:
        unknown = EXCLUDE
        ordered = True

    @post_load
    def make_object(self, data: JSON, **kwargs: Any) -> "__model__":
        return self.__model__(**data)
