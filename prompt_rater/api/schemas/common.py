"""
Shared schema base.

The admin console speaks camelCase JSON; Python code uses snake_case.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


def camelize_keys(data: dict) -> dict:
    return {to_camel(k): v for k, v in data.items()}
