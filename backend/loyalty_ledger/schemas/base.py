"""
Shared base for wire schemas.

JSON field names are camelCase (codeId, pointsEarned, …); Python attributes
stay snake_case. from_attributes=True lets the service dataclasses map onto
the response models without manual conversion. Decimals serialize as
strings, so no float ever touches a money value.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
