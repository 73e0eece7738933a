"""Base model with camelCase serialization for API input and output."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Shared base for wire models.

    Accepts both ``snake_case`` field names and ``camelCase`` aliases on
    input, and serialises with camelCase when dumped ``by_alias``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
