from typing import Any, Dict

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies use camelCase keys on the wire and snake_case in Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


def to_wire(model: CamelModel) -> Dict[str, Any]:
    """camelCase dict of the fields the client actually sent."""
    return model.model_dump(by_alias=True, exclude_unset=True)
