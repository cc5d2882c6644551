"""Character data model."""

from typing import List
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .scene import new_id

MAX_CHARACTER_IMAGES = 5


class Character(BaseModel):
    """A recurring character with visual references."""

    id: str = Field(default_factory=new_id, description="Unique character identifier")
    name: str = Field(default="", description="Display name")
    description: str = Field(default="", description="Physical traits and costume")
    image_references: List[str] = Field(
        default_factory=list,
        description="Reference images as data URIs (at most MAX_CHARACTER_IMAGES)",
    )
    is_default: bool = Field(default=False, description="Preselected for new scenes")

    class Config:
        """Pydantic config."""
        frozen = True
        alias_generator = to_camel
        populate_by_name = True
