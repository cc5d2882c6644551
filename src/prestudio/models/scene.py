"""Scene data model."""

import uuid
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex


class Scene(BaseModel):
    """One narrative unit of the project.

    `id` is the stable join key for in-flight work; `scene_id` is only the
    label shown to the user and used for export file names.
    """

    id: str = Field(default_factory=new_id, description="Stable unique identifier")
    scene_id: str = Field(default="", description="User-facing label")
    script: str = Field(default="", description="Narration script")
    visual_description: str = Field(default="", description="Context used to drive image generation")
    selected_character_ids: List[str] = Field(default_factory=list, description="Characters appearing in the scene")
    primary_image: Optional[str] = Field(None, description="Active image as a data URI")
    image_history: List[str] = Field(default_factory=list, description="Every image version produced for the scene")
    audio: Optional[str] = Field(None, description="Narration audio as a data URI")
    video_prompt: Optional[str] = Field(None, description="Generated video direction prompt")

    class Config:
        """Pydantic config."""
        frozen = True
        alias_generator = to_camel
        populate_by_name = True

    @field_validator("selected_character_ids")
    @classmethod
    def _unique_characters(cls, value: List[str]) -> List[str]:
        # A scene's cast is a set; keep first-seen order
        return list(dict.fromkeys(value))
