"""Project document model."""

import time
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from ..config import config
from .character import Character
from .scene import Scene

DEFAULT_VOICE = "Sadachbia"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class UsageStats(BaseModel):
    """Cumulative token usage and cost for a project.

    Counters only ever grow; `accrue` is the only way to change them.
    """

    total_input_tokens: int = Field(default=0, ge=0)
    total_output_tokens: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0)

    class Config:
        """Pydantic config."""
        frozen = True
        alias_generator = to_camel
        populate_by_name = True

    def accrue(self, input_tokens: int, output_tokens: int, cost: float) -> "UsageStats":
        """Return new stats with the given usage added."""
        if input_tokens < 0 or output_tokens < 0 or cost < 0:
            raise ValueError("Usage can only be accrued, not subtracted")
        return UsageStats(
            total_input_tokens=self.total_input_tokens + input_tokens,
            total_output_tokens=self.total_output_tokens + output_tokens,
            total_cost=self.total_cost + cost,
        )


class ProjectContent(BaseModel):
    """Editable content of a project."""

    style_prompt: str = Field(default="", description="Global visual style")
    selected_voice: str = Field(default=DEFAULT_VOICE, description="Text-to-speech voice name")
    video_prompt_note: str = Field(default="", description="Global note appended to video prompts")
    scenes: List[Scene] = Field(default_factory=list, description="Ordered scenes")
    characters: List[Character] = Field(default_factory=list, description="Ordered characters")

    class Config:
        """Pydantic config."""
        frozen = True
        alias_generator = to_camel
        populate_by_name = True


class ProjectDocument(BaseModel):
    """The whole persisted project.

    Documents are never mutated in place: every edit builds a new value
    (usually with `model_copy(update=...)`) and commits it to the history.
    """

    name: str = Field(default="", description="Project name")
    last_modified_at: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    content: ProjectContent = Field(default_factory=ProjectContent)
    usage_stats: UsageStats = Field(default_factory=UsageStats)

    class Config:
        """Pydantic config."""
        frozen = True
        alias_generator = to_camel
        populate_by_name = True

    @classmethod
    def empty(cls, voice: Optional[str] = None) -> "ProjectDocument":
        """Create a new project with three blank scenes and no characters."""
        scenes = [Scene(scene_id=str(i)) for i in range(1, 4)]
        content = ProjectContent(
            selected_voice=voice or config.default_voice or DEFAULT_VOICE,
            scenes=scenes,
        )
        return cls(content=content)

    @property
    def scenes(self) -> List[Scene]:
        return self.content.scenes

    @property
    def characters(self) -> List[Character]:
        return self.content.characters

    def find_scene(self, scene_id: str) -> Optional[Scene]:
        """Return the scene with the given stable id, if it still exists."""
        for scene in self.content.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def scene_index(self, scene_id: str) -> int:
        """Return the position of a scene, or -1."""
        for i, scene in enumerate(self.content.scenes):
            if scene.id == scene_id:
                return i
        return -1

    def find_character(self, character_id: str) -> Optional[Character]:
        for character in self.content.characters:
            if character.id == character_id:
                return character
        return None

    def default_character(self) -> Optional[Character]:
        """Return the character new scenes start with."""
        for character in self.content.characters:
            if character.is_default:
                return character
        return None

    def with_content(self, **updates) -> "ProjectDocument":
        """Return a copy with `content` fields replaced."""
        return self.model_copy(update={"content": self.content.model_copy(update=updates)})

    def with_scene(self, scene: Scene) -> "ProjectDocument":
        """Return a copy with the scene sharing `scene.id` replaced."""
        scenes = [scene if s.id == scene.id else s for s in self.content.scenes]
        return self.with_content(scenes=scenes)

    def with_usage(self, usage_stats: UsageStats) -> "ProjectDocument":
        return self.model_copy(update={"usage_stats": usage_stats})

    def to_json_dict(self) -> dict:
        """Serialize with the camelCase keys used on disk."""
        return self.model_dump(mode="json", by_alias=True)
