"""Generation backend abstraction."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

from ..cost import TokenUsage

DataT = TypeVar("DataT")


@dataclass
class GenResponse(Generic[DataT]):
    """An artifact returned by the backend together with its token usage."""

    data: DataT
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class CharacterRef:
    """Character details sent along with an image request."""

    name: str
    description: str
    image_references: List[str] = field(default_factory=list)


@dataclass
class SceneContext:
    """Script and visual description of a neighbouring scene."""

    script: str = ""
    prompt: str = ""


@dataclass
class VideoPromptInput:
    """Everything the video prompt writer sees for one scene."""

    current_script: str
    current_image: str
    current_context: str = ""
    prev_script: str = ""
    prev_context: str = ""
    next_script: str = ""
    next_context: str = ""
    global_note: str = ""


class GenerationBackend(ABC):
    """External capability that produces artifacts for billable actions.

    Every operation takes the API key explicitly and either returns a
    GenResponse or raises.
    """

    @abstractmethod
    async def generate_scene_image(
        self,
        api_key: str,
        style_prompt: str,
        scene_prompt: str,
        script: str,
        characters: List[CharacterRef],
        previous_scenes: List[SceneContext],
    ) -> GenResponse[str]:
        """Generate a scene image; returns a data URI."""
        ...

    @abstractmethod
    async def edit_scene_image(
        self,
        api_key: str,
        image: str,
        instruction: str,
    ) -> GenResponse[str]:
        """Modify an existing image; returns a data URI."""
        ...

    @abstractmethod
    async def generate_speech(
        self,
        api_key: str,
        text: str,
        voice: str,
    ) -> GenResponse[str]:
        """Narrate text; returns a WAV data URI."""
        ...

    @abstractmethod
    async def generate_video_prompt(
        self,
        api_key: str,
        data: VideoPromptInput,
    ) -> GenResponse[str]:
        """Write a video direction prompt for a scene."""
        ...
