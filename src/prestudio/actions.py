"""Billable actions run through the cost gate."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Optional

from .errors import ValidationFailed
from .ledger import record_image
from .models import ProjectDocument, Scene
from .services.base import CharacterRef, GenerationBackend, GenResponse, SceneContext, VideoPromptInput
from .services.gemini import IMAGE_MODEL, TEXT_MODEL, TTS_MODEL
from .status import ActivityKind

logger = logging.getLogger(__name__)


class BillableAction(ABC):
    """A generation request against one scene.

    Subclasses define what the request costs up front (`input_text` and the
    static `output_tokens`), how to validate it, how to run it against the
    backend, and how to merge the artifact into a document.
    """

    # Typical output size for this kind of generation
    output_tokens: int = 0
    activity: ActivityKind = ActivityKind.IMAGE

    def __init__(self, scene_id: str) -> None:
        self.scene_id = scene_id

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable action name."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model the action is billed against."""
        ...

    @abstractmethod
    def input_text(self, doc: ProjectDocument) -> str:
        """Representative input used to estimate prompt tokens."""
        ...

    @abstractmethod
    def validate(self, doc: ProjectDocument) -> None:
        """Raise ValidationFailed if the action cannot run on `doc`."""
        ...

    @abstractmethod
    async def execute(self, backend: GenerationBackend, api_key: str, doc: ProjectDocument) -> GenResponse[str]:
        """Call the backend exactly once."""
        ...

    def apply(self, doc: ProjectDocument, artifact: str) -> ProjectDocument:
        """Merge the artifact into `doc`, addressing the scene by id."""
        scene = doc.find_scene(self.scene_id)
        if scene is None:
            logger.warning(f"Scene {self.scene_id} was removed during {self.name}; dropping result")
            return doc
        return doc.with_scene(self._update(scene, artifact))

    @abstractmethod
    def _update(self, scene: Scene, artifact: str) -> Scene:
        """Return `scene` carrying the new artifact."""
        ...

    def scene(self, doc: ProjectDocument) -> Scene:
        scene = doc.find_scene(self.scene_id)
        if scene is None:
            raise ValidationFailed(f"Unknown scene: {self.scene_id}")
        return scene


class GenerateImage(BillableAction):
    """Generate a new image for a scene from its description and cast."""

    output_tokens = 258
    activity = ActivityKind.IMAGE

    def __init__(self, scene_id: str, prompt_override: Optional[str] = None) -> None:
        super().__init__(scene_id)
        self.prompt_override = prompt_override

    @property
    def name(self) -> str:
        return "Generate Image"

    @property
    def model_name(self) -> str:
        return IMAGE_MODEL

    def _prompt(self, scene: Scene) -> str:
        return self.prompt_override or scene.visual_description

    def _cast(self, doc: ProjectDocument, scene: Scene) -> list:
        return [c for c in doc.characters if c.id in scene.selected_character_ids]

    def input_text(self, doc: ProjectDocument) -> str:
        scene = self.scene(doc)
        cast = json.dumps([c.model_dump(by_alias=True) for c in self._cast(doc, scene)], ensure_ascii=False)
        return f"{doc.content.style_prompt} {self._prompt(scene)} {scene.script} {cast}"

    def validate(self, doc: ProjectDocument) -> None:
        scene = self.scene(doc)
        if not (self._prompt(scene) or doc.content.style_prompt or scene.script):
            raise ValidationFailed("Enter a scene description, a style prompt or a script first.")

    async def execute(self, backend, api_key, doc):
        scene = self.scene(doc)
        index = doc.scene_index(self.scene_id)
        previous = [
            SceneContext(script=s.script, prompt=s.visual_description)
            for s in doc.scenes[max(0, index - 2):index]
        ]
        characters = [
            CharacterRef(name=c.name, description=c.description, image_references=list(c.image_references))
            for c in self._cast(doc, scene)
        ]
        return await backend.generate_scene_image(
            api_key,
            doc.content.style_prompt,
            self._prompt(scene),
            scene.script,
            characters,
            previous,
        )

    def _update(self, scene, artifact):
        return record_image(scene, artifact)


class EditImage(BillableAction):
    """Modify the scene's active image with a text instruction."""

    output_tokens = 258
    activity = ActivityKind.IMAGE

    def __init__(self, scene_id: str, instruction: str) -> None:
        super().__init__(scene_id)
        self.instruction = instruction

    @property
    def name(self) -> str:
        return "Edit Image"

    @property
    def model_name(self) -> str:
        return IMAGE_MODEL

    def input_text(self, doc):
        return self.instruction

    def validate(self, doc):
        scene = self.scene(doc)
        if not scene.primary_image:
            raise ValidationFailed("The scene has no image to edit.")
        if not (self.instruction or "").strip():
            raise ValidationFailed("Describe the change to make.")

    async def execute(self, backend, api_key, doc):
        scene = self.scene(doc)
        return await backend.edit_scene_image(api_key, scene.primary_image, self.instruction)

    def _update(self, scene, artifact):
        return record_image(scene, artifact)


class GenerateAudio(BillableAction):
    """Narrate the scene script with the project's voice."""

    output_tokens = 100
    activity = ActivityKind.AUDIO

    @property
    def name(self) -> str:
        return "Generate TTS Audio"

    @property
    def model_name(self) -> str:
        return TTS_MODEL

    def input_text(self, doc):
        return self.scene(doc).script

    def validate(self, doc):
        if not self.scene(doc).script:
            raise ValidationFailed("The scene has no script to narrate.")

    async def execute(self, backend, api_key, doc):
        return await backend.generate_speech(api_key, self.scene(doc).script, doc.content.selected_voice)

    def _update(self, scene, artifact):
        return scene.model_copy(update={"audio": artifact})


class GenerateVideoPrompt(BillableAction):
    """Write a video direction prompt from the scene, its image and its neighbours."""

    output_tokens = 500
    activity = ActivityKind.VIDEO_PROMPT

    @property
    def name(self) -> str:
        return "Generate Video Prompt"

    @property
    def model_name(self) -> str:
        return TEXT_MODEL

    def request(self, doc: ProjectDocument) -> VideoPromptInput:
        scene = self.scene(doc)
        index = doc.scene_index(self.scene_id)
        prev_scene = doc.scenes[index - 1] if index > 0 else None
        next_scene = doc.scenes[index + 1] if index < len(doc.scenes) - 1 else None
        return VideoPromptInput(
            current_script=scene.script,
            current_image=scene.primary_image or "",
            current_context=scene.visual_description,
            prev_script=prev_scene.script if prev_scene else "",
            prev_context=prev_scene.visual_description if prev_scene else "",
            next_script=next_scene.script if next_scene else "",
            next_context=next_scene.visual_description if next_scene else "",
            global_note=doc.content.video_prompt_note,
        )

    def input_text(self, doc):
        return json.dumps(asdict(self.request(doc)), ensure_ascii=False)

    def validate(self, doc):
        scene = self.scene(doc)
        if not scene.script or not scene.primary_image:
            raise ValidationFailed("A script and an image are required to write a video prompt.")

    async def execute(self, backend, api_key, doc):
        return await backend.generate_video_prompt(api_key, self.request(doc))

    def _update(self, scene, artifact):
        return scene.model_copy(update={"video_prompt": artifact})
