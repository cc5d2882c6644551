"""Project session: the owned state every operation works against."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .config import config
from .cost import TokenUsage
from .errors import CapacityExceeded, CredentialMissing, MalformedProjectFile, ValidationFailed
from .history import History
from .ledger import apply_promotion
from .migrate import load_document
from .models import MAX_CHARACTER_IMAGES, Character, ProjectDocument, Scene
from .models.project import now_ms
from .services.base import GenerationBackend
from .status import StatusBoard
from .storage import dump_document, project_filename

logger = logging.getLogger(__name__)

SCRIPT_COLUMNS = {"script", "visual_description"}
SCENE_FIELDS = {"scene_id", "script", "visual_description", "selected_character_ids", "audio", "video_prompt"}
CHARACTER_FIELDS = {"name", "description"}

# Spreadsheet column index for each imported scene field (A, C, E)
SHEET_COLUMNS = {"scene_id": 0, "script": 2, "visual_description": 4}

ModelT = TypeVar("ModelT", bound=BaseModel)


def _cell(row: Sequence[Optional[object]], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


def _rebuild(model: ModelT, fields: dict) -> ModelT:
    """Return `model` with `fields` replaced, validated like a freshly loaded value."""
    try:
        return type(model).model_validate({**model.model_dump(), **fields})
    except ValidationError as e:
        raise ValidationFailed(f"Invalid value: {e}") from e


class ProjectSession:
    """One open project.

    Holds two separate containers: the undoable document history and the
    transient status board for work in flight. All document edits go through
    `commit`, which hands a freshly built document to `History.set`.
    """

    def __init__(
        self,
        document: Optional[ProjectDocument] = None,
        credential: Optional[str] = None,
        backend: Optional[GenerationBackend] = None,
        history_limit: Optional[int] = None,
    ) -> None:
        """Initialize the session.

        Args:
            document: Starting document. Defaults to an empty project.
            credential: Gemini API key. Defaults to config.gemini_api_key.
            backend: Generation backend. A GeminiClient is created on first use if omitted.
            history_limit: Maximum undo depth, None for unbounded.
        """
        self.history: History[ProjectDocument] = History(
            document or ProjectDocument.empty(), limit=history_limit
        )
        self.status = StatusBoard()
        self.credential = credential if credential is not None else config.gemini_api_key
        self._backend = backend

    @property
    def backend(self) -> GenerationBackend:
        if self._backend is None:
            from .services.gemini import GeminiClient
            self._backend = GeminiClient()
        return self._backend

    @property
    def present(self) -> ProjectDocument:
        return self.history.present

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> ProjectDocument:
        return self.history.undo()

    def redo(self) -> ProjectDocument:
        return self.history.redo()

    def commit(self, doc: ProjectDocument) -> ProjectDocument:
        return self.history.set(doc)

    def require_credential(self) -> str:
        if not self.credential:
            raise CredentialMissing()
        return self.credential

    # -- Project lifecycle ---------------------------------------------------

    def new_project(self) -> ProjectDocument:
        """Start over with an empty project; history and usage are discarded."""
        self.status.clear()
        return self.history.reset(ProjectDocument.empty())

    def load_bytes(self, raw: Union[bytes, str]) -> ProjectDocument:
        """Replace the project with one read from a file's content.

        Raises:
            MalformedProjectFile: The current project is kept unchanged.
        """
        try:
            doc = load_document(raw)
        except MalformedProjectFile:
            logger.error("Failed to load project file; keeping the current project")
            raise
        self.status.clear()
        return self.history.reset(doc)

    def load_path(self, path: Path) -> ProjectDocument:
        return self.load_bytes(Path(path).read_bytes())

    def save_bytes(self) -> bytes:
        return dump_document(self.present)

    @property
    def filename(self) -> str:
        return project_filename(self.present)

    def save(self, directory: Optional[Path] = None) -> Path:
        """Write the project to `<directory>/<slug>.json` and return the path."""
        directory = Path(directory) if directory is not None else config.workspace
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.filename
        path.write_bytes(self.save_bytes())
        logger.info(f"Saved project to {path}")
        return path

    # -- Project fields ------------------------------------------------------

    def rename(self, name: str) -> ProjectDocument:
        return self.commit(self.present.model_copy(update={"name": name, "last_modified_at": now_ms()}))

    def set_style_prompt(self, style_prompt: str) -> ProjectDocument:
        return self.commit(self.present.with_content(style_prompt=style_prompt))

    def set_voice(self, voice: str) -> ProjectDocument:
        return self.commit(self.present.with_content(selected_voice=voice))

    def set_video_prompt_note(self, note: str) -> ProjectDocument:
        return self.commit(self.present.with_content(video_prompt_note=note))

    def accrue_usage(self, usage: TokenUsage) -> ProjectDocument:
        """Add reported usage to the project totals in a single commit."""
        doc = self.present
        stats = doc.usage_stats.accrue(usage.prompt_tokens, usage.candidates_tokens, usage.cost)
        return self.commit(doc.with_usage(stats))

    # -- Scenes --------------------------------------------------------------

    def _scene(self, scene_id: str) -> Scene:
        scene = self.present.find_scene(scene_id)
        if scene is None:
            raise ValidationFailed(f"Unknown scene: {scene_id}")
        return scene

    def _new_scene(self, label: str) -> Scene:
        default = self.present.default_character()
        return Scene(scene_id=label, selected_character_ids=[default.id] if default else [])

    def update_scene(self, scene_id: str, **fields) -> ProjectDocument:
        """Replace editable fields of a scene.

        Image fields are managed by the ledger and cannot be set here.
        """
        unknown = set(fields) - SCENE_FIELDS
        if unknown:
            raise ValidationFailed(f"Cannot edit scene field(s): {', '.join(sorted(unknown))}")
        scene = self._scene(scene_id)
        return self.commit(self.present.with_scene(_rebuild(scene, fields)))

    def add_scene(self, label: Optional[str] = None) -> Scene:
        doc = self.present
        scene = self._new_scene(label or str(len(doc.scenes) + 1))
        self.commit(doc.with_content(scenes=[*doc.scenes, scene]))
        return scene

    def remove_scene(self, scene_id: str) -> ProjectDocument:
        self._scene(scene_id)
        doc = self.present
        return self.commit(doc.with_content(scenes=[s for s in doc.scenes if s.id != scene_id]))

    def toggle_scene_character(self, scene_id: str, character_id: str) -> ProjectDocument:
        scene = self._scene(scene_id)
        if self.present.find_character(character_id) is None:
            raise ValidationFailed(f"Unknown character: {character_id}")
        selected = list(scene.selected_character_ids)
        if character_id in selected:
            selected.remove(character_id)
        else:
            selected.append(character_id)
        return self.commit(self.present.with_scene(scene.model_copy(update={"selected_character_ids": selected})))

    def apply_script_lines(self, lines: List[str], column: str = "script") -> ProjectDocument:
        """Write one line per scene into `column`, adding scenes as needed."""
        if column not in SCRIPT_COLUMNS:
            raise ValidationFailed(f"Unknown script column: {column}")
        scenes = list(self.present.scenes)
        for i in range(len(scenes), len(lines)):
            scenes.append(self._new_scene(str(i + 1)))
        for i, line in enumerate(lines):
            scenes[i] = scenes[i].model_copy(update={column: line})
        logger.info(f"Applied {len(lines)} line(s) to {column}")
        return self.commit(self.present.with_content(scenes=scenes))

    def import_scenes(self, rows: List[Sequence[Optional[object]]]) -> ProjectDocument:
        """Replace the scene list with scenes read from spreadsheet rows.

        Column A is the scene label, C the script and E the visual
        description. Rows with neither column A nor B filled are skipped.
        Every imported scene starts with the default character and an empty
        image history.

        Raises:
            ValidationFailed: If no row yields a scene. The project is left unchanged.
        """
        default = self.present.default_character()
        cast = [default.id] if default else []
        scenes = []
        for row in rows:
            if not (_cell(row, 0) or _cell(row, 1)):
                continue
            fields = {name: _cell(row, index) for name, index in SHEET_COLUMNS.items()}
            fields["scene_id"] = fields["scene_id"] or str(len(scenes) + 1)
            scenes.append(Scene(selected_character_ids=cast, **fields))
        if not scenes:
            raise ValidationFailed("The sheet contains no scenes")
        logger.info(f"Imported {len(scenes)} scene(s)")
        return self.commit(self.present.with_content(scenes=scenes))

    def promote_image(self, scene_id: str, version: str) -> ProjectDocument:
        """Make an earlier image version the active one."""
        return self.commit(apply_promotion(self.present, scene_id, version))

    # -- Characters ----------------------------------------------------------

    def _character(self, character_id: str) -> Character:
        character = self.present.find_character(character_id)
        if character is None:
            raise ValidationFailed(f"Unknown character: {character_id}")
        return character

    def _replace_character(self, character: Character) -> ProjectDocument:
        characters = [character if c.id == character.id else c for c in self.present.characters]
        return self.commit(self.present.with_content(characters=characters))

    def add_character(self, name: Optional[str] = None, description: str = "") -> Character:
        """Add a character; the first character becomes the default."""
        doc = self.present
        character = Character(
            name=name or f"Character {len(doc.characters) + 1}",
            description=description,
            is_default=not doc.characters,
        )
        self.commit(doc.with_content(characters=[*doc.characters, character]))
        return character

    def remove_character(self, character_id: str) -> ProjectDocument:
        """Remove a character; if it was the default, the new first character takes over."""
        removed = self._character(character_id)
        remaining = [c for c in self.present.characters if c.id != character_id]
        if removed.is_default and remaining:
            remaining[0] = remaining[0].model_copy(update={"is_default": True})
        return self.commit(self.present.with_content(characters=remaining))

    def set_default_character(self, character_id: str) -> ProjectDocument:
        self._character(character_id)
        characters = [
            c.model_copy(update={"is_default": c.id == character_id})
            for c in self.present.characters
        ]
        return self.commit(self.present.with_content(characters=characters))

    def update_character(self, character_id: str, **fields) -> ProjectDocument:
        unknown = set(fields) - CHARACTER_FIELDS
        if unknown:
            raise ValidationFailed(f"Cannot edit character field(s): {', '.join(sorted(unknown))}")
        return self._replace_character(_rebuild(self._character(character_id), fields))

    def add_character_images(self, character_id: str, images: Iterable[str]) -> ProjectDocument:
        """Attach reference images to a character.

        Raises:
            CapacityExceeded: If the character would hold more than
                MAX_CHARACTER_IMAGES images. Nothing is attached in that case.
        """
        character = self._character(character_id)
        images = list(images)
        if len(character.image_references) + len(images) > MAX_CHARACTER_IMAGES:
            raise CapacityExceeded(f"A character can hold at most {MAX_CHARACTER_IMAGES} reference images")
        return self._replace_character(
            character.model_copy(update={"image_references": [*character.image_references, *images]})
        )

    def remove_character_image(self, character_id: str, index: int) -> ProjectDocument:
        character = self._character(character_id)
        if not 0 <= index < len(character.image_references):
            raise ValidationFailed(f"No reference image at position {index}")
        images = [img for i, img in enumerate(character.image_references) if i != index]
        return self._replace_character(character.model_copy(update={"image_references": images}))
