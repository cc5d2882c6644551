"""Load-time migration of project files.

Files written by older versions (including the browser edition, which used
different key names) are normalized into the current document shape. Every
rule only fills in what is missing, so migrating twice is the same as
migrating once.
"""

import json
import logging
from typing import Any, Dict, List, Tuple, Union

from pydantic import ValidationError

from .config import config
from .errors import MalformedProjectFile
from .models import DEFAULT_VOICE, ProjectDocument, new_id

logger = logging.getLogger(__name__)

NO_CHARACTER = "none"

# In-flight flags are never meaningful across a save/load boundary
EPHEMERAL_SCENE_KEYS = (
    "isGenerating",
    "isGeneratingAudio",
    "isGeneratingVideoPrompt",
    "isGeneratingMotion",
)

# Browser-edition key -> current key
LEGACY_SCENE_KEYS = {
    "vietnamese": "script",
    "contextPrompt": "visualDescription",
    "imageData": "primaryImage",
    "audioData": "audio",
}

# Keys whose null value means "missing" rather than a stored value
SCENE_VALUE_KEYS = ("id", "sceneId", "script", "visualDescription", "selectedCharacterIds", "imageHistory")
CHARACTER_VALUE_KEYS = ("id", "name", "description", "imageReferences", "isDefault")


def parse_document(raw: Union[bytes, str]) -> Dict[str, Any]:
    """Parse raw file content into a document dict.

    Raises:
        MalformedProjectFile: If the content is not a JSON object.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedProjectFile(f"Failed to parse project file: {e}") from e

    if not isinstance(data, dict):
        raise MalformedProjectFile("Project file must contain a JSON object")
    if "content" in data and not isinstance(data["content"], dict):
        raise MalformedProjectFile("Project 'content' must be an object")
    return data


def _drop_nulls(item: Dict[str, Any], keys: Tuple[str, ...]) -> None:
    for key in keys:
        if key in item and item[key] is None:
            del item[key]


def _legacy_list(item: Dict[str, Any], legacy_key: str) -> List[Any]:
    value = item.get(legacy_key)
    if not value or value == NO_CHARACTER:
        return []
    return [value]


def _migrate_scene(scene: Dict[str, Any], position: int) -> Dict[str, Any]:
    if not isinstance(scene, dict):
        raise MalformedProjectFile(f"Scene {position} is not an object")
    s = dict(scene)
    _drop_nulls(s, SCENE_VALUE_KEYS)

    for old, new in LEGACY_SCENE_KEYS.items():
        if new not in s and s.get(old) is not None:
            s[new] = s[old]

    s.setdefault("id", new_id())
    s.setdefault("sceneId", str(position))

    if "selectedCharacterIds" not in s:
        s["selectedCharacterIds"] = _legacy_list(s, "selectedCharacterId")
    if "imageHistory" not in s:
        s["imageHistory"] = _legacy_list(s, "imageData")

    for key in EPHEMERAL_SCENE_KEYS:
        s.pop(key, None)
    return s


def _migrate_character(character: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(character, dict):
        raise MalformedProjectFile("Character entry is not an object")
    c = dict(character)
    _drop_nulls(c, CHARACTER_VALUE_KEYS)
    c.setdefault("id", new_id())
    if "imageReferences" not in c:
        c["imageReferences"] = _legacy_list(c, "imageReference")
    return c


def _single_default(characters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = False
    for c in characters:
        if c.get("isDefault"):
            if seen:
                c["isDefault"] = False
            seen = True
    return characters


def migrate_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a parsed document dict into the current shape.

    The input is not modified.
    """
    data = dict(data or {})
    content = dict(data.get("content") or {})
    _drop_nulls(data, ("name", "lastModifiedAt"))
    _drop_nulls(content, ("stylePrompt",))
    for key in ("scenes", "characters"):
        if content.get(key) is not None and not isinstance(content[key], list):
            raise MalformedProjectFile(f"Project '{key}' must be a list")

    if "lastModifiedAt" not in data and data.get("lastModified") is not None:
        data["lastModifiedAt"] = data["lastModified"]

    content["scenes"] = [
        _migrate_scene(s, i) for i, s in enumerate(content.get("scenes") or [], start=1)
    ]
    content["characters"] = _single_default(
        [_migrate_character(c) for c in content.get("characters") or []]
    )

    if not content.get("selectedVoice"):
        content["selectedVoice"] = config.default_voice or DEFAULT_VOICE
    if not content.get("videoPromptNote"):
        content["videoPromptNote"] = ""

    data["content"] = content
    if not data.get("usageStats"):
        data["usageStats"] = {"totalInputTokens": 0, "totalOutputTokens": 0, "totalCost": 0}
    return data


def load_document(raw: Union[bytes, str]) -> ProjectDocument:
    """Parse, migrate and validate a project file.

    Raises:
        MalformedProjectFile: If the file cannot be turned into a document.
    """
    data = migrate_document(parse_document(raw))
    try:
        doc = ProjectDocument.model_validate(data)
    except ValidationError as e:
        logger.error(f"Project file failed validation: {e}")
        raise MalformedProjectFile(f"Invalid project file: {e}") from e

    logger.info(
        f"Loaded project '{doc.name}' with {len(doc.scenes)} scenes "
        f"and {len(doc.characters)} characters"
    )
    return doc
