"""Per-scene image version ledger.

`image_history` is an append-only log of every image a scene has shown.
A new result is always appended; promoting an older version only changes
which entry is active.
"""

import logging
from typing import List

from .errors import ValidationFailed
from .models import ProjectDocument, Scene

logger = logging.getLogger(__name__)


def record_image(scene: Scene, result: str) -> Scene:
    """Return the scene with a freshly generated image made active.

    The current primary image is backfilled into the ledger first when it is
    missing (scenes loaded from files that predate the ledger).
    """
    history = list(scene.image_history)
    if scene.primary_image and scene.primary_image not in history:
        history.append(scene.primary_image)
    history.append(result)
    return scene.model_copy(update={"primary_image": result, "image_history": history})


def promote_version(scene: Scene, version: str) -> Scene:
    """Make an earlier ledger entry the active image without touching the ledger.

    Raises:
        ValidationFailed: If `version` was never recorded for this scene.
    """
    if version not in scene.image_history:
        raise ValidationFailed(f"Image version is not in the history of scene {scene.scene_id}")
    return scene.model_copy(update={"primary_image": version})


def versions(scene: Scene) -> List[str]:
    """Ledger entries, oldest first."""
    return list(scene.image_history)


def apply_image_result(doc: ProjectDocument, scene_id: str, result: str) -> ProjectDocument:
    """Record an image result on the scene with stable id `scene_id`.

    Returns `doc` unchanged when the scene no longer exists.
    """
    scene = doc.find_scene(scene_id)
    if scene is None:
        logger.warning(f"Scene {scene_id} was removed before its image arrived; dropping result")
        return doc
    return doc.with_scene(record_image(scene, result))


def apply_promotion(doc: ProjectDocument, scene_id: str, version: str) -> ProjectDocument:
    """Promote `version` on the scene with stable id `scene_id`."""
    scene = doc.find_scene(scene_id)
    if scene is None:
        raise ValidationFailed(f"Unknown scene: {scene_id}")
    if scene.primary_image == version:
        return doc
    return doc.with_scene(promote_version(scene, version))
