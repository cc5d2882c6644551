"""Transient per-scene activity flags.

These flags describe work in flight and live outside the document history,
so starting or finishing a generation never creates an undo entry. They are
keyed by the scene's stable `id`, which stays valid when scenes are
reordered or removed while a request is running.
"""

from enum import Enum
from typing import Dict, Set


class ActivityKind(str, Enum):
    """Kinds of generation that can be in flight for a scene."""
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO_PROMPT = "video_prompt"


class StatusBoard:
    """Map of scene id to the activities currently running for it."""

    def __init__(self) -> None:
        self._active: Dict[str, Set[ActivityKind]] = {}

    def start(self, scene_id: str, kind: ActivityKind) -> None:
        self._active.setdefault(scene_id, set()).add(kind)

    def finish(self, scene_id: str, kind: ActivityKind) -> None:
        kinds = self._active.get(scene_id)
        if not kinds:
            return
        kinds.discard(kind)
        if not kinds:
            del self._active[scene_id]

    def is_active(self, scene_id: str, kind: ActivityKind) -> bool:
        return kind in self._active.get(scene_id, ())

    def active(self, scene_id: str) -> Set[ActivityKind]:
        return set(self._active.get(scene_id, ()))

    def busy(self) -> bool:
        """True while any scene has work in flight."""
        return bool(self._active)

    def clear(self) -> None:
        self._active.clear()
