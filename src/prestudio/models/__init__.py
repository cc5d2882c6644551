"""Data models for the project document."""

from .scene import Scene, new_id
from .character import Character, MAX_CHARACTER_IMAGES
from .project import ProjectContent, ProjectDocument, UsageStats, DEFAULT_VOICE

__all__ = [
    "Scene",
    "Character",
    "ProjectContent",
    "ProjectDocument",
    "UsageStats",
    "MAX_CHARACTER_IMAGES",
    "DEFAULT_VOICE",
    "new_id",
]
