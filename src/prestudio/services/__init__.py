"""External service integrations."""

from .base import CharacterRef, GenerationBackend, GenResponse, SceneContext, VideoPromptInput
from .gemini import GeminiClient

__all__ = [
    "CharacterRef",
    "GenerationBackend",
    "GenResponse",
    "SceneContext",
    "VideoPromptInput",
    "GeminiClient",
]
