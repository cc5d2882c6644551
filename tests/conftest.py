"""Shared fixtures."""

import asyncio
from typing import List, Optional

import pytest

from prestudio.cost import TokenUsage
from prestudio.services.base import GenerationBackend, GenResponse
from prestudio.session import ProjectSession
from prestudio.storage import encode_data_uri


def png(tag: str) -> str:
    """A small fake image handle."""
    return encode_data_uri("image/png", tag.encode("utf-8"))


class FakeBackend(GenerationBackend):
    """In-memory backend recording every call.

    Set `hold` to an asyncio.Event (created inside the running loop) to keep
    calls in flight until it is set, or `fail_with` to make calls raise.
    """

    def __init__(self, usage: Optional[TokenUsage] = None) -> None:
        self.calls: List[tuple] = []
        self.usage = usage or TokenUsage(prompt_tokens=1200, candidates_tokens=258)
        self.fail_with: Optional[Exception] = None
        self.hold: Optional[asyncio.Event] = None
        self.images = 0

    async def _respond(self, call: tuple, data: str) -> GenResponse[str]:
        self.calls.append(call)
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return GenResponse(data=data, usage=self.usage)

    async def generate_scene_image(self, api_key, style_prompt, scene_prompt, script, characters, previous_scenes):
        self.images += 1
        return await self._respond(
            ("image", api_key, scene_prompt, [c.name for c in characters], len(previous_scenes)),
            png(f"image-{self.images}"),
        )

    async def edit_scene_image(self, api_key, image, instruction):
        self.images += 1
        return await self._respond(("edit", api_key, instruction), png(f"edit-{self.images}"))

    async def generate_speech(self, api_key, text, voice):
        return await self._respond(("speech", api_key, text, voice), encode_data_uri("audio/wav", b"RIFF"))

    async def generate_video_prompt(self, api_key, data):
        return await self._respond(("video_prompt", api_key, data.current_script), "Slow dolly in on the hero.")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session(backend) -> ProjectSession:
    return ProjectSession(credential="test-key", backend=backend)
