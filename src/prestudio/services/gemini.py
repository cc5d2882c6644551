"""Gemini REST client."""

import asyncio
import base64
import io
import logging
import time
import wave
from typing import List, Optional

import requests

from ..config import config
from ..cost import TokenUsage
from ..errors import CredentialMissing, GenerationFailed
from ..storage import decode_data_uri, encode_data_uri
from .base import CharacterRef, GenerationBackend, GenResponse, SceneContext, VideoPromptInput

logger = logging.getLogger(__name__)

IMAGE_MODEL = "gemini-2.5-flash-image"
TTS_MODEL = "gemini-2.5-pro-preview-tts"
TEXT_MODEL = "gemini-2.5-flash"

DEFAULT_STYLE = "Cinematic, 3D render, high detail, masterpiece."
STYLE_PLACEHOLDER = "[A]"

# TTS returns raw 16-bit mono PCM
TTS_SAMPLE_RATE = 24000

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def pcm_to_wav(pcm: bytes, sample_rate: int = TTS_SAMPLE_RATE, channels: int = 1) -> bytes:
    """Wrap raw 16-bit PCM samples in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(pcm)
    return buf.getvalue()


def _usage(data: dict) -> TokenUsage:
    meta = data.get("usageMetadata") or {}
    return TokenUsage(
        prompt_tokens=int(meta.get("promptTokenCount") or 0),
        candidates_tokens=int(meta.get("candidatesTokenCount") or 0),
    )


def _parts(data: dict) -> list:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    return (candidates[0].get("content") or {}).get("parts") or []


def _inline_part(handle: str) -> dict:
    mime_type, payload = decode_data_uri(handle)
    return {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(payload).decode("ascii")}}


def build_scene_prompt(
    style_prompt: str,
    scene_prompt: str,
    script: str,
    characters: List[CharacterRef],
    previous_scenes: List[SceneContext],
) -> str:
    """Compose the image prompt with continuity hints from earlier scenes.

    A style prompt containing the `[A]` placeholder is used as a template and
    receives the scene details in place of the placeholder.
    """
    if previous_scenes:
        previous = ", ".join(
            f"[Scene -{i + 1}: {s.prompt}]" for i, s in enumerate(previous_scenes)
        )
    else:
        previous = "None"

    details = (
        "[SCENE INFO]\n"
        f'Script Content: "{script}"\n'
        f'Visual Context: "{scene_prompt}"\n\n'
        "[CINEMATOGRAPHY & CONTINUITY]\n"
        "1. ANGLE VARIETY: Avoid repeating the last camera angle.\n"
        f"   - Previous Scenes: {previous}\n"
        "2. CONTINUITY: If location/time matches previous scenes, maintain environment details.\n"
    )

    if STYLE_PLACEHOLDER in (style_prompt or ""):
        return style_prompt.replace(STYLE_PLACEHOLDER, details, 1)

    if characters:
        cast = "\n".join(f"   - {c.name}: {c.description}" for c in characters)
    else:
        cast = "   - No specific characters."

    return "\n".join([
        "ACT AS A WORLD-CLASS CINEMATOGRAPHER AND DIRECTOR.",
        "**GOAL**: Generate a high-quality image for a video project.",
        f"**VISUAL STYLE**: {style_prompt or DEFAULT_STYLE}",
        "---",
        details,
        "**CHARACTERS IN SCENE (Must match references)**:",
        cast,
        "**INSTRUCTION**: Generate the image now. Focus on camera angle and continuity.",
    ])


def build_video_prompt_request(data: VideoPromptInput) -> str:
    """Compose the instruction for the video prompt writer."""
    note = data.global_note or (
        "No background music; ambient sound only. Characters act out the script "
        "without lip-syncing the narration."
    )
    return "\n".join([
        f'From the script [B]="{data.current_script}" and its illustration [A], '
        "write a prompt for an 8 second video that illustrates [B].",
        "The prompt must be written in English, except for dialogue, which keeps the script's language.",
        f'Scene context [C]: "{data.current_context or "None"}"',
        f'Previous scene script [B0]: "{data.prev_script or "None"}"',
        f'Previous scene prompt [C0]: "{data.prev_context or "None"}"',
        f'Next scene script [B2]: "{data.next_script or "None"}"',
        f'Next scene prompt [C1]: "{data.next_context or "None"}"',
        f"IMPORTANT NOTE: {note}",
        "Return only the video prompt.",
    ])


class GeminiClient(GenerationBackend):
    """Client for the Gemini generateContent REST API with retry logic."""

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 2.0

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        """Initialize the Gemini client.

        Args:
            base_url: REST endpoint. Defaults to config.api_base_url.
            timeout: Per-request timeout in seconds. Defaults to config.request_timeout.
            max_retries: Maximum attempts for rate-limited or failed requests.
            retry_delay: Base delay between retries in seconds (exponential backoff).
        """
        self._base_url = (base_url or config.api_base_url).rstrip("/")
        self._timeout = timeout or config.request_timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    def generate_content(self, api_key: str, model: str, body: dict) -> dict:
        """POST a generateContent request and return the decoded response.

        Raises:
            CredentialMissing: If `api_key` is empty.
            GenerationFailed: If the request fails after all retries.
        """
        if not api_key:
            raise CredentialMissing()

        url = f"{self._base_url}/models/{model}:generateContent"
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}

        for attempt in range(self._max_retries):
            logger.debug(f"Sending request to {model} (attempt {attempt + 1}/{self._max_retries})")
            try:
                response = requests.post(url, json=body, headers=headers, timeout=self._timeout)
            except requests.RequestException as e:
                if attempt == self._max_retries - 1:
                    logger.error(f"Request to {model} failed: {e}")
                    raise GenerationFailed(str(e)) from e
                delay = self._retry_delay * (2**attempt)
                logger.warning(f"Connection error: {e}. Retrying in {delay:.1f}s...")
                time.sleep(delay)
                continue

            if response.status_code == 200:
                return response.json()

            error_msg = f"{response.status_code}: {response.text[:500]}"
            if response.status_code in RETRYABLE_STATUS and attempt < self._max_retries - 1:
                delay = self._retry_delay * (2**attempt)
                logger.warning(f"Gemini API returned {response.status_code}. Retrying in {delay:.1f}s...")
                time.sleep(delay)
                continue

            logger.error(f"Gemini API error: {error_msg}")
            raise GenerationFailed(error_msg)

        raise GenerationFailed("Max retries exceeded")

    def _image_from(self, data: dict, what: str) -> GenResponse[str]:
        for part in _parts(data):
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                handle = f"data:{inline.get('mimeType', 'image/png')};base64,{inline['data']}"
                return GenResponse(data=handle, usage=_usage(data))
        raise GenerationFailed(f"No image in response ({what})")

    def _text_from(self, data: dict) -> GenResponse[str]:
        text = "".join(part.get("text", "") for part in _parts(data)).strip()
        if not text:
            raise GenerationFailed("No text in response")
        return GenResponse(data=text, usage=_usage(data))

    def _generate_scene_image(self, api_key, style_prompt, scene_prompt, script, characters, previous_scenes):
        parts = [
            _inline_part(c.image_references[0])
            for c in characters
            if c.image_references
        ]
        parts.append({"text": build_scene_prompt(style_prompt, scene_prompt, script, characters, previous_scenes)})
        logger.info(f"Generating scene image: {(scene_prompt or script)[:50]}...")
        data = self.generate_content(api_key, IMAGE_MODEL, {"contents": [{"parts": parts}]})
        return self._image_from(data, "generate")

    def _edit_scene_image(self, api_key, image, instruction):
        body = {"contents": [{"parts": [_inline_part(image), {"text": f"Modify this image: {instruction}"}]}]}
        logger.info(f"Editing image: {instruction[:50]}...")
        data = self.generate_content(api_key, IMAGE_MODEL, body)
        return self._image_from(data, "edit")

    def _generate_speech(self, api_key, text, voice):
        body = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}}},
            },
        }
        logger.info(f"Generating speech with voice {voice}")
        data = self.generate_content(api_key, TTS_MODEL, body)
        for part in _parts(data):
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                wav = pcm_to_wav(base64.b64decode(inline["data"]))
                return GenResponse(data=encode_data_uri("audio/wav", wav), usage=_usage(data))
        raise GenerationFailed("No audio in response")

    def _generate_video_prompt(self, api_key, data: VideoPromptInput):
        parts = []
        if data.current_image:
            parts.append(_inline_part(data.current_image))
        parts.append({"text": build_video_prompt_request(data)})
        logger.info("Generating video prompt")
        response = self.generate_content(api_key, TEXT_MODEL, {"contents": [{"parts": parts}]})
        return self._text_from(response)

    async def generate_scene_image(self, api_key, style_prompt, scene_prompt, script, characters, previous_scenes):
        return await asyncio.to_thread(
            self._generate_scene_image, api_key, style_prompt, scene_prompt, script, characters, previous_scenes
        )

    async def edit_scene_image(self, api_key, image, instruction):
        return await asyncio.to_thread(self._edit_scene_image, api_key, image, instruction)

    async def generate_speech(self, api_key, text, voice):
        return await asyncio.to_thread(self._generate_speech, api_key, text, voice)

    async def generate_video_prompt(self, api_key, data):
        return await asyncio.to_thread(self._generate_video_prompt, api_key, data)
