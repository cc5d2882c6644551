"""Configuration management."""

import os
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    gemini_api_key: str = Field(
        default_factory=lambda: os.getenv("GEMINI_API_KEY", "") or os.getenv("GOOGLE_API_KEY", ""),
        description="Gemini API key"
    )

    # Paths
    workspace: Path = Field(
        default_factory=lambda: Path(os.getenv("PRESTUDIO_WORKSPACE", ".")),
        description="Directory where project files and archives are written"
    )

    # Project defaults
    default_voice: str = Field(
        default_factory=lambda: os.getenv("PRESTUDIO_VOICE", "Sadachbia"),
        description="Voice used for text-to-speech when a project has none"
    )

    # Cost gate
    notification_seconds: float = Field(
        default_factory=lambda: float(os.getenv("PRESTUDIO_NOTIFY_SECONDS", "5.0")),
        description="Seconds before a cost notification is dismissed",
        ge=0,
    )

    # Transport
    request_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for a single generation request"
    )
    api_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST endpoint"
    )

    class Config:
        """Pydantic config."""
        frozen = False


# Global config instance
config = Config()
