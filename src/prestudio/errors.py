"""Error taxonomy.

Every error here is recoverable at the boundary where the action started:
the session caller, the cost gate outcome, or the CLI command.
"""


class StudioError(Exception):
    """Base class for all prestudio errors."""


class CredentialMissing(StudioError):
    """No API credential is available for the generation backend."""

    def __init__(self, message: str = "Gemini API key not provided. Set GEMINI_API_KEY env var.") -> None:
        super().__init__(message)


class MalformedProjectFile(StudioError):
    """A project file could not be parsed into a document."""


class ValidationFailed(StudioError):
    """An action was rejected before any external call was made."""


class GenerationFailed(StudioError):
    """The external generation capability failed or timed out."""


class CapacityExceeded(StudioError):
    """A collection limit would be exceeded (e.g. character reference images)."""
