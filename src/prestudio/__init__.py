"""Project state and cost accounting for AI-assisted video pre-production."""

__version__ = "0.1.0"
