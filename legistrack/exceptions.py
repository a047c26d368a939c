"""Exception types shared across LegisTrack services."""

from typing import Optional


class LegisTrackError(Exception):
    """Base class for LegisTrack errors."""


class ConfigurationError(LegisTrackError):
    """A required API key or setting is missing."""


class InvalidBillIdError(LegisTrackError, ValueError):
    """Bill ID is not in {congress}-{type}-{number} form."""


class NotFoundError(LegisTrackError):
    """Requested record does not exist."""


class UpstreamAPIError(LegisTrackError):
    """A third-party HTTP API returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMUnavailableError(LegisTrackError):
    """LLM API key is not configured."""


class GenerationError(LegisTrackError):
    """AI content generation failed or its inputs are missing."""
