"""Exception hierarchy for the spot eviction tool."""

from typing import Optional

from .schema import ErrorKind


class SpotEvictionError(Exception):
    """Base exception for the spot eviction tool."""


class ConfigError(SpotEvictionError):
    """Raised when a configuration file cannot be loaded or validated."""


class PricingError(SpotEvictionError):
    """Raised when retail price records cannot be retrieved."""


class ScorePairingError(SpotEvictionError):
    """Raised when a batch response cannot be paired with its request."""


class ScoringError(SpotEvictionError):
    """A scoring request failed.

    The kind is assigned once, where the transport error is caught, and is
    carried unchanged up through the retry tiers.
    """

    def __init__(self, kind: ErrorKind, message: str, status_code: Optional[int] = None):
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(f"{kind.value}: {message}")

    @classmethod
    def from_status(cls, status_code: int, message: str = "") -> "ScoringError":
        """Build an error from an HTTP status code."""
        if status_code == 429:
            kind = ErrorKind.RATE_LIMITED
        elif status_code == 400:
            kind = ErrorKind.BAD_REQUEST
        elif status_code in (408, 504):
            kind = ErrorKind.TIMEOUT
        else:
            kind = ErrorKind.API_FAILED
        return cls(kind, message or f"HTTP {status_code}", status_code=status_code)
