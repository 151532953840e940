"""Error taxonomy of the evaluation core."""

from __future__ import annotations

from typing import Optional, Sequence


class MetaPulseError(Exception):
    """Base class for every error raised by the evaluation core."""


class RateLimitExceeded(MetaPulseError):
    """A service's quota stayed exhausted through every retry.

    Retryable by the caller once ``retry_after_ms`` has elapsed.
    """

    def __init__(
        self,
        service: str,
        message: str,
        retry_after_ms: Optional[float] = None,
        errors: Sequence[BaseException] = (),
    ):
        super().__init__(message)
        self.service = service
        self.retry_after_ms = retry_after_ms
        self.errors = list(errors)


class ProviderError(MetaPulseError):
    """An AI provider could not produce a valid score."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider} provider error: {message}")
        self.provider = provider


class SchemaValidationError(MetaPulseError):
    """A parsed provider reply failed bounds, enum or length checks."""

    def __init__(self, message: str, errors: Sequence[dict] = ()):
        super().__init__(message)
        self.errors = list(errors)


class ConsensusUnavailable(MetaPulseError):
    """Both providers failed, so no consensus can be formed."""

    def __init__(self, errors: Sequence[BaseException]):
        self.errors = list(errors)
        detail = "; ".join(str(e) for e in self.errors)
        super().__init__(f"Both AI providers failed: {detail}")
