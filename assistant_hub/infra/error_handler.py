"""Provider failure taxonomy and status-code classification."""

import asyncio
from typing import Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors surfaced by the assistant pipeline."""
    CONFIGURATION = "configuration"  # Unknown provider, missing credential
    RATE_LIMIT = "rate_limit"  # Provider returned 429
    AUTH_ERROR = "auth_error"  # Provider rejected the credential
    UNAVAILABLE = "unavailable"  # Network error, timeout, other non-2xx
    VALIDATION = "validation"  # Directive payload failed validation
    EXECUTION = "execution"  # Data-store write failed during execution


class ProviderError(Exception):
    """Base exception for failures that abort an assistant request.

    ``status_code`` is the HTTP status the API layer answers with. Nothing in
    this package retries these; callers decide.
    """
    status_code = 500

    def __init__(self, message: str, category: ErrorCategory, provider: Optional[str] = None):
        self.message = message
        self.category = category
        self.provider = provider
        super().__init__(message)


class ConfigurationError(ProviderError):
    """Tenant AI configuration is unusable (unknown provider, missing key)."""
    status_code = 400

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, ErrorCategory.CONFIGURATION, provider)


class RateLimitedError(ProviderError):
    """Provider rate limit exceeded (HTTP 429)."""
    status_code = 429

    def __init__(self, message: str, provider: Optional[str] = None, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message, ErrorCategory.RATE_LIMIT, provider)


class AuthInvalidError(ProviderError):
    """Provider rejected the configured API key."""
    status_code = 401

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, ErrorCategory.AUTH_ERROR, provider)


class UnavailableError(ProviderError):
    """Provider unreachable, timed out, or answered with an unexpected status."""
    status_code = 500

    def __init__(self, message: str, provider: Optional[str] = None, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message, ErrorCategory.UNAVAILABLE, provider)


class ActionValidationError(Exception):
    """A directive payload failed validation; converted to an ActionResult."""

    def __init__(self, message: str):
        self.message = message
        self.category = ErrorCategory.VALIDATION
        super().__init__(message)


class ActionExecutionError(Exception):
    """A data-store write failed; converted to an ActionResult."""

    def __init__(self, message: str):
        self.message = message
        self.category = ErrorCategory.EXECUTION
        super().__init__(message)


_KEY_MARKERS = ("api key", "api_key", "apikey", "api-key")


def is_key_shaped(body: str) -> bool:
    """True when an error body complains about the API key itself."""
    lowered = (body or "").lower()
    return any(marker in lowered for marker in _KEY_MARKERS)


def classify_status(
    status_code: int,
    body: str,
    provider: str,
    retry_after: Optional[float] = None,
) -> ProviderError:
    """
    Map a non-2xx provider response onto the failure taxonomy.

    Args:
        status_code: HTTP status returned by the provider
        body: Response body text (only inspected, never surfaced to users)
        provider: Provider name ('openai', 'gemini')
        retry_after: Parsed Retry-After header, if any

    Returns:
        ProviderError subclass instance (not raised)
    """
    if status_code == 429:
        return RateLimitedError(
            f"{provider} rate limit exceeded. Try again in a moment.",
            provider=provider,
            retry_after=retry_after,
        )
    if status_code == 401 or (status_code == 400 and is_key_shaped(body)):
        return AuthInvalidError(
            f"{provider} API key is invalid. Check the assistant settings.",
            provider=provider,
        )
    return UnavailableError(
        f"{provider} is unavailable ({status_code}).",
        provider=provider,
        upstream_status=status_code,
    )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def wrap_transport_error(error: Exception, provider: str) -> ProviderError:
    """
    Wrap a transport-level failure (timeout, connection error) into the taxonomy.

    ProviderErrors pass through unchanged.
    """
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return UnavailableError(f"{provider} did not answer in time.", provider=provider)
    return UnavailableError(f"{provider} request failed: {type(error).__name__}", provider=provider)
