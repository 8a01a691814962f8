"""
Provider error taxonomy.

Embedding and completion calls surface one of four error classes so the
pipeline can report failures without knowing which SDK produced them.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Failure calling an embedding or completion provider."""

    kind = "other"


class AuthError(ProviderError):
    """Invalid, revoked or missing API credential."""

    kind = "auth"


class QuotaError(ProviderError):
    """Account quota or billing limit exhausted."""

    kind = "quota"


class RateLimitError(ProviderError):
    """Request rejected by the provider's rate limiter."""

    kind = "rate_limit"


def translate_provider_error(exc: Exception) -> ProviderError:
    """Map an openai/anthropic SDK exception onto the provider taxonomy.

    Matching is by class name and status code so that neither SDK has to be
    importable for the translation to work.
    """
    if isinstance(exc, ProviderError):
        return exc

    name = type(exc).__name__
    status = getattr(exc, "status_code", None)
    code = str(getattr(exc, "code", "") or "")
    message = str(exc)
    lowered = message.lower()

    if name in ("AuthenticationError", "PermissionDeniedError") or status in (401, 403):
        return AuthError(message)
    if code == "insufficient_quota" or "quota" in lowered:
        return QuotaError(message)
    if name == "RateLimitError" or status == 429 or "rate limit" in lowered:
        return RateLimitError(message)
    if "api key" in lowered:
        return AuthError(message)
    return ProviderError(message)
