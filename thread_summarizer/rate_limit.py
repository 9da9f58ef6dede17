from __future__ import annotations

from openai import RateLimitError

# Throttling phrases seen across providers (and our own transport's exhaustion message).
RATE_LIMIT_PHRASES: tuple[str, ...] = (
    "429",
    "Rate limit",
    "rate_limit",
    "TPM",
    "Límite de velocidad",
    "modelos agotados",
)

CONTENT_TOO_LONG_PHRASES: tuple[str, ...] = (
    "400",
    "too large",
    "context length",
)


def _status_code(exc: BaseException) -> int | None:
    val = getattr(exc, "status_code", None)
    if val is None:
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitError) or _status_code(exc) == 429:
        return True
    message = str(exc) or ""
    return any(phrase in message for phrase in RATE_LIMIT_PHRASES)


def is_content_too_long_error(exc: BaseException) -> bool:
    if _status_code(exc) == 400:
        return True
    message = str(exc) or ""
    return any(phrase in message for phrase in CONTENT_TOO_LONG_PHRASES)


def rate_limit_retry_policy(exc: BaseException) -> tuple[bool, str | None]:
    """Retry predicate for call_with_retries: only throttling is worth waiting for."""
    if is_rate_limit_error(exc):
        return True, "rate_limited"
    return False, None
