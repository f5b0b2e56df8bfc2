"""Classification of agent-loop failures and retry helpers."""

import json
import re
from dataclasses import dataclass

import httpx

from coworkbot.exceptions import (
    AuthError,
    ConfigurationError,
    LLMAPIError,
    NetworkError,
    RateLimitError,
    SensitiveContentError,
    ValidationError,
)

RATE_LIMIT = "rate_limit"
AUTH = "auth"
SENSITIVE_CONTENT = "sensitive_content"
NETWORK = "network"
VALIDATION = "validation"
CONFIGURATION = "configuration"
UNKNOWN = "unknown"

SENSITIVE_CONTENT_INDICATORS = (
    "1027",
    "sensitive",
    "new_sensitive",
    "content_filter",
    "safety_filter",
)

_NETWORK_RE = re.compile(
    r"ENOTFOUND|ECONNREFUSED|ETIMEDOUT|fetch failed|network|connect(ion)? (error|refused|failed)",
    re.IGNORECASE,
)

MSG_RATE_LIMIT = "Too many requests (rate limit). Please try again shortly."
MSG_AUTH = "Authentication failed: the API key is invalid, expired or missing. Update it in settings."
MSG_SENSITIVE = (
    "The provider blocked the response with its content filter. "
    "Please rephrase the request or try again later."
)
MSG_NETWORK = "Network error: check that the base URL is correct and the network is reachable."
MSG_UNKNOWN = "An unknown error occurred."


@dataclass(frozen=True)
class ErrorClassification:
    """How a loop-level failure is handled and shown to the user."""

    type: str
    retryable: bool
    user_message: str


def _status_of(error: BaseException) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_rate_limit_error(error: BaseException) -> bool:
    """HTTP 429 or an explicit RateLimitError."""
    return isinstance(error, RateLimitError) or _status_of(error) == 429


def is_auth_error(error: BaseException) -> bool:
    """HTTP 401/403 or an explicit AuthError."""
    return isinstance(error, AuthError) or _status_of(error) in (401, 403)


def is_sensitive_content_error(error: BaseException) -> bool:
    """HTTP 500 whose message carries one of the content-filter indicators."""
    if isinstance(error, SensitiveContentError):
        return True
    if _status_of(error) != 500:
        return False
    message = str(error).lower()
    try:
        details = json.dumps(getattr(error, "args", ()), default=str).lower()
    except (TypeError, ValueError):
        details = ""
    return any(
        indicator in message or indicator in details
        for indicator in SENSITIVE_CONTENT_INDICATORS
    )


def is_network_error(error: BaseException) -> bool:
    """Connectivity failure, detected heuristically from the failure text."""
    if isinstance(error, (NetworkError, httpx.TransportError)):
        return True
    return bool(_NETWORK_RE.search(str(error)))


def classify_error(error: BaseException) -> ErrorClassification:
    """Classify an error and return its handling information."""
    if isinstance(error, ConfigurationError):
        return ErrorClassification(CONFIGURATION, False, str(error))

    if isinstance(error, ValidationError):
        return ErrorClassification(VALIDATION, False, str(error))

    if is_rate_limit_error(error):
        return ErrorClassification(RATE_LIMIT, True, MSG_RATE_LIMIT)

    if is_auth_error(error):
        return ErrorClassification(AUTH, False, MSG_AUTH)

    if is_sensitive_content_error(error):
        return ErrorClassification(SENSITIVE_CONTENT, True, MSG_SENSITIVE)

    if is_network_error(error):
        return ErrorClassification(NETWORK, True, MSG_NETWORK)

    message = str(error)
    if _status_of(error) == 400 and message:
        return ErrorClassification(VALIDATION, False, message)

    return ErrorClassification(UNKNOWN, False, message or MSG_UNKNOWN)


def format_error_message(error: BaseException) -> str:
    """User-facing text for an error."""
    return classify_error(error).user_message


def error_for_status(status_code: int, body: str, provider: str = "LLM") -> LLMAPIError:
    """Build the exception matching an upstream HTTP failure."""
    message = f"{provider} API error {status_code}: {body}".strip()
    if status_code == 429:
        return RateLimitError(message, status_code=status_code)
    if status_code in (401, 403):
        return AuthError(message, status_code=status_code)
    if status_code == 500 and any(
        indicator in (body or "").lower() for indicator in SENSITIVE_CONTENT_INDICATORS
    ):
        return SensitiveContentError(message, status_code=status_code)
    return LLMAPIError(message, status_code=status_code)


def backoff_delay(retry_count: int, base_ms: int = 1000, max_ms: int = 5000) -> float:
    """Exponential backoff in seconds: base * 2**retry_count, capped."""
    exponent = max(0, int(retry_count))
    delay_ms = min(base_ms * (2 ** exponent), max_ms)
    return delay_ms / 1000.0


def sensitive_content_retry_message() -> str:
    """Corrective instruction appended to history after a safety-filter block."""
    return (
        "[SYSTEM ERROR] Your previous response was blocked by the safety filter "
        "(Error Code 1027: output new_sensitive).\n\n"
        "This usually means the generated content contained sensitive, restricted, "
        "or unsafe material.\n\n"
        "Please generate a NEW response that:\n"
        "1. Addresses the user's request safely.\n"
        "2. Avoids the sensitive topic or phrasing that triggered the block.\n"
        "3. Acknowledges the issue briefly if necessary."
    )
