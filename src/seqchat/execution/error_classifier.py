"""Error classification for provider dispatch failures.

Maps any raw transport or SDK failure onto exactly one ErrorType so the
dispatcher can decide between retry (RATE_LIMIT only) and fail-fast.
Classification never raises: UNKNOWN is the fallback.
"""

import asyncio
import json
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from seqchat.errors import ApiError, ErrorType


class ContentValidationError(ValueError):
    """Provider returned an empty or malformed response body."""

    pass


# Status code -> class. 5xx is handled as a range below.
STATUS_ERROR_TYPES = {
    400: ErrorType.VALIDATION,
    401: ErrorType.AUTH,
    403: ErrorType.AUTH,
    408: ErrorType.TIMEOUT,
    422: ErrorType.VALIDATION,
    429: ErrorType.RATE_LIMIT,
}

ERROR_MESSAGES = {
    ErrorType.NETWORK: "Network error",
    ErrorType.TIMEOUT: "Request timed out",
    ErrorType.AUTH: "Authentication failed",
    ErrorType.VALIDATION: "Validation failed",
    ErrorType.RATE_LIMIT: "Rate limit exceeded",
    ErrorType.SERVER: "Server error",
    ErrorType.UNKNOWN: "Unknown error occurred",
}

# SDK exception class names (openai, anthropic, google-genai) that carry no
# status code but identify the failure mode.
TIMEOUT_NAME_MARKERS = ("timeout", "deadline")
CONNECTION_NAME_MARKERS = ("connection", "connect", "network", "unreachable")


def extract_status_code(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status lookup across httpx and vendor SDK errors."""
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and 100 <= value < 600:
            return value

    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def classify_status_code(status_code: int) -> ErrorType:
    if status_code in STATUS_ERROR_TYPES:
        return STATUS_ERROR_TYPES[status_code]
    if 500 <= status_code < 600:
        return ErrorType.SERVER
    return ErrorType.UNKNOWN


def _class_names(error: BaseException) -> str:
    return " ".join(cls.__name__.lower() for cls in type(error).__mro__)


def classify_error(error: BaseException) -> ErrorType:
    """Classify a dispatch failure.

    Order matters: timeouts are checked before connection errors because
    several SDKs derive their timeout error from their connection error.

    Args:
        error: Any exception raised while talking to a provider

    Returns:
        The matching ErrorType (never NO_PROVIDER_AVAILABLE)
    """
    try:
        if isinstance(error, ApiError):
            return error.error_type

        names = _class_names(error)

        if isinstance(
            error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)
        ) or any(marker in names for marker in TIMEOUT_NAME_MARKERS):
            return ErrorType.TIMEOUT

        status_code = extract_status_code(error)
        if status_code is not None:
            return classify_status_code(status_code)

        if isinstance(
            error,
            (
                ContentValidationError,
                json.JSONDecodeError,
                PydanticValidationError,
                httpx.DecodingError,
            ),
        ):
            return ErrorType.VALIDATION

        if isinstance(
            error, (ConnectionError, httpx.NetworkError, httpx.RemoteProtocolError)
        ) or any(marker in names for marker in CONNECTION_NAME_MARKERS):
            return ErrorType.NETWORK

        if isinstance(error, (ValueError, KeyError, IndexError, TypeError)):
            # Raised while picking apart a payload that didn't match its shape
            return ErrorType.VALIDATION
    except Exception:
        # Attribute access on foreign exception objects can itself fail
        return ErrorType.UNKNOWN

    return ErrorType.UNKNOWN


def to_api_error(error: BaseException) -> ApiError:
    """Wrap a raw failure into an ApiError, passing ApiErrors through."""
    if isinstance(error, ApiError):
        return error

    error_type = classify_error(error)
    detail = str(error).strip()
    message = ERROR_MESSAGES[error_type]
    if detail:
        message = f"{message}: {detail}"
    return ApiError(
        error_type,
        message,
        status=extract_status_code(error),
        original_error=error,
    )
