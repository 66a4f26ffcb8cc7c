"""Error taxonomy shared by the dispatch layer and the step sequencer."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(Enum):
    """Closed set of failure classes surfaced to callers."""

    # No response reached us (DNS, refused connection, reset)
    NETWORK = "NETWORK"

    # Deadline exceeded before the provider answered
    TIMEOUT = "TIMEOUT"

    # 401/403-equivalent
    AUTH = "AUTH"

    # 400/422-equivalent, or an empty/malformed payload
    VALIDATION = "VALIDATION"

    # 429-equivalent; the only class retried by the dispatcher
    RATE_LIMIT = "RATE_LIMIT"

    # 5xx-equivalent
    SERVER = "SERVER"

    UNKNOWN = "UNKNOWN"

    # Raised before any dispatch attempt; never carried by an ApiError
    NO_PROVIDER_AVAILABLE = "NO_PROVIDER_AVAILABLE"


# Classes an ApiError may carry
API_ERROR_TYPES: frozenset = frozenset(
    {
        ErrorType.NETWORK,
        ErrorType.TIMEOUT,
        ErrorType.AUTH,
        ErrorType.VALIDATION,
        ErrorType.RATE_LIMIT,
        ErrorType.SERVER,
        ErrorType.UNKNOWN,
    }
)


class SeqChatError(Exception):
    """Base exception for seqchat."""

    pass


class ApiError(SeqChatError):
    """A classified provider-side failure.

    Attributes:
        error_type: One of the provider-side ErrorType classes
        status: HTTP status code when one was received
        original_error: The raw exception that was classified
    """

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        status: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        if error_type not in API_ERROR_TYPES:
            raise ValueError(f"{error_type} is not a provider-side error type")
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.status = status
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.error_type.value,
            "message": self.message,
            "status": self.status,
        }

    def __repr__(self) -> str:
        return f"ApiError({self.error_type.value}, {self.message!r}, status={self.status})"


class NoProviderAvailableError(SeqChatError):
    """No configured provider could be selected; raised before any dispatch."""

    error_type = ErrorType.NO_PROVIDER_AVAILABLE

    def __init__(self, message: str = "No provider available", tried: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.tried = list(tried or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.error_type.value,
            "message": self.message,
            "tried": self.tried,
        }


class HistoryError(SeqChatError, ValueError):
    """Raised when an append would break conversation history invariants."""

    pass


class SequenceLoadError(SeqChatError):
    """Raised when a sequence definition cannot be loaded."""

    pass
