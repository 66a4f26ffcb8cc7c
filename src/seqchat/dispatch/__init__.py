"""Rate-limited, retrying dispatch of conversations to providers."""

from .dispatcher import RequestDispatcher
from .rate_limiter import RateLimiter

__all__ = ["RateLimiter", "RequestDispatcher"]
