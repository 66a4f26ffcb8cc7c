"""Request dispatch: one provider call under rate limiting, retry and timeout."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from seqchat.ai_providers.selector import ProviderSelector
from seqchat.errors import ApiError, ErrorType, NoProviderAvailableError
from seqchat.execution.error_classifier import to_api_error
from seqchat.execution.history import ConversationHistory, ConversationTurn, Role
from seqchat.utils.logger import get_logger
from seqchat.utils.retry import RetryConfig, calculate_delay

from .rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0

# Failures that mean "this provider is unavailable" when failover is enabled
FAILOVER_ERROR_TYPES = frozenset({ErrorType.NETWORK, ErrorType.SERVER})


class RequestDispatcher:
    """Send a conversation to the active provider and return its reply.

    Only RATE_LIMIT failures are retried, with exponential backoff capped at
    ``retry_config.max_retries``. Every other class is raised immediately as
    an ApiError. At most one backoff timer is pending per dispatcher: a
    rate-limited send that finds one already scheduled waits on it instead
    of starting its own.
    """

    def __init__(
        self,
        selector: ProviderSelector,
        rate_limiter: Optional[RateLimiter] = None,
        retry_config: Optional[RetryConfig] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        failover: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")

        self.selector = selector
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retry_config = retry_config or RetryConfig()
        self.request_timeout = request_timeout
        self.failover = failover
        self._sleep = sleep

        self._pending_backoff: Optional[asyncio.Future] = None
        self._backoff_waiters = 0

        self.stats: Dict[str, int] = {
            "dispatched": 0,
            "succeeded": 0,
            "failed": 0,
            "rate_limit_retries": 0,
            "failovers": 0,
        }

    @property
    def max_retries(self) -> int:
        return self.retry_config.max_retries

    async def send(self, history: ConversationHistory) -> ConversationTurn:
        """Dispatch ``history`` and return the ASSISTANT turn.

        Raises:
            NoProviderAvailableError: Before any network attempt, if no
                provider can be selected
            ApiError: Classified provider failure
        """
        provider = await self.selector.select_available()
        tried: Set[str] = set()
        retry_count = 0

        while True:
            try:
                reply = await self._attempt(provider, history)
                self.stats["succeeded"] += 1
                return reply
            except ApiError as error:
                if error.error_type is ErrorType.RATE_LIMIT:
                    if retry_count >= self.max_retries:
                        self.stats["failed"] += 1
                        logger.error(
                            f"Rate limit persisted on {provider.name} after "
                            f"{retry_count} retries"
                        )
                        raise ApiError(
                            ErrorType.RATE_LIMIT,
                            f"Maximum retry attempts ({self.max_retries}) exceeded",
                            status=error.status,
                            original_error=error,
                        ) from error
                    await self._backoff(retry_count)
                    retry_count += 1
                    self.stats["rate_limit_retries"] += 1
                    continue

                if self.failover and error.error_type in FAILOVER_ERROR_TYPES:
                    tried.add(provider.name)
                    self.selector.mark_unavailable(provider.name)
                    try:
                        provider = await self.selector.select_available(exclude=tried)
                    except NoProviderAvailableError:
                        self.stats["failed"] += 1
                        raise error
                    logger.warning(
                        f"Failing over to {provider.name} after "
                        f"{error.error_type.value} error"
                    )
                    self.stats["failovers"] += 1
                    retry_count = 0
                    continue

                self.stats["failed"] += 1
                raise

    async def _attempt(
        self, provider: Any, history: ConversationHistory
    ) -> ConversationTurn:
        """One admitted, time-bounded call; raw failures become ApiErrors."""
        async with self.rate_limiter.slot():
            self.stats["dispatched"] += 1
            logger.debug(
                f"Dispatching {len(history)} turns to {provider.name} "
                f"(timeout={self.request_timeout}s)"
            )
            try:
                reply = await asyncio.wait_for(
                    provider.send(history), timeout=self.request_timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                api_error = to_api_error(e)
                logger.warning(
                    f"{provider.name} call failed with {api_error.error_type.value}: "
                    f"{api_error.message}"
                )
                raise api_error from e

        return self._validate_reply(reply)

    def _validate_reply(self, reply: Any) -> ConversationTurn:
        if not isinstance(reply, ConversationTurn):
            raise ApiError(
                ErrorType.VALIDATION,
                f"Malformed response received: {type(reply).__name__}",
            )
        if reply.role is not Role.ASSISTANT:
            raise ApiError(
                ErrorType.VALIDATION,
                f"Invalid response role received: {reply.role.value}",
            )
        if not isinstance(reply.content, str) or not reply.content.strip():
            raise ApiError(ErrorType.VALIDATION, "Empty response received")
        return reply

    async def _backoff(self, retry_count: int) -> None:
        pending = self._pending_backoff
        if pending is None or pending.done():
            delay = calculate_delay(retry_count, self.retry_config)
            logger.info(
                f"Rate limited; retrying (attempt {retry_count + 1}/"
                f"{self.max_retries}) after {delay:.2f}s"
            )
            pending = asyncio.ensure_future(self._sleep(delay))
            self._pending_backoff = pending
        else:
            logger.debug("Rate limited; joining pending backoff")

        self._backoff_waiters += 1
        try:
            await asyncio.shield(pending)
        finally:
            self._backoff_waiters -= 1
            if self._backoff_waiters == 0:
                if not pending.done():
                    # Every waiter was cancelled; don't leave the timer behind
                    pending.cancel()
                if self._pending_backoff is pending:
                    self._pending_backoff = None
