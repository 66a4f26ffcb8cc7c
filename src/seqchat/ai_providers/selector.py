"""Provider selection with cached availability probes and status history."""

import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from seqchat.errors import NoProviderAvailableError
from seqchat.utils.logger import get_logger

from .base import BaseProvider

logger = get_logger(__name__)

DEFAULT_PROBE_TTL = 60.0
MAX_STATUS_HISTORY = 100


@dataclass
class ProviderStatus:
    """Result of one availability check."""

    provider: str
    is_available: bool
    latency: Optional[float] = None
    last_checked: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "is_available": self.is_available,
            "latency": self.latency,
            "last_checked": self.last_checked.isoformat()
            if self.last_checked
            else None,
            "error_message": self.error_message,
        }


class ProviderSelector:
    """Chooses which provider serves the next request.

    Once selected, a provider stays current until it is marked unavailable
    or replaced with ``select()``. Only then is the policy below walked again.

    Policy, in order:
    1. the explicitly preferred provider, if it has credentials and is not
       currently known to be unavailable
    2. the first configured provider, in priority order, whose probe succeeds
    3. ``NoProviderAvailableError``

    Probe results are cached for ``probe_ttl`` seconds.
    """

    def __init__(
        self,
        providers: List[BaseProvider],
        preferred: Optional[str] = None,
        probe_ttl: float = DEFAULT_PROBE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if probe_ttl < 0:
            raise ValueError("probe_ttl must be >= 0")

        self._providers: Dict[str, BaseProvider] = {}
        for provider in providers:
            if provider.name in self._providers:
                raise ValueError(f"Duplicate provider: {provider.name}")
            self._providers[provider.name] = provider

        if preferred and preferred not in self._providers:
            raise ValueError(f"Unknown preferred provider: {preferred}")

        self.preferred = preferred or None
        self.probe_ttl = probe_ttl
        self._clock = clock
        self._current: Optional[str] = None

        # name -> (monotonic time of check, status)
        self._probe_cache: Dict[str, Tuple[float, ProviderStatus]] = {}
        self._history: Dict[str, Deque[ProviderStatus]] = {
            name: deque(maxlen=MAX_STATUS_HISTORY) for name in self._providers
        }

    @property
    def provider_names(self) -> List[str]:
        return list(self._providers)

    def get_provider(self, name: str) -> BaseProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise ValueError(f"Unknown provider: {name}") from None

    def current(self) -> BaseProvider:
        """The provider chosen by the last successful selection."""
        if self._current is None:
            raise NoProviderAvailableError("No provider has been selected")
        return self._providers[self._current]

    def select(self, name: str) -> BaseProvider:
        """Explicitly prefer ``name`` for subsequent requests."""
        provider = self.get_provider(name)
        # An explicit choice overrides a cached failure
        self._probe_cache.pop(name, None)
        self.preferred = name
        self._set_current(name)
        return provider

    async def select_available(
        self, exclude: Optional[Iterable[str]] = None
    ) -> BaseProvider:
        """Resolve the provider for the next request.

        Raises:
            NoProviderAvailableError: No configured provider is reachable
        """
        excluded = set(exclude or ())
        tried: List[str] = []

        current = self._current
        if current is not None and current not in excluded:
            provider = self._providers[current]
            if provider.is_configured() and not self._known_unavailable(current):
                return provider

        preferred = self.preferred
        if preferred and preferred not in excluded:
            provider = self._providers[preferred]
            if not provider.is_configured():
                logger.warning(
                    f"Preferred provider {preferred} has no credentials; "
                    "falling back to priority order"
                )
            elif self._known_unavailable(preferred):
                logger.warning(
                    f"Preferred provider {preferred} is unavailable; "
                    "falling back to priority order"
                )
                tried.append(preferred)
            else:
                self._set_current(preferred)
                return provider

        for name, provider in self._providers.items():
            if name in excluded or name in tried:
                continue
            if not provider.is_configured():
                continue
            tried.append(name)
            if await self.probe(name):
                self._set_current(name)
                return provider

        self._current = None
        raise NoProviderAvailableError(
            "No provider available" + (f" (tried: {', '.join(tried)})" if tried else ""),
            tried=tried,
        )

    async def probe(self, name: str, force: bool = False) -> bool:
        """Check ``name``'s availability, reusing a result younger than the TTL."""
        provider = self.get_provider(name)

        cached = self._cached_status(name)
        if cached is not None and not force:
            return cached.is_available

        started = self._clock()
        error_message = None
        try:
            available = await provider.probe()
            if not available:
                error_message = "Probe returned a non-success status"
        except Exception as e:
            available = False
            error_message = f"{type(e).__name__}: {e}"
        latency = max(self._clock() - started, 0.0)

        self._record(
            ProviderStatus(
                provider=name,
                is_available=available,
                latency=latency,
                last_checked=datetime.now(timezone.utc),
                error_message=error_message,
            )
        )
        return available

    def mark_unavailable(self, name: str, reason: Optional[str] = None) -> None:
        """Record ``name`` as down until its next probe after the TTL."""
        self.get_provider(name)
        self._record(
            ProviderStatus(
                provider=name,
                is_available=False,
                last_checked=datetime.now(timezone.utc),
                error_message=reason or "Marked unavailable after a failed request",
            )
        )
        if self._current == name:
            self._current = None

    def get_status(self, name: str) -> Optional[ProviderStatus]:
        self.get_provider(name)
        history = self._history[name]
        return history[0] if history else None

    def get_status_history(self, name: Optional[str] = None) -> List[ProviderStatus]:
        """Status records, newest first; all providers when ``name`` is None."""
        if name is not None:
            self.get_provider(name)
            return list(self._history[name])
        merged = [status for history in self._history.values() for status in history]
        merged.sort(
            key=lambda s: s.last_checked or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return merged[:MAX_STATUS_HISTORY]

    async def shutdown(self) -> None:
        for provider in self._providers.values():
            if provider.initialized:
                try:
                    await provider.shutdown()
                except Exception as e:
                    logger.warning(f"Error shutting down {provider.name}: {e}")

    def _set_current(self, name: str) -> None:
        if self._current != name:
            logger.info(f"Using provider {name} ({self._providers[name].model_id})")
        self._current = name

    def _cached_status(self, name: str) -> Optional[ProviderStatus]:
        entry = self._probe_cache.get(name)
        if entry is None:
            return None
        checked_at, status = entry
        if self._clock() - checked_at >= self.probe_ttl:
            return None
        return status

    def _known_unavailable(self, name: str) -> bool:
        cached = self._cached_status(name)
        return cached is not None and not cached.is_available

    def _record(self, status: ProviderStatus) -> None:
        previous = self.get_status(status.provider)
        self._probe_cache[status.provider] = (self._clock(), status)
        self._history[status.provider].appendleft(status)

        if previous is None:
            logger.debug(
                f"Provider {status.provider} status: "
                f"{'available' if status.is_available else 'unavailable'}"
            )
        elif previous.is_available and not status.is_available:
            logger.warning(
                f"Provider {status.provider} became unavailable: "
                f"{status.error_message}"
            )
        elif not previous.is_available and status.is_available:
            logger.info(f"Provider {status.provider} recovered")
