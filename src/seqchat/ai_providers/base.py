"""Base provider interface: the send(history) -> assistant turn contract."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx

from seqchat.execution.error_classifier import ContentValidationError
from seqchat.execution.history import ConversationHistory, ConversationTurn, Role
from seqchat.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0


class StopReason(Enum):
    """Normalized stop reasons across providers."""

    end_of_turn = "end_of_turn"
    out_of_tokens = "out_of_tokens"


@dataclass
class ProviderMessage:
    """Message format for provider interactions."""

    content: str
    role: str = "user"


@dataclass
class ProviderResponse:
    """Response format from providers."""

    content: str
    model: str
    stop_reason: Optional[StopReason] = None
    usage: Optional[Dict[str, Any]] = None


class BaseProvider(ABC):
    """Abstract base class for language-model providers.

    Subclasses implement ``initialize``, ``chat_completion`` and
    ``_probe_request``; the dispatcher only ever calls ``send``.
    """

    name: str = "base"

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.model_id = config.get("model_id", "default")
        self.probe_timeout = float(config.get("probe_timeout", DEFAULT_PROBE_TIMEOUT))
        self.initialized = False
        self._init_lock = asyncio.Lock()

    def is_configured(self) -> bool:
        """Whether the credentials this provider needs are present."""
        return bool(self.config.get("api_key"))

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the provider connection."""
        pass

    @abstractmethod
    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        """Generate a chat completion for ``messages``."""
        pass

    async def shutdown(self) -> None:
        """Cleanup provider resources."""
        self.initialized = False

    @abstractmethod
    def _probe_request(self) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        """Return (url, headers, params) of a cheap read-only endpoint."""
        pass

    async def ensure_initialized(self) -> None:
        if self.initialized:
            return
        # Concurrent first sends share one initialize()
        async with self._init_lock:
            if not self.initialized:
                await self.initialize()
                self.initialized = True

    async def probe(self) -> bool:
        """Side-effect-free connectivity check against the provider.

        Raises httpx errors on transport failure; callers record them.
        """
        url, headers, params = self._probe_request()
        async with httpx.AsyncClient(timeout=self.probe_timeout) as client:
            response = await client.get(url, headers=headers, params=params)
        if response.status_code != 200:
            logger.debug(f"{self.name} probe returned HTTP {response.status_code}")
        return response.status_code == 200

    async def send(self, history: ConversationHistory) -> ConversationTurn:
        """Send the whole conversation and return the assistant's turn."""
        await self.ensure_initialized()
        messages = self.history_to_messages(history)
        if not messages:
            raise ContentValidationError("Cannot send an empty conversation")

        response = await self.chat_completion(messages)

        if response is None or not isinstance(getattr(response, "content", None), str):
            raise ContentValidationError(f"Malformed response from {self.name}")
        if not response.content.strip():
            raise ContentValidationError(f"Empty response from {self.name}")

        if response.stop_reason is StopReason.out_of_tokens:
            logger.warning(f"{self.name} response was truncated due to max tokens")

        return ConversationTurn(Role.ASSISTANT, response.content)

    @staticmethod
    def history_to_messages(history: ConversationHistory) -> List[ProviderMessage]:
        return [ProviderMessage(content=t.content, role=t.role.value) for t in history]

    @staticmethod
    def split_system_message(
        messages: List[ProviderMessage],
    ) -> Tuple[Optional[str], List[ProviderMessage]]:
        """Separate a leading system message for APIs that take it apart."""
        if messages and messages[0].role == Role.SYSTEM.value:
            return messages[0].content, messages[1:]
        return None, list(messages)

    def _convert_finish_reason_to_stop_reason(self, finish_reason: Any) -> StopReason:
        """
        Convert provider-specific finish reasons to standard stop reasons.
        """
        if finish_reason is None:
            return StopReason.end_of_turn

        reason_str = str(finish_reason).lower()
        if reason_str in ["length", "max_tokens", "token_limit", "out_of_tokens"]:
            return StopReason.out_of_tokens
        return StopReason.end_of_turn

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model_id={self.model_id!r})"
