"""Anthropic Claude provider adapter."""

import os
from typing import Any, Dict, List, Optional, Tuple

try:
    from anthropic import AsyncAnthropic

    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False

from seqchat.utils.logger import get_logger

from .base import BaseProvider, ProviderMessage, ProviderResponse

logger = get_logger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class ClaudeProvider(BaseProvider):
    """Anthropic Claude provider adapter."""

    name = "claude"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client: Optional[Any] = None

        if not ANTHROPIC_AVAILABLE:
            raise ImportError("anthropic package not available")

    def _api_key(self) -> Optional[str]:
        return self.config.get("api_key") or os.getenv("ANTHROPIC_API_KEY")

    def is_configured(self) -> bool:
        return bool(self._api_key())

    async def initialize(self) -> None:
        """Initialize Anthropic connection."""
        api_key = self._api_key()
        if not api_key:
            raise ValueError("Anthropic API key not provided")

        self.client = AsyncAnthropic(api_key=api_key, max_retries=0)

        logger.info(f"Initialized Claude provider with model: {self.model_id}")

    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        """Generate chat completion using Claude."""
        if not self.client:
            raise RuntimeError("Provider not initialized")

        # Claude expects the system message separately
        system_message, chat_messages = self.split_system_message(messages)

        request_params: Dict[str, Any] = {
            "model": self.model_id,
            "messages": [
                {"role": msg.role, "content": msg.content} for msg in chat_messages
            ],
            "max_tokens": int(self.config.get("max_tokens", DEFAULT_MAX_TOKENS)),
            "temperature": float(self.config.get("temperature", 0.7)),
        }
        if system_message:
            request_params["system"] = system_message

        response = await self.client.messages.create(**request_params)

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        return ProviderResponse(
            content=content,
            model=response.model,
            stop_reason=self._convert_finish_reason_to_stop_reason(
                response.stop_reason
            ),
            usage=self._extract_usage(response),
        )

    def _probe_request(self) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return (
            f"{ANTHROPIC_API_URL}/models",
            {
                "x-api-key": self._api_key() or "",
                "anthropic-version": ANTHROPIC_VERSION,
            },
            {},
        )

    def _extract_usage(self, response) -> Dict[str, Any]:
        """Extract usage statistics from Claude response."""
        if hasattr(response, "usage") and response.usage:
            return {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens
                + response.usage.output_tokens,
            }
        return {}

    async def shutdown(self) -> None:
        """Cleanup Anthropic resources."""
        if self.client is not None:
            await self.client.close()
        self.client = None
        await super().shutdown()
        logger.info("Claude provider shutdown completed")
