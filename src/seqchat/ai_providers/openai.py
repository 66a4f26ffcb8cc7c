"""OpenAI provider adapter."""

import os
from typing import Any, Dict, List, Optional, Tuple

try:
    from openai import AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False

from seqchat.utils.logger import get_logger

from .base import BaseProvider, ProviderMessage, ProviderResponse

logger = get_logger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1"


class OpenAIProvider(BaseProvider):
    """OpenAI provider adapter."""

    name = "openai"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client: Optional[Any] = None

        if not OPENAI_AVAILABLE:
            raise ImportError("openai package not available")

    @property
    def base_url(self) -> str:
        return (self.config.get("base_url") or OPENAI_API_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.config.get("api_key") or os.getenv("OPENAI_API_KEY"))

    async def initialize(self) -> None:
        """Initialize OpenAI connection."""
        api_key = self.config.get("api_key") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key not provided")

        # Retries are owned by the dispatcher
        self.client = AsyncOpenAI(api_key=api_key, base_url=self.base_url, max_retries=0)

        logger.info(f"Initialized OpenAI provider with model: {self.model_id}")

    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        """Generate chat completion using OpenAI."""
        if not self.client:
            raise RuntimeError("Provider not initialized")

        openai_messages = [
            {"role": msg.role, "content": msg.content} for msg in messages
        ]

        response = await self.client.chat.completions.create(
            model=self.model_id,
            messages=openai_messages,
            temperature=float(self.config.get("temperature", 0.7)),
        )

        if not response.choices:
            raise ValueError("OpenAI response contained no choices")

        choice = response.choices[0]
        content = choice.message.content or ""
        finish_reason = getattr(choice, "finish_reason", None)

        return ProviderResponse(
            content=content,
            model=response.model,
            stop_reason=self._convert_finish_reason_to_stop_reason(finish_reason),
            usage=self._extract_usage(response),
        )

    def _probe_request(self) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        api_key = self.config.get("api_key") or os.getenv("OPENAI_API_KEY") or ""
        return (
            f"{self.base_url}/models",
            {"Authorization": f"Bearer {api_key}"},
            {},
        )

    def _extract_usage(self, response) -> Dict[str, Any]:
        """Extract usage statistics from OpenAI response."""
        if hasattr(response, "usage") and response.usage:
            return {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return {}

    async def shutdown(self) -> None:
        """Cleanup OpenAI resources."""
        if self.client is not None:
            await self.client.close()
        self.client = None
        await super().shutdown()
        logger.info("OpenAI provider shutdown completed")
