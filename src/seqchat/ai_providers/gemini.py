"""Gemini provider adapter using the google.genai unified SDK."""

import os
from typing import Any, Dict, List, Optional, Tuple

try:
    from google import genai

    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False
    genai = None  # type: ignore[assignment]

from seqchat.execution.error_classifier import ContentValidationError
from seqchat.utils.logger import get_logger

from .base import BaseProvider, ProviderMessage, ProviderResponse

logger = get_logger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(BaseProvider):
    """Gemini provider adapter."""

    name = "gemini"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client: Optional[Any] = None

        if not GEMINI_AVAILABLE:
            raise ImportError("google-genai package not available")

    def _api_key(self) -> Optional[str]:
        return self.config.get("api_key") or os.getenv("GEMINI_API_KEY")

    def is_configured(self) -> bool:
        return bool(self._api_key())

    async def initialize(self) -> None:
        """Initialize Gemini connection."""
        api_key = self._api_key()
        if not api_key:
            raise ValueError("Gemini API key not provided")

        self.client = genai.Client(api_key=api_key)

        logger.info(f"Initialized Gemini provider with model: {self.model_id}")

    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        """Generate chat completion using Gemini."""
        if not self.client:
            raise RuntimeError("Provider not initialized")

        system_message, chat_messages = self.split_system_message(messages)

        config_dict: Dict[str, Any] = {
            "temperature": float(self.config.get("temperature", 0.7)),
        }
        if system_message:
            config_dict["system_instruction"] = system_message

        response = await self.client.aio.models.generate_content(
            model=self.model_id,
            contents=self._build_gemini_contents(chat_messages),
            config=config_dict,
        )

        if not getattr(response, "candidates", None):
            raise ContentValidationError("Gemini returned no candidates")

        candidate = response.candidates[0]
        parts = getattr(getattr(candidate, "content", None), "parts", None) or []
        content = "".join(part.text for part in parts if getattr(part, "text", None))

        return ProviderResponse(
            content=content,
            model=self.model_id,
            stop_reason=self._convert_finish_reason_to_stop_reason(
                self._finish_reason_name(candidate)
            ),
            usage=self._extract_usage(response),
        )

    def _build_gemini_contents(
        self, messages: List[ProviderMessage]
    ) -> List[Dict[str, Any]]:
        """Convert ProviderMessage list to Gemini content format."""
        return [
            {
                # Gemini calls the assistant role "model"
                "role": "model" if msg.role == "assistant" else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in messages
        ]

    @staticmethod
    def _finish_reason_name(candidate: Any) -> Optional[str]:
        finish_reason = getattr(candidate, "finish_reason", None)
        if finish_reason is None:
            return None
        name = getattr(finish_reason, "name", None) or str(finish_reason)
        return "max_tokens" if "MAX_TOKENS" in name.upper() else name

    def _probe_request(self) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return (
            f"{GEMINI_API_URL}/models",
            {},
            {"key": self._api_key() or "", "pageSize": "1"},
        )

    def _extract_usage(self, response: Any) -> Dict[str, Any]:
        usage = getattr(response, "usage_metadata", None)
        if not usage:
            return {}
        return {
            "prompt_tokens": getattr(usage, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(usage, "candidates_token_count", 0) or 0,
            "total_tokens": getattr(usage, "total_token_count", 0) or 0,
        }

    async def shutdown(self) -> None:
        if self.client is not None:
            aio = getattr(self.client, "aio", None)
            if aio is not None and hasattr(aio, "aclose"):
                await aio.aclose()
        self.client = None
        await super().shutdown()
        logger.info("Gemini provider shutdown completed")
