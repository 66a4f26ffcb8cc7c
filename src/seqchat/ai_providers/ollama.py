"""Ollama provider adapter: local model fallback over the Ollama HTTP API."""

from typing import Any, Dict, List, Optional, Tuple

import httpx

from seqchat.execution.error_classifier import ContentValidationError
from seqchat.utils.logger import get_logger

from .base import BaseProvider, ProviderMessage, ProviderResponse

logger = get_logger(__name__)

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"


class OllamaProvider(BaseProvider):
    """Local Ollama server; needs no credential, only a reachable base URL."""

    name = "ollama"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return (self.config.get("base_url") or DEFAULT_OLLAMA_BASE_URL).rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.config.get("enabled", True)) and bool(self.base_url)

    async def initialize(self) -> None:
        headers = {}
        if self.config.get("api_key"):
            headers["Authorization"] = f"Bearer {self.config['api_key']}"
        # The dispatcher enforces the per-request deadline
        self.client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=None
        )
        logger.info(
            f"Initialized Ollama provider at {self.base_url} with model: {self.model_id}"
        )

    async def chat_completion(self, messages: List[ProviderMessage]) -> ProviderResponse:
        if not self.client:
            raise RuntimeError("Provider not initialized")

        payload = {
            "model": self.model_id,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": False,
            "options": {"temperature": float(self.config.get("temperature", 0.7))},
        }
        response = await self.client.post("/api/chat", json=payload)
        response.raise_for_status()

        data = response.json()
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or "content" not in message:
            raise ContentValidationError("Ollama response has no message content")

        return ProviderResponse(
            content=message["content"],
            model=data.get("model", self.model_id),
            stop_reason=self._convert_finish_reason_to_stop_reason(
                data.get("done_reason")
            ),
            usage={
                "prompt_tokens": data.get("prompt_eval_count", 0),
                "completion_tokens": data.get("eval_count", 0),
                "total_tokens": data.get("prompt_eval_count", 0)
                + data.get("eval_count", 0),
            },
        )

    def _probe_request(self) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        return f"{self.base_url}/api/tags", {}, {}

    async def shutdown(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        self.client = None
        await super().shutdown()
        logger.info("Ollama provider shutdown completed")
