"""Pytest configuration and shared fixtures."""

import inspect
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

# Add src directory to Python path for tests
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from seqchat.ai_providers.base import BaseProvider, ProviderResponse  # noqa: E402
from seqchat.ai_providers.selector import ProviderSelector  # noqa: E402
from seqchat.dispatch.dispatcher import RequestDispatcher  # noqa: E402
from seqchat.dispatch.rate_limiter import RateLimiter  # noqa: E402

PROVIDER_ENV_VARS = [
    "AI_PROVIDER",
    "AI_TEMPERATURE",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "ANTHROPIC_API_KEY",
    "CLAUDE_MODEL",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "OLLAMA_BASE_URL",
    "OLLAMA_MODEL",
    "OLLAMA_API_KEY",
    "OLLAMA_ENABLED",
    "REQUESTS_PER_MINUTE",
    "CONCURRENT_REQUESTS",
    "MAX_RETRIES",
    "REQUEST_TIMEOUT",
    "PROBE_TTL",
    "PROBE_TIMEOUT",
    "PROVIDER_FAILOVER",
]


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Isolate tests from the developer's provider configuration."""
    for key in PROVIDER_ENV_VARS:
        monkeypatch.delenv(key, raising=False)

    test_env = {
        "LOG_LEVEL": "DEBUG",
        "JSON_LOGS": "false",
    }
    for key, value in test_env.items():
        monkeypatch.setenv(key, value)


def echo_reply(messages) -> str:
    return f"echo:{messages[-1].content}"


class StubProvider(BaseProvider):
    """In-memory provider; ``reply`` maps the message list to content or raises."""

    def __init__(
        self,
        name: str = "stub",
        reply: Optional[Callable[[List[Any]], Any]] = None,
        probe_ok: Any = True,
        configured: bool = True,
    ):
        super().__init__(
            {"model_id": f"{name}-model", "api_key": "test-key" if configured else None}
        )
        self.name = name
        self.reply = reply or echo_reply
        self.probe_ok = probe_ok
        self.probe_calls = 0
        self.calls: List[List[Any]] = []
        self.initialize_calls = 0

    async def initialize(self) -> None:
        self.initialize_calls += 1

    async def chat_completion(self, messages) -> ProviderResponse:
        self.calls.append(list(messages))
        content = self.reply(messages)
        if inspect.isawaitable(content):
            content = await content
        return ProviderResponse(content=content, model=self.model_id)

    async def probe(self) -> bool:
        self.probe_calls += 1
        if isinstance(self.probe_ok, BaseException):
            raise self.probe_ok
        return self.probe_ok

    def _probe_request(self):
        return "http://stub.invalid/models", {}, {}


class StatusError(Exception):
    """Mimics an SDK error carrying an HTTP status code."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code


@pytest.fixture
def stub_provider():
    """Factory for StubProvider instances."""
    return StubProvider


@pytest.fixture
def status_error():
    return StatusError


@pytest.fixture
def no_sleep():
    """Recording stand-in for asyncio.sleep."""
    delays: List[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    sleep.delays = delays
    return sleep


@pytest.fixture
def make_dispatcher(no_sleep):
    """Build a dispatcher over the given providers with instant backoff."""

    def _make(*providers, preferred=None, **kwargs):
        selector = ProviderSelector(list(providers), preferred=preferred)
        kwargs.setdefault("sleep", no_sleep)
        kwargs.setdefault("rate_limiter", RateLimiter())
        return RequestDispatcher(selector, **kwargs)

    return _make


@pytest.fixture
def sequence_file(tmp_path):
    """Write a YAML sequence file and return its path."""

    def _write(content: str, name: str = "sequence.yaml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
