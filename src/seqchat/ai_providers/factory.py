"""Provider factory and wiring of selector/dispatcher from settings."""

from typing import Any, Dict, List, Optional

from seqchat.config.settings import PROVIDER_CREDENTIAL_FIELDS
from seqchat.utils.logger import get_logger
from seqchat.utils.retry import RetryConfig

from .base import BaseProvider
from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .selector import ProviderSelector

logger = get_logger(__name__)

# Fallback order when no provider is explicitly preferred
PROVIDER_PRIORITY = ["openai", "claude", "gemini", "ollama"]

# Default model mappings for each provider
DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "claude": "claude-3-5-sonnet-latest",
    "gemini": "gemini-2.0-flash",
    "ollama": "llama2",
}

PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
    "gemini": GeminiProvider,
    "ollama": OllamaProvider,
}


def get_default_model(provider: str) -> str:
    """Get the default model for a given AI provider.

    Args:
        provider: AI provider name (e.g., "openai", "claude", "ollama")

    Returns:
        Default model name for the provider
    """
    return DEFAULT_MODELS.get(normalize_provider_name(provider), "gpt-4o")


def normalize_provider_name(name: str) -> str:
    name = (name or "").strip().lower()
    return "claude" if name == "anthropic" else name


def create_provider(provider_name: str, config: Dict[str, Any]) -> BaseProvider:
    """Create provider instance based on provider name and config."""
    name = normalize_provider_name(provider_name)
    try:
        provider_class = PROVIDER_CLASSES[name]
    except KeyError:
        raise ValueError(
            f"Unknown provider '{provider_name}'. "
            f"Supported: {', '.join(PROVIDER_PRIORITY)}"
        ) from None
    return provider_class(config)


def get_provider_config(settings, provider_name: str) -> Dict[str, Any]:
    """Build one provider's config dict from settings."""
    name = normalize_provider_name(provider_name)
    if name not in PROVIDER_CREDENTIAL_FIELDS:
        raise ValueError(f"Unknown provider '{provider_name}'")

    config: Dict[str, Any] = {
        "api_key": getattr(settings, PROVIDER_CREDENTIAL_FIELDS[name]),
        "temperature": settings.get_ai_temperature(),
        "probe_timeout": settings.probe_timeout,
    }

    if name == "openai":
        config["model_id"] = settings.openai_model or get_default_model(name)
        config["base_url"] = settings.openai_base_url
    elif name == "claude":
        config["model_id"] = settings.claude_model or get_default_model(name)
    elif name == "gemini":
        config["model_id"] = settings.gemini_model or get_default_model(name)
    else:
        config["model_id"] = settings.ollama_model or get_default_model(name)
        config["base_url"] = settings.ollama_base_url
        config["enabled"] = settings.ollama_enabled

    return config


def build_providers(settings) -> List[BaseProvider]:
    """Instantiate every provider whose SDK is importable, in priority order."""
    providers = []
    for name in PROVIDER_PRIORITY:
        try:
            providers.append(create_provider(name, get_provider_config(settings, name)))
        except ImportError as e:
            logger.warning(f"Skipping provider {name}: {e}")
    return providers


def build_selector(settings, providers: Optional[List[BaseProvider]] = None) -> ProviderSelector:
    """Build a ProviderSelector honoring AI_PROVIDER as the preferred provider."""
    if providers is None:
        providers = build_providers(settings)

    preferred = normalize_provider_name(settings.ai_provider) or None
    if preferred and preferred not in {p.name for p in providers}:
        logger.warning(
            f"Preferred provider {preferred} is not installed; using priority order"
        )
        preferred = None

    logger.info(
        f"Provider selector: preferred={preferred or 'auto'}, "
        f"order={[p.name for p in providers]}"
    )
    return ProviderSelector(
        providers, preferred=preferred, probe_ttl=settings.probe_ttl
    )


def build_dispatcher(settings, selector: Optional[ProviderSelector] = None, rate_limiter=None):
    """Build a RequestDispatcher wired to ``selector`` and settings limits."""
    # Deferred: the dispatch package imports this one
    from seqchat.dispatch import RateLimiter, RequestDispatcher

    if selector is None:
        selector = build_selector(settings)
    if rate_limiter is None:
        rate_limiter = RateLimiter(
            requests_per_minute=settings.requests_per_minute,
            concurrency_limit=settings.concurrent_requests,
        )

    return RequestDispatcher(
        selector,
        rate_limiter=rate_limiter,
        retry_config=RetryConfig(max_retries=settings.max_retries),
        request_timeout=settings.request_timeout,
        failover=settings.provider_failover,
    )
