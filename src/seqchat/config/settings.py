"""Configuration management for seqchat."""

import logging
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Use standard logging for settings module to avoid circular imports
# This logger will be reconfigured by setup_logging() in CLI commands
logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = ("openai", "claude", "gemini", "ollama")

# Provider -> settings field holding its credential
PROVIDER_CREDENTIAL_FIELDS = {
    "openai": "openai_api_key",
    "claude": "anthropic_api_key",
    "gemini": "gemini_api_key",
    "ollama": "ollama_api_key",
}

_SENSITIVE_FIELD_NAMES: frozenset = frozenset(PROVIDER_CREDENTIAL_FIELDS.values())

# Used by CLI arg_mapping to keep credentials off the command line
SENSITIVE_ENV_VAR_NAMES: frozenset = frozenset(
    {name.upper() for name in _SENSITIVE_FIELD_NAMES}
)


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Replace a credential by its length; None when unset."""
    return f"<{len(str(value))} chars>" if value else None


class CoreSettings(BaseSettings):
    """Settings for providers, dispatch limits and logging."""

    model_config = SettingsConfigDict(extra="ignore")

    # Sensitive fields that should be masked in logs/tracebacks
    _SENSITIVE_FIELDS: frozenset = _SENSITIVE_FIELD_NAMES

    def __repr__(self) -> str:
        """Return a representation with sensitive fields masked."""
        field_strs = []
        for field_name in type(self).model_fields:
            value = getattr(self, field_name, None)
            if field_name in self._SENSITIVE_FIELDS:
                masked = mask_secret(value) or "None"
                field_strs.append(f"{field_name}={masked!r}")
            else:
                field_strs.append(f"{field_name}={value!r}")
        return f"{self.__class__.__name__}({', '.join(field_strs)})"

    def __str__(self) -> str:
        return self.__repr__()

    # Preferred provider; empty means "first available in priority order"
    ai_provider: str = Field(default="", validation_alias="AI_PROVIDER")
    ai_temperature: str = Field(default="0.7", validation_alias="AI_TEMPERATURE")

    # OpenAI
    openai_api_key: Optional[str] = Field(None, validation_alias="OPENAI_API_KEY")
    openai_model: str = Field("gpt-4o", validation_alias="OPENAI_MODEL")
    openai_base_url: str = Field(
        "https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL"
    )

    # Anthropic
    anthropic_api_key: Optional[str] = Field(None, validation_alias="ANTHROPIC_API_KEY")
    claude_model: str = Field("claude-3-5-sonnet-latest", validation_alias="CLAUDE_MODEL")

    # Gemini
    gemini_api_key: Optional[str] = Field(None, validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field("gemini-2.0-flash", validation_alias="GEMINI_MODEL")

    # Ollama (local fallback)
    ollama_base_url: str = Field(
        default="http://localhost:11434", validation_alias="OLLAMA_BASE_URL"
    )
    ollama_model: str = Field("llama2", validation_alias="OLLAMA_MODEL")
    ollama_api_key: Optional[str] = Field(None, validation_alias="OLLAMA_API_KEY")
    ollama_enabled: bool = Field(True, validation_alias="OLLAMA_ENABLED")

    # Dispatch limits
    requests_per_minute: int = Field(
        60,
        validation_alias="REQUESTS_PER_MINUTE",
        ge=1,
        description="Maximum admitted requests in any 60 second window",
    )
    concurrent_requests: int = Field(
        5,
        validation_alias="CONCURRENT_REQUESTS",
        ge=1,
        description="Maximum provider calls in flight at once",
    )
    max_retries: int = Field(
        3,
        validation_alias="MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries after a rate-limit response (0-10)",
    )
    request_timeout: float = Field(
        30.0,
        validation_alias="REQUEST_TIMEOUT",
        gt=0,
        description="Per-request deadline in seconds",
    )
    probe_ttl: float = Field(
        60.0,
        validation_alias="PROBE_TTL",
        ge=0,
        description="Seconds a provider availability probe stays valid",
    )
    probe_timeout: float = Field(5.0, validation_alias="PROBE_TIMEOUT", gt=0)
    provider_failover: bool = Field(False, validation_alias="PROVIDER_FAILOVER")

    # Logging configuration
    log_level: str = Field(
        "INFO",
        validation_alias="LOG_LEVEL",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(False, validation_alias="JSON_LOGS")

    @field_validator(
        "json_logs",
        "provider_failover",
        mode="before",
    )
    @classmethod
    def parse_bool_from_env(cls, v: Any) -> bool:
        """Handle empty strings and various boolean representations from env vars."""
        if v is None or v == "":
            return False
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower().strip() in ("true", "1", "yes")
        return bool(v)

    @field_validator("ollama_enabled", mode="before")
    @classmethod
    def parse_ollama_enabled(cls, v: Any) -> bool:
        """Same as parse_bool_from_env, but unset means enabled."""
        if v is None or v == "":
            return True
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower().strip() in ("true", "1", "yes")
        return bool(v)

    @field_validator("ai_provider", mode="before")
    @classmethod
    def validate_ai_provider(cls, value: Any) -> str:
        """Normalize the preferred provider; unknown names fall back to auto."""
        if value is None:
            return ""
        normalized = str(value).strip().lower()
        if normalized == "anthropic":
            normalized = "claude"
        if normalized and normalized not in KNOWN_PROVIDERS:
            logger.warning(
                f"Invalid AI_PROVIDER '{value}'. Falling back to automatic "
                f"selection. Allowed values: {', '.join(KNOWN_PROVIDERS)}."
            )
            return ""
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def get_ai_temperature(self) -> float:
        """Get AI temperature as float with safe conversion and validation."""
        try:
            temp = float(self.ai_temperature)
            # Clamp temperature to valid range [0.0, 2.0]
            return max(0.0, min(2.0, temp))
        except (ValueError, TypeError) as e:
            logger.warning(
                f"Invalid AI_TEMPERATURE '{self.ai_temperature}': {e}. Using default 0.7"
            )
            return 0.7

    def masked_dict(self) -> dict:
        """Field values with credentials replaced by their length."""
        result = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name, None)
            if field_name in self._SENSITIVE_FIELDS:
                value = mask_secret(value)
            result[field_name] = value
        return result


Settings = CoreSettings


def load_settings() -> Settings:
    """Load settings from environment variables."""
    return CoreSettings()


def settings_env_vars() -> Dict[str, str]:
    """Map each CoreSettings field to the environment variable it reads."""
    return {
        name: field.validation_alias
        for name, field in CoreSettings.model_fields.items()
    }


def credential_env_var(provider: str) -> str:
    """Environment variable holding ``provider``'s credential."""
    return settings_env_vars()[PROVIDER_CREDENTIAL_FIELDS[provider]]
