"""CLI argument to environment variable mappings."""

from dataclasses import dataclass
from typing import Any, List, Optional

from seqchat.config.settings import KNOWN_PROVIDERS, SENSITIVE_ENV_VAR_NAMES


@dataclass
class ArgMapping:
    """Mapping between CLI argument and environment variable."""

    cli_arg: str  # CLI argument name (e.g., "--ai-provider")
    env_var: str  # Environment variable name (e.g., "AI_PROVIDER")
    arg_type: type = str
    choices: Optional[List[str]] = None
    help_text: str = ""
    short_arg: Optional[str] = None
    default: Any = None

    @property
    def dest(self) -> str:
        """argparse attribute name, e.g. ``ai_provider`` for ``--ai-provider``."""
        return self.cli_arg.lstrip("-").replace("-", "_")


# CLI argument mappings for the 'run' command
RUN_ARG_MAPPINGS: List[ArgMapping] = [
    ArgMapping(
        cli_arg="--ai-provider",
        env_var="AI_PROVIDER",
        choices=list(KNOWN_PROVIDERS),
        help_text="Preferred AI provider (default: first available)",
        short_arg="-p",
    ),
    ArgMapping(
        cli_arg="--temperature",
        env_var="AI_TEMPERATURE",
        arg_type=float,
        help_text="Sampling temperature (0.0-2.0)",
    ),
    ArgMapping(
        cli_arg="--log-level",
        env_var="LOG_LEVEL",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help_text="Logging level",
        default="INFO",
    ),
    ArgMapping(
        cli_arg="--requests-per-minute",
        env_var="REQUESTS_PER_MINUTE",
        arg_type=int,
        help_text="Maximum requests admitted per minute",
    ),
    ArgMapping(
        cli_arg="--concurrent-requests",
        env_var="CONCURRENT_REQUESTS",
        arg_type=int,
        help_text="Maximum requests in flight at once",
    ),
    ArgMapping(
        cli_arg="--max-retries",
        env_var="MAX_RETRIES",
        arg_type=int,
        help_text="Retries after a rate-limit response",
    ),
    ArgMapping(
        cli_arg="--request-timeout",
        env_var="REQUEST_TIMEOUT",
        arg_type=float,
        help_text="Per-request timeout in seconds",
    ),
]

# Sensitive environment variables that should NOT be exposed as CLI arguments
# These must be provided via .env file or environment variables only
SENSITIVE_ENV_VARS: frozenset = SENSITIVE_ENV_VAR_NAMES


def get_arg_mapping_by_env_var(env_var: str) -> Optional[ArgMapping]:
    """Get an ArgMapping by its environment variable name."""
    for mapping in RUN_ARG_MAPPINGS:
        if mapping.env_var == env_var:
            return mapping
    return None


def get_arg_mapping_by_cli_arg(cli_arg: str) -> Optional[ArgMapping]:
    """Get an ArgMapping by its CLI argument name."""
    normalized = cli_arg.lstrip("-").replace("-", "_")
    for mapping in RUN_ARG_MAPPINGS:
        if mapping.dest == normalized:
            return mapping
    return None
