"""Utility modules for seqchat."""

from seqchat.utils.env_substitution import substitute_env_variables
from seqchat.utils.retry import RetryConfig, calculate_delay

__all__ = [
    "RetryConfig",
    "calculate_delay",
    "substitute_env_variables",
]
