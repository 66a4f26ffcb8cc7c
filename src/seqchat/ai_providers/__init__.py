"""AI Provider adapters for direct model connections."""

from .base import BaseProvider
from .factory import build_selector, create_provider
from .selector import ProviderSelector, ProviderStatus

__all__ = [
    "create_provider",
    "build_selector",
    "BaseProvider",
    "ProviderSelector",
    "ProviderStatus",
]
