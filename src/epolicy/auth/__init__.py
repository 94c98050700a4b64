from __future__ import annotations

from .azure_cli import AzureCliTokenProvider
from .base import CachedTokenProvider, StaticTokenProvider, TokenProvider

__all__ = [
    "AzureCliTokenProvider",
    "CachedTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
]
