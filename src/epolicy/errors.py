from __future__ import annotations
from typing import Any, Optional

class EpolicyError(Exception):
    """Base error for epolicy."""

class AuthError(EpolicyError):
    pass

class ConfigError(EpolicyError):
    """Required configuration is missing or unreadable."""

class NotFoundError(EpolicyError):
    """A named policy or environment does not exist in the target scope."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} not found: {name}")
        self.kind = kind
        self.name = name

class HttpError(EpolicyError):
    def __init__(self, status_code: int, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.details = details
