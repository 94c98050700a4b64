from __future__ import annotations

import time
from abc import ABC, abstractmethod

from ..errors import AuthError

# Cached tokens are renewed this many seconds before they expire.
EXPIRY_MARGIN_S = 300.0


def scopes_for(audience: str) -> list[str]:
    """Return the ``.default`` scope for a resource audience."""

    return [f"{audience.rstrip('/')}/.default"]


class TokenProvider(ABC):
    """Source of bearer tokens for a single audience.

    Providers are callable so they can be handed to :class:`~epolicy.http_client.HttpClient`
    as its ``token_getter``.
    """

    @abstractmethod
    def get_token(self) -> str:
        """Return an access token string for Authorization: Bearer."""

    def refresh(self) -> None:
        """Drop any cached token so the next :meth:`get_token` fetches a new one."""

    def __call__(self) -> str:
        return self.get_token()


class StaticTokenProvider(TokenProvider):
    def __init__(self, token: str) -> None:
        if not token or not token.strip():
            raise AuthError("Access token override is empty")
        self._token = token.strip()

    def get_token(self) -> str:
        return self._token


class CachedTokenProvider(TokenProvider):
    """Reuse an acquired token until ``EXPIRY_MARGIN_S`` before it expires.

    Tokens without a known expiry are kept until :meth:`refresh`.
    """

    def __init__(self) -> None:
        self._token: str | None = None
        self._expires_at: float | None = None

    @abstractmethod
    def _acquire(self) -> tuple[str, float | None]:
        """Fetch a new token and its expiry as an epoch timestamp."""

    def refresh(self) -> None:
        self._token = None
        self._expires_at = None

    def get_token(self) -> str:
        if self._token and (
            self._expires_at is None or time.time() < self._expires_at - EXPIRY_MARGIN_S
        ):
            return self._token
        self._token, self._expires_at = self._acquire()
        return self._token


__all__ = [
    "CachedTokenProvider",
    "EXPIRY_MARGIN_S",
    "StaticTokenProvider",
    "TokenProvider",
    "scopes_for",
]
