from __future__ import annotations

import logging
from typing import Protocol

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import AzureCliCredential

from ..errors import AuthError
from .base import CachedTokenProvider, scopes_for

logger = logging.getLogger(__name__)


class _AccessToken(Protocol):
    token: str
    expires_on: int


class _TokenCredential(Protocol):
    def get_token(self, *scopes: str) -> _AccessToken: ...


class AzureCliTokenProvider(CachedTokenProvider):
    """Bearer tokens for ``resource`` from the signed-in Azure CLI account.

    The token is cached until shortly before it expires so a long polling
    window transparently picks up a fresh one.
    """

    def __init__(
        self,
        resource: str,
        *,
        tenant_id: str | None = None,
        credential: _TokenCredential | None = None,
    ) -> None:
        super().__init__()
        self.resource = resource
        self.tenant_id = tenant_id
        self._credential = credential or AzureCliCredential(tenant_id=tenant_id or "")

    def _acquire(self) -> tuple[str, float | None]:
        try:
            access = self._credential.get_token(*scopes_for(self.resource))
        except ClientAuthenticationError as exc:
            message = f"Azure CLI could not issue a token for {self.resource}: {exc}"
            raise AuthError(message) from exc
        logger.debug("Acquired Azure CLI token for %s", self.resource)
        return access.token, float(access.expires_on)


__all__ = ["AzureCliTokenProvider"]
