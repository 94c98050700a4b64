from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from importlib import import_module
from typing import Any, Protocol, cast

from ..errors import AuthError
from .base import CachedTokenProvider, scopes_for

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"


class _ConfidentialClient(Protocol):
    def acquire_token_for_client(self, *, scopes: Iterable[str]) -> dict[str, Any]: ...


class _PublicClient(Protocol):
    def get_accounts(self) -> list[dict[str, Any]]: ...

    def acquire_token_silent(
        self, scopes: Iterable[str], *, account: dict[str, Any]
    ) -> dict[str, Any] | None: ...

    def initiate_device_flow(self, scopes: Iterable[str]) -> dict[str, Any]: ...

    def acquire_token_by_device_flow(self, flow: dict[str, Any]) -> dict[str, Any]: ...


class _MsalModule(Protocol):
    def ConfidentialClientApplication(  # noqa: N802
        self, *, client_id: str, client_credential: str, authority: str
    ) -> _ConfidentialClient: ...

    def PublicClientApplication(  # noqa: N802
        self, client_id: str, authority: str
    ) -> _PublicClient: ...


def _load_msal() -> _MsalModule | None:
    try:
        module = import_module("msal")
    except ImportError:  # pragma: no cover - optional dependency not installed
        return None
    return cast(_MsalModule, module)


msal = _load_msal()


def _describe_failure(result: dict[str, Any] | None) -> str:
    if not result:
        return "no response"
    return str(result.get("error_description") or result.get("error") or result)


class AzureADTokenProvider(CachedTokenProvider):
    """Azure AD tokens through MSAL for one resource audience.

    With a client secret the service principal uses the client credentials
    grant. Without one a cached account is tried silently before falling back
    to the device code flow.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        audience: str,
        client_secret: str | None = None,
        *,
        authority_host: str = DEFAULT_AUTHORITY_HOST,
    ) -> None:
        if msal is None:
            raise AuthError(
                "msal is not installed. Install pp-epolicy[auth] to enable Azure AD auth."
            )
        super().__init__()
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes_for(audience)
        self.authority = f"{authority_host.rstrip('/')}/{tenant_id}"
        self._app: _ConfidentialClient | _PublicClient | None = None

    def _acquire(self) -> tuple[str, float | None]:
        if self.client_secret:
            result: dict[str, Any] | None = self._confidential_app().acquire_token_for_client(
                scopes=self.scopes
            )
        else:
            result = self._acquire_user_token(self._public_app())
        if not result or "access_token" not in result:
            raise AuthError(
                f"Failed to acquire token for {self.scopes[0]}: {_describe_failure(result)}"
            )
        expires_in = result.get("expires_in")
        expires_at = time.time() + float(expires_in) if expires_in else None
        return str(result["access_token"]), expires_at

    def _confidential_app(self) -> _ConfidentialClient:
        if self._app is None:
            self._app = cast(_MsalModule, msal).ConfidentialClientApplication(
                client_id=self.client_id,
                client_credential=cast(str, self.client_secret),
                authority=self.authority,
            )
        return cast(_ConfidentialClient, self._app)

    def _public_app(self) -> _PublicClient:
        if self._app is None:
            self._app = cast(_MsalModule, msal).PublicClientApplication(
                self.client_id, authority=self.authority
            )
        return cast(_PublicClient, self._app)

    def _acquire_user_token(self, app: _PublicClient) -> dict[str, Any] | None:
        accounts = app.get_accounts()
        if accounts:
            silent_result = app.acquire_token_silent(self.scopes, account=accounts[0])
            if silent_result and "access_token" in silent_result:
                logger.debug("Acquired token silently via cached account")
                return silent_result

        logger.info("Falling back to device code flow for %s", self.scopes[0])
        flow = app.initiate_device_flow(scopes=self.scopes)
        if "user_code" not in flow:
            raise AuthError(f"Failed to start device flow: {_describe_failure(flow)}")
        print(flow["message"])  # pragma: no cover
        return app.acquire_token_by_device_flow(flow)


__all__ = ["AzureADTokenProvider", "scopes_for"]
