"""Client for the network injection enterprise policy admin endpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from ..config import DEFAULT_ADMIN_BASE
from ..errors import HttpError
from ..http_client import HttpClient
from ..models.admin import (
    AsyncOperationStatus,
    EnvironmentListPage,
    EnvironmentSummary,
    ErrorEnvelope,
)
from ..models.linkage import (
    BodyVariant,
    EndpointShape,
    LinkAction,
    LinkOperationAttempt,
    OpaqueBody,
    PolicyLinkage,
    PolicyResource,
    ResponseBody,
    StructuredError,
)

logger = logging.getLogger(__name__)

SUPPORTED_API_VERSIONS: tuple[str, ...] = ("2019-10-01", "2023-06-01")
ENVIRONMENT_API_VERSION = "2023-06-01"
ERROR_SNIPPET_LENGTH = 160
CORRELATION_HEADERS = (
    "x-ms-correlation-request-id",
    "x-ms-request-id",
    "x-ms-correlation-id",
    "request-id",
)

_ACTION_ENDPOINTS = {
    LinkAction.LINK: EndpointShape.LINK,
    LinkAction.UNLINK: EndpointShape.UNLINK,
}


def build_body(
    variant: BodyVariant, policy: PolicyResource | None
) -> tuple[BodyVariant, dict[str, Any]]:
    """Return the variant actually sent and its payload.

    Variants whose value is unavailable degrade to the raw system id, and to an
    empty body when no identifier is known at all.
    """

    if policy is None or variant is BodyVariant.EMPTY:
        return BodyVariant.EMPTY, {}
    guid_or_raw = policy.system_guid or policy.system_id
    if variant is BodyVariant.GUID and guid_or_raw:
        return variant, {"SystemId": guid_or_raw}
    if variant is BodyVariant.SYSTEM_PATH and policy.system_id:
        return variant, {"SystemId": policy.system_id}
    if variant is BodyVariant.ARM_ID and policy.arm_id:
        return variant, {"SystemId": policy.arm_id}
    if variant is BodyVariant.LOWER_CASE_KEY and guid_or_raw:
        return variant, {"systemId": guid_or_raw}
    return BodyVariant.EMPTY, {}


def parse_response_body(resp: httpx.Response) -> ResponseBody | None:
    """Resolve a response body into a structured error or an opaque snippet."""

    text = resp.text
    if not text:
        return None
    try:
        payload = resp.json()
    except ValueError:
        return OpaqueBody(text[:ERROR_SNIPPET_LENGTH])
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        try:
            envelope = ErrorEnvelope.model_validate(payload)
        except ValidationError:
            return OpaqueBody(text[:ERROR_SNIPPET_LENGTH])
        return StructuredError(envelope.error.code, envelope.error.message)
    return OpaqueBody(text[:ERROR_SNIPPET_LENGTH])


def correlation_id(resp: httpx.Response) -> str | None:
    for header in CORRELATION_HEADERS:
        value = resp.headers.get(header)
        if value:
            return value
    return None


class NetworkInjectionClient:
    """HTTP client for linking network injection policies to environments.

    Link/unlink calls never raise: every response, including transport
    failures, is classified into a :class:`LinkOperationAttempt`. Read-only
    environment queries raise :class:`HttpError` like the other clients.
    """

    def __init__(
        self,
        token_getter: Callable[[], str],
        base_url: str = DEFAULT_ADMIN_BASE,
        environment_api_version: str = ENVIRONMENT_API_VERSION,
    ) -> None:
        self.http = HttpClient(
            base_url, token_getter=token_getter, max_retries=0, raise_for_status=False
        )
        self.reads = HttpClient(base_url, token_getter=token_getter)
        # No retries on status polls; the poller's timeout bounds them.
        self.status_reads = HttpClient(base_url, token_getter=token_getter, max_retries=0)
        self.environment_api_version = environment_api_version

    def close(self) -> None:
        """Close the underlying HTTP transports."""

        self.http.close()
        self.reads.close()
        self.status_reads.close()

    @staticmethod
    def _parse_response_dict(resp: httpx.Response) -> dict[str, Any]:
        if not resp.text:
            return {}
        try:
            payload = resp.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    # Link / unlink -----------------------------------------------------------------

    def invoke(
        self,
        action: LinkAction,
        environment_id: str,
        api_version: str,
        body_variant: BodyVariant,
        policy: PolicyResource | None,
    ) -> LinkOperationAttempt:
        """POST the link/unlink action with one body variant."""

        variant, body = build_body(body_variant, policy)
        path = f"environments/{environment_id}/enterprisePolicies/NetworkInjection/{action.value}"
        return self._send(
            "POST",
            path,
            action=action,
            endpoint=_ACTION_ENDPOINTS[action],
            api_version=api_version,
            body_variant=variant,
            body=body,
        )

    def invoke_alternate(
        self,
        shape: EndpointShape,
        environment_id: str,
        api_version: str,
        policy: PolicyResource | None,
        body_variant: BodyVariant = BodyVariant.GUID,
    ) -> LinkOperationAttempt:
        """Unlink through one of the alternate endpoint shapes."""

        if shape is EndpointShape.REMOVE_NETWORK_INJECTION:
            variant, body = build_body(body_variant, policy)
            path = (
                f"environments/{environment_id}/enterprisePolicies/NetworkInjection/"
                "removeNetworkInjection"
            )
            return self._send(
                "POST",
                path,
                action=LinkAction.UNLINK,
                endpoint=shape,
                api_version=api_version,
                body_variant=variant,
                body=body,
            )
        if shape is EndpointShape.UNLINK_ENTERPRISE_POLICY:
            value = (policy.system_guid or policy.system_id) if policy else None
            variant = BodyVariant.GUID if value else BodyVariant.EMPTY
            return self._send(
                "POST",
                f"environments/{environment_id}/unlinkEnterprisePolicy",
                action=LinkAction.UNLINK,
                endpoint=shape,
                api_version=api_version,
                body_variant=variant,
                body={"enterprisePolicySystemId": value} if value else {},
            )
        if shape is EndpointShape.DELETE_NETWORK_INJECTION:
            return self._send(
                "DELETE",
                f"environments/{environment_id}/enterprisePolicies/NetworkInjection",
                action=LinkAction.UNLINK,
                endpoint=shape,
                api_version=api_version,
                body_variant=BodyVariant.EMPTY,
                body=None,
            )
        raise ValueError(f"{shape.value} is not an alternate unlink endpoint")

    def _send(
        self,
        method: str,
        path: str,
        *,
        action: LinkAction,
        endpoint: EndpointShape,
        api_version: str,
        body_variant: BodyVariant,
        body: dict[str, Any] | None,
    ) -> LinkOperationAttempt:
        base = {
            "action": action,
            "api_version": api_version,
            "body_variant": body_variant,
            "endpoint": endpoint,
        }
        logger.debug("%s %s api-version=%s body=%s", method, path, api_version, body)
        try:
            resp = self.http.request(
                method,
                path,
                params={"api-version": api_version},
                json=body,
                headers={"Content-Type": "application/json"} if body is not None else None,
            )
        except HttpError as exc:
            return LinkOperationAttempt(http_status=exc.status_code, error_message=str(exc), **base)
        except httpx.HTTPError as exc:
            return LinkOperationAttempt(http_status=0, error_message=str(exc), **base)
        return self._classify(resp, **base)

    @staticmethod
    def _classify(resp: httpx.Response, **base: Any) -> LinkOperationAttempt:
        status = resp.status_code
        parsed = parse_response_body(resp)
        error_code: str | None = None
        error_message: str | None = None
        if isinstance(parsed, StructuredError):
            error_code = parsed.code
            error_message = parsed.message
            if error_code is None and error_message is None:
                error_message = "Empty error envelope"
        elif status >= 300:
            error_message = parsed.text if isinstance(parsed, OpaqueBody) else resp.reason_phrase
        operation_location = resp.headers.get("operation-location") if status == 202 else None
        return LinkOperationAttempt(
            http_status=status,
            operation_location=operation_location or None,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id(resp),
            **base,
        )

    # Environment queries -----------------------------------------------------------

    def list_environments(self) -> list[EnvironmentSummary]:
        """Return every environment visible to the caller, following ``nextLink``."""

        environments: list[EnvironmentSummary] = []
        path: str | None = "environments"
        params: dict[str, Any] | None = {"api-version": self.environment_api_version}
        while path:
            resp = self.reads.get(path, params=params)
            page = EnvironmentListPage.model_validate(self._parse_response_dict(resp))
            environments.extend(page.value)
            path = page.next_link
            params = None
        return environments

    def get_environment(self, environment_id: str) -> EnvironmentSummary:
        resp = self.reads.get(
            f"environments/{environment_id}",
            params={"api-version": self.environment_api_version},
        )
        return EnvironmentSummary.model_validate(self._parse_response_dict(resp))

    def get_linkage(self, environment_id: str) -> PolicyLinkage:
        """Read the policies currently linked to ``environment_id``."""

        environment = self.get_environment(environment_id)
        return PolicyLinkage(environment_id, tuple(environment.linked_policy_ids()))

    def get_operation_status(self, operation_location: str) -> AsyncOperationStatus:
        # Relative locations are rooted at the admin host, not the provider path.
        resp = self.status_reads.get(urljoin(f"{self.status_reads.base_url}/", operation_location))
        return AsyncOperationStatus.model_validate(self._parse_response_dict(resp))


__all__ = [
    "CORRELATION_HEADERS",
    "ENVIRONMENT_API_VERSION",
    "NetworkInjectionClient",
    "SUPPORTED_API_VERSIONS",
    "build_body",
    "correlation_id",
    "parse_response_body",
]
