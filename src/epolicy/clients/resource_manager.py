"""Azure Resource Manager access to ``Microsoft.PowerPlatform/enterprisePolicies``."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from ..config import DEFAULT_ARM_BASE
from ..errors import HttpError, NotFoundError
from ..http_client import HttpClient
from ..models.admin import EnterprisePolicyResource

ENTERPRISE_POLICY_API_VERSION = "2020-10-30"
ENTERPRISE_POLICY_TYPE = "Microsoft.PowerPlatform/enterprisePolicies"


class EnterprisePolicyClient:
    """Read and delete enterprise policy resources in a resource group scope."""

    def __init__(
        self,
        token_getter: Callable[[], str],
        base_url: str = DEFAULT_ARM_BASE,
        api_version: str = ENTERPRISE_POLICY_API_VERSION,
    ) -> None:
        self.http = HttpClient(base_url, token_getter=token_getter)
        self.api_version = api_version

    def close(self) -> None:
        self.http.close()

    @staticmethod
    def _parse_dict(resp: httpx.Response) -> dict[str, Any]:
        if not resp.text:
            return {}
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def policy_id(scope: str, name: str) -> str:
        return f"{scope.rstrip('/')}/providers/{ENTERPRISE_POLICY_TYPE}/{name}"

    def show(self, scope: str, name: str) -> EnterprisePolicyResource:
        """Return the named policy; :class:`NotFoundError` on HTTP 404."""

        try:
            resp = self.http.get(
                self.policy_id(scope, name), params={"api-version": self.api_version}
            )
        except HttpError as exc:
            if exc.status_code == 404:
                raise NotFoundError("Enterprise policy", name) from exc
            raise
        return EnterprisePolicyResource.model_validate(self._parse_dict(resp))

    def list_policies(self, scope: str) -> list[EnterprisePolicyResource]:
        resp = self.http.get(
            f"{scope.rstrip('/')}/providers/{ENTERPRISE_POLICY_TYPE}",
            params={"api-version": self.api_version},
        )
        items = self._parse_dict(resp).get("value")
        if not isinstance(items, list):
            return []
        return [
            EnterprisePolicyResource.model_validate(item)
            for item in items
            if isinstance(item, dict)
        ]

    def delete(self, arm_id: str) -> bool:
        """Delete the policy resource; returns ``False`` when it was already gone."""

        try:
            self.http.delete(arm_id, params={"api-version": self.api_version})
        except HttpError as exc:
            if exc.status_code == 404:
                return False
            raise
        return True


__all__ = [
    "ENTERPRISE_POLICY_API_VERSION",
    "ENTERPRISE_POLICY_TYPE",
    "EnterprisePolicyClient",
]
