"""Typed payloads returned by the admin and resource manager APIs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    code: str | None = None
    message: str | None = None

    model_config = ConfigDict(extra="allow")


class ErrorEnvelope(BaseModel):
    """Standard ``{"error": {"code": ..., "message": ...}}`` envelope."""

    error: ErrorDetail

    model_config = ConfigDict(extra="allow")


class EnvironmentSummary(BaseModel):
    """Environment entry from the BAP admin environment list."""

    id: str | None = None
    name: str | None = None
    location: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def environment_id(self) -> str | None:
        if self.name:
            return self.name
        if self.id:
            return self.id.rstrip("/").split("/")[-1]
        return None

    @property
    def display_name(self) -> str | None:
        value = self.properties.get("displayName")
        return value if isinstance(value, str) else None

    def linked_policy_ids(self) -> list[str]:
        """Collect enterprise policy identifiers linked for network injection.

        The admin API has reported the linkage under several keys over time:
        ``properties.enterprisePolicies.NetworkInjection``,
        ``properties.enterprisePolicies.VNets`` and
        ``properties.networkInjection.enterprisePolicyArmId``.
        """

        found: list[str] = []
        policies = self.properties.get("enterprisePolicies")
        if isinstance(policies, dict):
            for key in ("NetworkInjection", "networkInjection", "VNets", "vNets", "vnets"):
                found.extend(_policy_identifiers(policies.get(key)))
        injection = self.properties.get("networkInjection")
        if isinstance(injection, dict):
            arm_id = injection.get("enterprisePolicyArmId")
            if isinstance(arm_id, str) and arm_id:
                found.append(arm_id)
        unique: list[str] = []
        for value in found:
            if value not in unique:
                unique.append(value)
        return unique


def _policy_identifiers(entry: Any) -> list[str]:
    if isinstance(entry, str):
        return [entry] if entry else []
    if isinstance(entry, list):
        values: list[str] = []
        for item in entry:
            values.extend(_policy_identifiers(item))
        return values
    if isinstance(entry, dict):
        return [
            value
            for key in ("id", "policyArmId", "systemId", "SystemId", "policyId")
            if isinstance((value := entry.get(key)), str) and value
        ]
    return []


class EnvironmentListPage(BaseModel):
    """Page of environment summaries returned by the admin APIs."""

    value: list[EnvironmentSummary] = Field(default_factory=list)
    next_link: str | None = Field(default=None, alias="nextLink")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AsyncOperationStatus(BaseModel):
    """Body returned when polling an ``operation-location`` URL."""

    status: str | None = None
    state: str | None = None
    provisioning_state: str | None = Field(default=None, alias="provisioningState")
    error: ErrorDetail | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def value(self) -> str:
        return str(self.status or self.state or self.provisioning_state or "")


class EnterprisePolicyResource(BaseModel):
    """``Microsoft.PowerPlatform/enterprisePolicies`` resource from ARM."""

    id: str
    name: str
    location: str | None = None
    kind: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def system_id(self) -> str | None:
        value = self.properties.get("systemId")
        return value if isinstance(value, str) and value else None


__all__ = [
    "AsyncOperationStatus",
    "EnterprisePolicyResource",
    "EnvironmentListPage",
    "EnvironmentSummary",
    "ErrorDetail",
    "ErrorEnvelope",
]
