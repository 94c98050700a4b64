"""Typed models shared by the epolicy clients and orchestrator."""

from __future__ import annotations

from .admin import (
    AsyncOperationStatus,
    EnterprisePolicyResource,
    EnvironmentListPage,
    EnvironmentSummary,
    ErrorDetail,
    ErrorEnvelope,
)
from .linkage import (
    BodyVariant,
    EndpointShape,
    EnvironmentRef,
    LinkAction,
    LinkageOutcome,
    LinkageStatus,
    LinkOperationAttempt,
    OpaqueBody,
    OperationStatus,
    PolicyLinkage,
    PolicyResource,
    PollResult,
    StructuredError,
)

__all__ = [
    "AsyncOperationStatus",
    "BodyVariant",
    "EndpointShape",
    "EnterprisePolicyResource",
    "EnvironmentListPage",
    "EnvironmentRef",
    "EnvironmentSummary",
    "ErrorDetail",
    "ErrorEnvelope",
    "LinkAction",
    "LinkageOutcome",
    "LinkageStatus",
    "LinkOperationAttempt",
    "OpaqueBody",
    "OperationStatus",
    "PolicyLinkage",
    "PolicyResource",
    "PollResult",
    "StructuredError",
]
