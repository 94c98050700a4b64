"""Value records produced and consumed within a single linkage run."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..utils.guid import extract_guid, same_guid

if TYPE_CHECKING:
    from ..config import LinkageSettings


class LinkAction(str, Enum):
    """Administrative action applied to the network injection policy."""

    LINK = "link"
    UNLINK = "unlink"


class BodyVariant(str, Enum):
    """Encoding of the policy identifier in the request payload."""

    GUID = "guid"
    SYSTEM_PATH = "systemPath"
    ARM_ID = "armId"
    LOWER_CASE_KEY = "lowerCaseKey"
    EMPTY = "empty"


class EndpointShape(str, Enum):
    """Request shape used for an attempt."""

    LINK = "link"
    UNLINK = "unlink"
    REMOVE_NETWORK_INJECTION = "removeNetworkInjection"
    UNLINK_ENTERPRISE_POLICY = "unlinkEnterprisePolicy"
    DELETE_NETWORK_INJECTION = "deleteNetworkInjection"


class OperationStatus(str, Enum):
    """Terminal status of a polled asynchronous operation."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"
    TIMED_OUT = "TimedOut"


class LinkageStatus(str, Enum):
    """Aggregate result of an orchestration run."""

    LINKED = "Linked"
    UNLINKED = "Unlinked"
    ALREADY_IN_DESIRED_STATE = "AlreadyInDesiredState"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


SUCCESS_STATUSES = frozenset(
    {LinkageStatus.LINKED, LinkageStatus.UNLINKED, LinkageStatus.ALREADY_IN_DESIRED_STATE}
)


@dataclass(frozen=True)
class PolicyResource:
    """Network injection enterprise policy as known to Azure Resource Manager."""

    name: str
    arm_id: str
    system_id: str | None = None
    location: str | None = None

    @property
    def system_guid(self) -> str | None:
        """Canonical GUID extracted from ``system_id`` (or ``arm_id``), if any."""

        return extract_guid(self.system_id, self.arm_id)

    def matches(self, identifier: str | None) -> bool:
        """Return ``True`` when ``identifier`` refers to this policy."""

        if not identifier:
            return False
        candidate = identifier.strip().lower()
        for known in (self.arm_id, self.system_id):
            if known and known.strip().lower() == candidate:
                return True
        return same_guid(self.system_guid, identifier)


@dataclass(frozen=True)
class EnvironmentRef:
    """Power Platform environment targeted by the run."""

    id: str
    display_name: str | None = None


@dataclass(frozen=True)
class StructuredError:
    """Error envelope (``error.code`` / ``error.message``) returned by the API."""

    code: str | None
    message: str | None


@dataclass(frozen=True)
class OpaqueBody:
    """Response body that could not be read as an error envelope."""

    text: str


ResponseBody = StructuredError | OpaqueBody


@dataclass(frozen=True)
class LinkOperationAttempt:
    """One call into the administrative API and what came back."""

    action: LinkAction
    api_version: str
    body_variant: BodyVariant
    endpoint: EndpointShape
    http_status: int
    operation_location: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    correlation_id: str | None = None
    final_status: OperationStatus | None = None
    poll_iterations: int = 0

    @property
    def accepted(self) -> bool:
        return self.http_status == 202

    @property
    def succeeded(self) -> bool:
        """Immediate 2xx without an error envelope, or a polled ``Succeeded``."""

        if self.final_status is not None:
            return self.final_status is OperationStatus.SUCCEEDED
        if self.accepted:
            return False
        if not 200 <= self.http_status < 300:
            return False
        return self.error_code is None and self.error_message is None

    @property
    def timed_out(self) -> bool:
        return self.final_status is OperationStatus.TIMED_OUT

    @property
    def unverified(self) -> bool:
        """202 accepted without an operation handle to poll."""

        return self.accepted and not self.operation_location

    def describe(self) -> str:
        parts = [
            f"{self.endpoint.value}",
            f"api-version={self.api_version}",
            f"body={self.body_variant.value}",
            f"status={self.http_status}",
        ]
        if self.final_status is not None:
            parts.append(f"final={self.final_status.value}")
        if self.error_code:
            parts.append(f"code={self.error_code}")
        if self.error_message:
            parts.append(f"message={self.error_message}")
        if self.correlation_id:
            parts.append(f"correlation={self.correlation_id}")
        return " ".join(parts)


@dataclass(frozen=True)
class PollResult:
    final_status: OperationStatus
    iterations: int


@dataclass(frozen=True)
class PolicyLinkage:
    """Enterprise policy identifiers currently linked to an environment."""

    environment_id: str
    linked_ids: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.linked_ids

    def contains(self, policy: PolicyResource | None) -> bool:
        """Return ``True`` when ``policy`` is linked.

        Without a known policy any linked identifier counts.
        """

        if policy is None:
            return not self.is_empty
        return any(policy.matches(value) for value in self.linked_ids)


@dataclass(frozen=True)
class LinkageOutcome:
    """Result of one orchestration run plus the attempts that produced it."""

    status: LinkageStatus
    attempts: tuple[LinkOperationAttempt, ...] = ()
    environment: EnvironmentRef | None = None
    policy: PolicyResource | None = None
    settings: LinkageSettings | None = None
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return 0
        if self.status is LinkageStatus.UNKNOWN:
            return 2
        return 1


__all__ = [
    "BodyVariant",
    "EndpointShape",
    "EnvironmentRef",
    "LinkAction",
    "LinkOperationAttempt",
    "LinkageOutcome",
    "LinkageStatus",
    "OpaqueBody",
    "OperationStatus",
    "PolicyLinkage",
    "PolicyResource",
    "PollResult",
    "ResponseBody",
    "StructuredError",
    "SUCCESS_STATUSES",
]
