"""Fallback matrix over (action, api-version, body variant) request shapes."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Protocol

import httpx
from pydantic import ValidationError

from ..clients.network_injection import SUPPORTED_API_VERSIONS
from ..config import DEFAULT_POLL_INTERVAL, DEFAULT_POLL_TIMEOUT
from ..errors import HttpError
from ..models.linkage import (
    BodyVariant,
    EndpointShape,
    LinkAction,
    LinkageStatus,
    LinkOperationAttempt,
    PolicyLinkage,
    PolicyResource,
    PollResult,
)

logger = logging.getLogger(__name__)

DEFAULT_BODY_VARIANT = BodyVariant.SYSTEM_PATH
ALL_BODY_VARIANTS: tuple[BodyVariant, ...] = tuple(BodyVariant)
ALTERNATE_UNLINK_SHAPES: tuple[EndpointShape, ...] = (
    EndpointShape.REMOVE_NETWORK_INJECTION,
    EndpointShape.UNLINK_ENTERPRISE_POLICY,
    EndpointShape.DELETE_NETWORK_INJECTION,
)


class OperationClient(Protocol):
    def invoke(
        self,
        action: LinkAction,
        environment_id: str,
        api_version: str,
        body_variant: BodyVariant,
        policy: PolicyResource | None,
    ) -> LinkOperationAttempt: ...

    def invoke_alternate(
        self,
        shape: EndpointShape,
        environment_id: str,
        api_version: str,
        policy: PolicyResource | None,
        body_variant: BodyVariant = ...,
    ) -> LinkOperationAttempt: ...

    def get_linkage(self, environment_id: str) -> PolicyLinkage: ...


class Poller(Protocol):
    def poll(
        self, operation_location: str, timeout_seconds: float, interval_seconds: float
    ) -> PollResult: ...


@dataclass(frozen=True)
class ConflictResolution:
    """Outcome of re-verifying linkage after a failed or conflicting attempt."""

    status: LinkageStatus
    attempts: tuple[LinkOperationAttempt, ...] = field(default_factory=tuple)
    detail: str | None = None


def oldest_version(api_versions: Sequence[str]) -> str:
    return sorted(api_versions)[0]


def newest_version(api_versions: Sequence[str]) -> str:
    return sorted(api_versions)[-1]


class FallbackMatrixRunner:
    """Try link/unlink request shapes and record every attempt.

    ``run_matrix`` has two modes. Single-attempt (default) sends the requested
    action once with the oldest supported API version and the ``systemPath``
    body. Exhaustive mode walks ``action x api_version x body_variant`` in
    nested order without short-circuiting, polling each accepted operation
    before moving on, so repeated runs against the same failure produce the
    same attempt sequence.
    """

    def __init__(
        self,
        client: OperationClient,
        poller: Poller,
        *,
        timeout_seconds: float = DEFAULT_POLL_TIMEOUT,
        interval_seconds: float = DEFAULT_POLL_INTERVAL,
        api_versions: Sequence[str] = SUPPORTED_API_VERSIONS,
        alternate_shapes: Sequence[EndpointShape] = ALTERNATE_UNLINK_SHAPES,
    ) -> None:
        if not api_versions:
            raise ValueError("At least one API version is required")
        self.client = client
        self.poller = poller
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self.api_versions = tuple(api_versions)
        self.alternate_shapes = tuple(alternate_shapes)

    def _drain(self, attempt: LinkOperationAttempt) -> LinkOperationAttempt:
        if not attempt.operation_location:
            return attempt
        result = self.poller.poll(
            attempt.operation_location, self.timeout_seconds, self.interval_seconds
        )
        return replace(attempt, final_status=result.final_status, poll_iterations=result.iterations)

    def attempt(
        self,
        action: LinkAction,
        environment_id: str,
        api_version: str,
        body_variant: BodyVariant,
        policy: PolicyResource | None,
    ) -> LinkOperationAttempt:
        """Invoke one triple and poll its operation handle, if any."""

        attempt = self._drain(
            self.client.invoke(action, environment_id, api_version, body_variant, policy)
        )
        logger.info("Attempt %s", attempt.describe())
        return attempt

    def run_matrix(
        self,
        environment_id: str,
        policy: PolicyResource | None,
        actions: Sequence[LinkAction],
        api_versions: Sequence[str] | None = None,
        body_variants: Sequence[BodyVariant] | None = None,
        *,
        exhaustive: bool = False,
    ) -> list[LinkOperationAttempt]:
        if not actions:
            raise ValueError("At least one action is required")
        versions = tuple(api_versions or self.api_versions)
        if not exhaustive:
            version = oldest_version(versions)
            return [self.attempt(actions[0], environment_id, version, DEFAULT_BODY_VARIANT, policy)]

        variants = tuple(body_variants or ALL_BODY_VARIANTS)
        logger.info(
            "Running exhaustive matrix: %d action(s) x %d version(s) x %d body variant(s)",
            len(actions),
            len(versions),
            len(variants),
        )
        attempts: list[LinkOperationAttempt] = []
        for action in actions:
            for version in versions:
                for variant in variants:
                    attempts.append(self.attempt(action, environment_id, version, variant, policy))
        return attempts

    def check_linkage(self, environment_id: str) -> PolicyLinkage | None:
        """Re-query live linkage; ``None`` when the environment cannot be read."""

        try:
            return self.client.get_linkage(environment_id)
        except (HttpError, httpx.HTTPError, ValidationError) as exc:
            logger.warning("Unable to re-check linkage for %s: %s", environment_id, exc)
            return None

    def resolve_conflict(
        self,
        action: LinkAction,
        environment_id: str,
        policy: PolicyResource | None,
        linkage: PolicyLinkage | None = None,
    ) -> ConflictResolution:
        """Reinterpret a conflict or failure against the environment's live state.

        Unlink: an absent policy means the desired state already holds. A policy
        that is still present (or whose presence could not be read) escalates
        to the alternate endpoint shapes before the run is declared failed.
        Link: a present policy means the desired state already holds.
        """

        if linkage is None:
            linkage = self.check_linkage(environment_id)
        present = linkage.contains(policy) if linkage is not None else None

        if action is LinkAction.LINK:
            if present:
                return ConflictResolution(
                    LinkageStatus.ALREADY_IN_DESIRED_STATE, detail="Policy is already linked"
                )
            return ConflictResolution(LinkageStatus.FAILED, detail="Policy is not linked")

        if present is False:
            logger.info("Policy no longer linked to %s; treating conflict as done", environment_id)
            return ConflictResolution(
                LinkageStatus.ALREADY_IN_DESIRED_STATE, detail="Policy is no longer linked"
            )
        if present is None:
            logger.warning(
                "Linkage unknown for %s; escalating to alternate endpoints", environment_id
            )
        else:
            logger.warning(
                "Policy still linked to %s; escalating to alternate endpoints", environment_id
            )
        return self.escalate_unlink(environment_id, policy)

    def escalate_unlink(
        self, environment_id: str, policy: PolicyResource | None
    ) -> ConflictResolution:
        """Try each alternate unlink shape until one succeeds."""

        version = newest_version(self.api_versions)
        attempts: list[LinkOperationAttempt] = []
        for shape in self.alternate_shapes:
            attempt = self._drain(
                self.client.invoke_alternate(shape, environment_id, version, policy)
            )
            logger.info("Alternate attempt %s", attempt.describe())
            attempts.append(attempt)
            if attempt.succeeded:
                return ConflictResolution(
                    LinkageStatus.UNLINKED, tuple(attempts), detail=f"Unlinked via {shape.value}"
                )
        if any(a.timed_out or a.unverified for a in attempts):
            return ConflictResolution(
                LinkageStatus.UNKNOWN,
                tuple(attempts),
                detail="An alternate unlink was accepted but could not be confirmed",
            )
        return ConflictResolution(
            LinkageStatus.FAILED, tuple(attempts), detail="All alternate unlink endpoints failed"
        )


__all__ = [
    "ALL_BODY_VARIANTS",
    "ALTERNATE_UNLINK_SHAPES",
    "ConflictResolution",
    "DEFAULT_BODY_VARIANT",
    "FallbackMatrixRunner",
    "newest_version",
    "oldest_version",
]
