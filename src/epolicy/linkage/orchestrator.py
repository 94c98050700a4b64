"""Sequence lookup, invocation, polling and evaluation into one linkage run."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Protocol

from ..auth.base import TokenProvider
from ..clients.network_injection import NetworkInjectionClient
from ..clients.resource_manager import EnterprisePolicyClient
from ..config import DEFAULT_ARM_BASE, LinkageSettings
from ..errors import NotFoundError
from ..models.linkage import (
    BodyVariant,
    EnvironmentRef,
    LinkAction,
    LinkageOutcome,
    LinkageStatus,
    LinkOperationAttempt,
    PolicyLinkage,
    PolicyResource,
)
from ..utils.operation_poller import OperationPoller
from .locator import PolicyResourceLocator
from .matrix import FallbackMatrixRunner

logger = logging.getLogger(__name__)

_AUTH_STATUSES = frozenset({401, 403})


class RunState(str, Enum):
    IDLE = "Idle"
    RESOLVING = "Resolving"
    INVOKING = "Invoking"
    POLLING = "Polling"
    EVALUATING = "Evaluating"


class PolicyDeleter(Protocol):
    def delete(self, arm_id: str) -> bool: ...


class Closeable(Protocol):
    def close(self) -> None: ...


@dataclass(frozen=True)
class LinkageSnapshot:
    """Read-only view of an environment's current linkage."""

    environment: EnvironmentRef
    linkage: PolicyLinkage
    policy: PolicyResource | None = None

    @property
    def policy_linked(self) -> bool:
        return self.linkage.contains(self.policy)


def _success_status(action: LinkAction) -> LinkageStatus:
    return LinkageStatus.LINKED if action is LinkAction.LINK else LinkageStatus.UNLINKED


def _in_desired_state(
    action: LinkAction, linkage: PolicyLinkage, policy: PolicyResource | None
) -> bool:
    present = linkage.contains(policy)
    return present if action is LinkAction.LINK else not present


class LinkageOrchestrator:
    """Drive one link or unlink run to a terminal :class:`LinkageStatus`.

    A run moves ``Idle -> Resolving -> Invoking -> (Polling) -> Evaluating``
    and never loops back to ``Resolving``. The default run sends a single
    request; ``exhaustive=True`` walks the whole fallback matrix. The settings
    passed in are returned, updated with the resolved identifiers, on the
    outcome.
    """

    def __init__(
        self,
        locator: PolicyResourceLocator,
        runner: FallbackMatrixRunner,
        *,
        credentials: Iterable[TokenProvider] = (),
        policies: PolicyDeleter | None = None,
        resources: Iterable[Closeable] = (),
    ) -> None:
        self.locator = locator
        self.runner = runner
        self.credentials = tuple(credentials)
        self.policies = policies
        self._resources = tuple(resources)
        self.state = RunState.IDLE

    @classmethod
    def from_settings(
        cls,
        settings: LinkageSettings,
        admin_credential: TokenProvider,
        arm_credential: TokenProvider,
        *,
        arm_base: str = DEFAULT_ARM_BASE,
    ) -> LinkageOrchestrator:
        """Wire the default HTTP collaborators for ``settings``."""

        admin = NetworkInjectionClient(admin_credential.get_token, base_url=settings.admin_base)
        arm = EnterprisePolicyClient(arm_credential.get_token, base_url=arm_base)
        runner = FallbackMatrixRunner(
            admin,
            OperationPoller(admin),
            timeout_seconds=settings.poll_timeout,
            interval_seconds=settings.poll_interval,
        )
        return cls(
            PolicyResourceLocator(arm, admin),
            runner,
            credentials=(admin_credential, arm_credential),
            policies=arm,
            resources=(admin, arm),
        )

    def close(self) -> None:
        """Close the HTTP clients created by :meth:`from_settings`."""

        for resource in self._resources:
            resource.close()

    def __enter__(self) -> LinkageOrchestrator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _transition(self, state: RunState) -> None:
        logger.info("%s -> %s", self.state.value, state.value)
        self.state = state

    def _begin(self) -> None:
        self.state = RunState.IDLE
        for credential in self.credentials:
            credential.refresh()

    def _finish(
        self,
        status: LinkageStatus,
        settings: LinkageSettings,
        *,
        attempts: Sequence[LinkOperationAttempt] = (),
        environment: EnvironmentRef | None = None,
        policy: PolicyResource | None = None,
        detail: str | None = None,
    ) -> LinkageOutcome:
        updates: dict[str, object] = {}
        if environment is not None:
            updates["environment_id"] = environment.id
        if policy is not None and policy.system_id:
            updates["policy_system_id"] = policy.system_id
        logger.info("Run finished: %s%s", status.value, f" ({detail})" if detail else "")
        self.state = RunState.IDLE
        return LinkageOutcome(
            status=status,
            attempts=tuple(attempts),
            environment=environment,
            policy=policy,
            settings=settings.with_updates(**updates),
            detail=detail,
        )

    # Public operations -------------------------------------------------------------

    def ensure_linked(
        self,
        settings: LinkageSettings,
        *,
        exhaustive: bool = False,
        api_versions: Sequence[str] | None = None,
        body_variants: Sequence[BodyVariant] | None = None,
    ) -> LinkageOutcome:
        """Link the configured policy to the configured environment."""

        self._begin()
        self._transition(RunState.RESOLVING)
        scope = settings.resource_scope
        try:
            environment = self.locator.resolve_environment_for(settings)
        except NotFoundError as exc:
            return self._finish(LinkageStatus.FAILED, settings, detail=str(exc))
        try:
            policy = self.locator.resolve(scope, settings.policy_name)
        except NotFoundError as exc:
            return self._finish(
                LinkageStatus.FAILED, settings, environment=environment, detail=str(exc)
            )
        return self._run(
            LinkAction.LINK,
            settings,
            environment,
            policy,
            exhaustive=exhaustive,
            api_versions=api_versions,
            body_variants=body_variants,
        )

    def ensure_unlinked(
        self,
        settings: LinkageSettings,
        *,
        exhaustive: bool = False,
        api_versions: Sequence[str] | None = None,
        body_variants: Sequence[BodyVariant] | None = None,
        delete_policy: bool = False,
    ) -> LinkageOutcome:
        """Unlink the configured policy, optionally deleting the ARM resource after."""

        self._begin()
        self._transition(RunState.RESOLVING)
        scope = settings.resource_scope
        try:
            environment = self.locator.resolve_environment_for(settings)
        except NotFoundError as exc:
            logger.info("%s; nothing to unlink", exc)
            orphan = self._find_policy(scope, settings.policy_name) if delete_policy else None
            outcome = self._finish(
                LinkageStatus.ALREADY_IN_DESIRED_STATE, settings, policy=orphan, detail=str(exc)
            )
            if delete_policy:
                self._delete_policy(orphan)
            return outcome

        policy: PolicyResource | None
        try:
            policy = self.locator.resolve(scope, settings.policy_name)
        except NotFoundError as exc:
            logger.warning("%s; falling back to the environment's current linkage", exc)
            linkage = self.runner.check_linkage(environment.id)
            if linkage is not None and linkage.is_empty:
                return self._finish(
                    LinkageStatus.ALREADY_IN_DESIRED_STATE,
                    settings,
                    environment=environment,
                    detail="No enterprise policy is linked",
                )
            policy = (
                self.locator.from_linked_reference(linkage.linked_ids[0])
                if linkage is not None
                else None
            )

        outcome = self._run(
            LinkAction.UNLINK,
            settings,
            environment,
            policy,
            exhaustive=exhaustive,
            api_versions=api_versions,
            body_variants=body_variants,
        )
        if delete_policy and outcome.succeeded:
            self._delete_policy(policy)
        return outcome

    def diagnose(
        self,
        settings: LinkageSettings,
        actions: Sequence[LinkAction] = (LinkAction.UNLINK,),
        *,
        api_versions: Sequence[str] | None = None,
        body_variants: Sequence[BodyVariant] | None = None,
    ) -> list[LinkOperationAttempt]:
        """Run the full matrix for ``actions`` and return every attempt unjudged."""

        self._begin()
        self._transition(RunState.RESOLVING)
        scope = settings.resource_scope
        environment = self.locator.resolve_environment_for(settings)
        policy = self.locator.resolve(scope, settings.policy_name)
        self._transition(RunState.INVOKING)
        attempts = self.runner.run_matrix(
            environment.id,
            policy,
            actions,
            api_versions,
            body_variants,
            exhaustive=True,
        )
        self.state = RunState.IDLE
        return attempts

    def inspect(self, settings: LinkageSettings) -> LinkageSnapshot:
        """Return the environment's live linkage without changing anything."""

        environment = self.locator.resolve_environment_for(settings)
        policy: PolicyResource | None = None
        if settings.subscription_id and settings.resource_group:
            try:
                policy = self.locator.resolve(settings.resource_scope, settings.policy_name)
            except NotFoundError as exc:
                logger.warning("%s", exc)
        linkage = self.runner.client.get_linkage(environment.id)
        return LinkageSnapshot(environment, linkage, policy)

    # Run internals -----------------------------------------------------------------

    def _run(
        self,
        action: LinkAction,
        settings: LinkageSettings,
        environment: EnvironmentRef,
        policy: PolicyResource | None,
        *,
        exhaustive: bool,
        api_versions: Sequence[str] | None,
        body_variants: Sequence[BodyVariant] | None,
    ) -> LinkageOutcome:
        self._transition(RunState.INVOKING)
        attempts = self.runner.run_matrix(
            environment.id,
            policy,
            [action],
            api_versions,
            body_variants,
            exhaustive=exhaustive,
        )
        if any(a.poll_iterations for a in attempts):
            self._transition(RunState.POLLING)
        self._transition(RunState.EVALUATING)
        status, extra, detail = self._evaluate(action, environment, policy, attempts)
        return self._finish(
            status,
            settings,
            attempts=[*attempts, *extra],
            environment=environment,
            policy=policy,
            detail=detail,
        )

    def _evaluate(
        self,
        action: LinkAction,
        environment: EnvironmentRef,
        policy: PolicyResource | None,
        attempts: Sequence[LinkOperationAttempt],
    ) -> tuple[LinkageStatus, tuple[LinkOperationAttempt, ...], str | None]:
        if any(a.succeeded for a in attempts):
            return _success_status(action), (), None
        if action is LinkAction.UNLINK and any(a.http_status == 404 for a in attempts):
            detail = "Environment reports no linked policy"
            return LinkageStatus.ALREADY_IN_DESIRED_STATE, (), detail

        unverified = any(a.unverified for a in attempts)
        timed_out = any(a.timed_out for a in attempts)
        failures = [a for a in attempts if not (a.unverified or a.timed_out)]

        linkage: PolicyLinkage | None = None
        if unverified:
            linkage = self.runner.check_linkage(environment.id)
            if linkage is not None and _in_desired_state(action, linkage, policy):
                return _success_status(action), (), "Confirmed by linkage re-check"

        if failures and all(a.http_status in _AUTH_STATUSES for a in failures):
            if timed_out or unverified:
                return LinkageStatus.UNKNOWN, (), "Request rejected as unauthorized"
            return LinkageStatus.FAILED, (), "Request rejected as unauthorized"

        if failures:
            resolution = self.runner.resolve_conflict(action, environment.id, policy, linkage)
            if resolution.status is not LinkageStatus.FAILED or not (timed_out or unverified):
                return resolution.status, resolution.attempts, resolution.detail
            return LinkageStatus.UNKNOWN, resolution.attempts, resolution.detail

        if timed_out:
            return LinkageStatus.UNKNOWN, (), "Operation did not finish within the polling timeout"
        return LinkageStatus.UNKNOWN, (), "Request accepted without an operation handle"

    def _find_policy(self, scope: str, policy_name: str | None) -> PolicyResource | None:
        try:
            return self.locator.resolve(scope, policy_name)
        except NotFoundError as exc:
            logger.info("%s; nothing to delete", exc)
            return None

    def _delete_policy(self, policy: PolicyResource | None) -> None:
        if self.policies is None or policy is None or not policy.arm_id:
            logger.warning("No enterprise policy resource to delete")
            return
        if self.policies.delete(policy.arm_id):
            logger.info("Deleted enterprise policy %s", policy.arm_id)
        else:
            logger.info("Enterprise policy %s was already deleted", policy.arm_id)


__all__ = ["LinkageOrchestrator", "LinkageSnapshot", "RunState"]
