"""Resolve human-readable names into policy and environment identifiers."""

from __future__ import annotations

import logging
from typing import Protocol

from ..config import LinkageSettings
from ..errors import ConfigError, HttpError, NotFoundError
from ..models.admin import EnterprisePolicyResource, EnvironmentSummary
from ..models.linkage import EnvironmentRef, PolicyResource

logger = logging.getLogger(__name__)


class PolicySource(Protocol):
    def show(self, scope: str, name: str) -> EnterprisePolicyResource: ...

    def list_policies(self, scope: str) -> list[EnterprisePolicyResource]: ...


class EnvironmentSource(Protocol):
    def list_environments(self) -> list[EnvironmentSummary]: ...

    def get_environment(self, environment_id: str) -> EnvironmentSummary: ...


def _to_policy(resource: EnterprisePolicyResource) -> PolicyResource:
    policy = PolicyResource(
        name=resource.name,
        arm_id=resource.id,
        system_id=resource.system_id,
        location=resource.location,
    )
    if policy.system_guid is None:
        logger.warning(
            "No GUID found in system id %r of policy %s; raw values will be sent",
            resource.system_id,
            resource.name,
        )
    return policy


class PolicyResourceLocator:
    """Read-only lookups backing a linkage run."""

    def __init__(self, policies: PolicySource, environments: EnvironmentSource) -> None:
        self._policies = policies
        self._environments = environments

    def resolve(self, resource_scope: str, policy_name: str | None) -> PolicyResource:
        """Return the named policy, or the only/first policy in scope when unnamed."""

        if policy_name:
            resource = self._policies.show(resource_scope, policy_name)
            logger.info("Resolved enterprise policy %s -> %s", policy_name, resource.system_id)
            return _to_policy(resource)

        candidates = self._policies.list_policies(resource_scope)
        if not candidates:
            raise NotFoundError("Enterprise policy", resource_scope)
        if len(candidates) > 1:
            logger.warning(
                "%d enterprise policies found in %s; using %s",
                len(candidates),
                resource_scope,
                candidates[0].name,
            )
        return _to_policy(candidates[0])

    def resolve_environment(self, display_name: str) -> EnvironmentRef:
        environments = self._environments.list_environments()
        matches = [env for env in environments if env.display_name == display_name]
        if not matches:
            wanted = display_name.casefold()
            matches = [
                env
                for env in environments
                if env.display_name and env.display_name.casefold() == wanted
            ]
        matches = [env for env in matches if env.environment_id]
        if not matches:
            raise NotFoundError("Environment", display_name)
        if len(matches) > 1:
            logger.warning(
                "%d environments named %r; using %s",
                len(matches),
                display_name,
                matches[0].environment_id,
            )
        chosen = matches[0]
        return EnvironmentRef(id=str(chosen.environment_id), display_name=chosen.display_name)

    def resolve_environment_by_id(self, environment_id: str) -> EnvironmentRef:
        try:
            environment = self._environments.get_environment(environment_id)
        except HttpError as exc:
            if exc.status_code == 404:
                raise NotFoundError("Environment", environment_id) from exc
            raise
        return EnvironmentRef(
            id=environment.environment_id or environment_id,
            display_name=environment.display_name,
        )

    def resolve_environment_for(self, settings: LinkageSettings) -> EnvironmentRef:
        """Prefer the configured environment id, falling back to the display name."""

        if settings.environment_id:
            return self.resolve_environment_by_id(settings.environment_id)
        if settings.environment_name:
            return self.resolve_environment(settings.environment_name)
        raise ConfigError(
            "Missing required configuration: POWER_PLATFORM_ENVIRONMENT_ID or "
            "POWER_PLATFORM_ENVIRONMENT_NAME"
        )

    @staticmethod
    def from_linked_reference(identifier: str) -> PolicyResource:
        """Build a policy from an identifier read off an environment's linkage."""

        value = identifier.strip()
        arm_id = value if value.lower().startswith("/subscriptions/") else ""
        return PolicyResource(
            name=value.rstrip("/").split("/")[-1],
            arm_id=arm_id,
            system_id=value,
        )


__all__ = ["EnvironmentSource", "PolicyResourceLocator", "PolicySource"]
