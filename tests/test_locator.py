from __future__ import annotations

import logging

import pytest

from epolicy.config import LinkageSettings
from epolicy.errors import ConfigError, HttpError, NotFoundError
from epolicy.linkage.locator import PolicyResourceLocator
from epolicy.models.admin import EnterprisePolicyResource, EnvironmentSummary

SCOPE = "/subscriptions/sub-1/resourceGroups/rg-1"
GUID = "0f8fad5b-d9cb-469f-a165-70867728950e"


def _policy(name: str, system_id: str | None = f"/regions/us/enterprisePolicies/{GUID}"):
    properties = {"systemId": system_id} if system_id else {}
    return EnterprisePolicyResource(
        id=f"{SCOPE}/providers/Microsoft.PowerPlatform/enterprisePolicies/{name}",
        name=name,
        properties=properties,
    )


def _environment(env_id: str, display_name: str) -> EnvironmentSummary:
    return EnvironmentSummary(name=env_id, properties={"displayName": display_name})


class FakePolicies:
    def __init__(self, *policies: EnterprisePolicyResource) -> None:
        self.policies = {policy.name: policy for policy in policies}

    def show(self, scope: str, name: str) -> EnterprisePolicyResource:
        if name not in self.policies:
            raise NotFoundError("Enterprise policy", name)
        return self.policies[name]

    def list_policies(self, scope: str) -> list[EnterprisePolicyResource]:
        return list(self.policies.values())


class FakeEnvironments:
    def __init__(self, *environments: EnvironmentSummary) -> None:
        self.environments = list(environments)

    def list_environments(self) -> list[EnvironmentSummary]:
        return self.environments

    def get_environment(self, environment_id: str) -> EnvironmentSummary:
        for environment in self.environments:
            if environment.environment_id == environment_id:
                return environment
        raise HttpError(404, "Not Found")


def test_resolve_named_policy():
    locator = PolicyResourceLocator(FakePolicies(_policy("ep-test-01")), FakeEnvironments())

    policy = locator.resolve(SCOPE, "ep-test-01")

    assert policy.name == "ep-test-01"
    assert policy.system_guid == GUID
    assert policy.arm_id.endswith("/enterprisePolicies/ep-test-01")


def test_resolve_without_name_uses_first_and_warns(caplog):
    locator = PolicyResourceLocator(
        FakePolicies(_policy("first"), _policy("second")), FakeEnvironments()
    )

    with caplog.at_level(logging.WARNING):
        policy = locator.resolve(SCOPE, None)

    assert policy.name == "first"
    assert "2 enterprise policies" in caplog.text


def test_resolve_without_any_policy_raises():
    locator = PolicyResourceLocator(FakePolicies(), FakeEnvironments())

    with pytest.raises(NotFoundError):
        locator.resolve(SCOPE, None)


def test_resolve_policy_without_guid_keeps_raw_system_id(caplog):
    locator = PolicyResourceLocator(
        FakePolicies(_policy("ep", system_id="legacy-system-id")), FakeEnvironments()
    )

    with caplog.at_level(logging.WARNING):
        policy = locator.resolve(SCOPE, "ep")

    assert policy.system_guid is None
    assert policy.system_id == "legacy-system-id"
    assert "No GUID" in caplog.text


def test_resolve_environment_prefers_exact_match_then_casefold():
    environments = FakeEnvironments(
        _environment("env-1", "contoso dev"),
        _environment("env-2", "Contoso Dev"),
    )
    locator = PolicyResourceLocator(FakePolicies(), environments)

    assert locator.resolve_environment("Contoso Dev").id == "env-2"
    assert locator.resolve_environment("CONTOSO DEV").id == "env-1"


def test_resolve_environment_missing_raises():
    locator = PolicyResourceLocator(FakePolicies(), FakeEnvironments(_environment("env-1", "A")))

    with pytest.raises(NotFoundError, match="Environment not found: B"):
        locator.resolve_environment("B")


def test_resolve_environment_by_id_maps_404():
    locator = PolicyResourceLocator(FakePolicies(), FakeEnvironments())

    with pytest.raises(NotFoundError):
        locator.resolve_environment_by_id("env-404")


def test_resolve_environment_for_prefers_id():
    environments = FakeEnvironments(_environment("env-123", "Contoso"))
    locator = PolicyResourceLocator(FakePolicies(), environments)

    ref = locator.resolve_environment_for(
        LinkageSettings(environment_id="env-123", environment_name="Other")
    )

    assert ref.id == "env-123"
    assert ref.display_name == "Contoso"


def test_resolve_environment_for_requires_id_or_name():
    locator = PolicyResourceLocator(FakePolicies(), FakeEnvironments())

    with pytest.raises(ConfigError):
        locator.resolve_environment_for(LinkageSettings())


def test_from_linked_reference_accepts_arm_id_and_system_path():
    arm_id = f"{SCOPE}/providers/Microsoft.PowerPlatform/enterprisePolicies/ep-test-01"

    from_arm = PolicyResourceLocator.from_linked_reference(arm_id)
    from_path = PolicyResourceLocator.from_linked_reference(f"/regions/us/enterprisePolicies/{GUID}")

    assert from_arm.name == "ep-test-01"
    assert from_arm.arm_id == arm_id
    assert from_path.arm_id == ""
    assert from_path.system_guid == GUID
