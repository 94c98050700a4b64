from __future__ import annotations

import httpx
import pytest
from azure.identity import CredentialUnavailableError
from dotenv import dotenv_values

from epolicy.cli import app
from epolicy.config import DEFAULT_ADMIN_BASE, DEFAULT_ARM_BASE

SCOPE = "/subscriptions/sub-1/resourceGroups/rg-1"
POLICY_ID = f"{SCOPE}/providers/Microsoft.PowerPlatform/enterprisePolicies/ep-test-01"
SYSTEM_ID = "/regions/unitedstates/enterprisePolicies/0f8fad5b-d9cb-469f-a165-70867728950e"
ENV_URL = f"{DEFAULT_ADMIN_BASE}/environments/env-123"
NI_URL = f"{ENV_URL}/enterprisePolicies/NetworkInjection"


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text(
        "AZURE_SUBSCRIPTION_ID=sub-1\n"
        "RESOURCE_GROUP=rg-1\n"
        "ENTERPRISE_POLICY_NAME=ep-test-01\n"
        "POWER_PLATFORM_ENVIRONMENT_NAME=Contoso Dev\n"
    )
    return path


def _mock_lookups(respx_mock, *, linked: bool = True):
    respx_mock.get(f"{DEFAULT_ARM_BASE}{POLICY_ID}").mock(
        return_value=httpx.Response(
            200,
            json={"id": POLICY_ID, "name": "ep-test-01", "properties": {"systemId": SYSTEM_ID}},
        )
    )
    respx_mock.get(f"{DEFAULT_ADMIN_BASE}/environments").mock(
        return_value=httpx.Response(
            200,
            json={"value": [{"name": "env-123", "properties": {"displayName": "Contoso Dev"}}]},
        )
    )
    respx_mock.get(ENV_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "name": "env-123",
                "properties": {
                    "displayName": "Contoso Dev",
                    "enterprisePolicies": (
                        {"NetworkInjection": {"id": POLICY_ID}} if linked else {}
                    ),
                },
            },
        )
    )
    return respx_mock


@pytest.fixture
def lookups(respx_mock):
    return _mock_lookups(respx_mock)


def test_unlink_already_done_persists_identifiers(cli_runner, env_file, lookups):
    lookups.post(f"{NI_URL}/unlink").mock(return_value=httpx.Response(404))

    result = cli_runner.invoke(app, ["unlink", "--env-file", str(env_file), "--interval", "0"])

    assert result.exit_code == 0, result.output
    assert "AlreadyInDesiredState" in result.output
    values = dotenv_values(env_file)
    assert values["POWER_PLATFORM_ENVIRONMENT_ID"] == "env-123"
    assert values["ENTERPRISE_POLICY_SYSTEM_ID"] == SYSTEM_ID
    assert values["RESOURCE_GROUP"] == "rg-1"


def test_link_failure_exits_one_and_keeps_env_file(cli_runner, env_file, respx_mock):
    lookups = _mock_lookups(respx_mock, linked=False)
    lookups.post(f"{NI_URL}/link").mock(
        return_value=httpx.Response(400, json={"error": {"code": "BadRequest", "message": "no"}})
    )
    before = env_file.read_text()

    result = cli_runner.invoke(
        app, ["link", "--env-file", str(env_file), "--environment-id", "env-123"]
    )

    assert result.exit_code == 1
    assert "Failed" in result.output
    assert env_file.read_text() == before


def test_link_unconfirmed_exits_two(cli_runner, env_file, respx_mock):
    lookups = _mock_lookups(respx_mock, linked=False)
    lookups.post(f"{NI_URL}/link").mock(return_value=httpx.Response(202))

    result = cli_runner.invoke(
        app, ["link", "--env-file", str(env_file), "--environment-id", "env-123"]
    )

    assert result.exit_code == 2
    assert "Unknown" in result.output


def test_missing_configuration_is_reported(cli_runner, tmp_path):
    result = cli_runner.invoke(
        app, ["link", "--env-file", str(tmp_path / "missing.env"), "--environment-id", "env-1"]
    )

    assert result.exit_code == 1
    assert "Missing required configuration" in result.output


def test_status_lists_linked_policies(cli_runner, env_file, lookups):
    result = cli_runner.invoke(app, ["status", "--env-file", str(env_file)])

    assert result.exit_code == 0, result.output
    assert "Contoso Dev" in result.output
    assert "policy ep-test-01: linked" in result.output


def test_diagnose_renders_attempts(cli_runner, env_file, lookups):
    lookups.post(f"{NI_URL}/unlink").mock(return_value=httpx.Response(400))

    result = cli_runner.invoke(
        app,
        [
            "diagnose",
            "--env-file",
            str(env_file),
            "--api-version",
            "2019-10-01",
            "--body-variant",
            "guid",
            "--body-variant",
            "armId",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Diagnostic attempts" in result.output
    assert "0 of 2 attempt(s) succeeded" in result.output


class UnavailableCliCredential:
    def __init__(self, **_: object) -> None:
        pass

    def get_token(self, *scopes: str) -> object:
        raise CredentialUnavailableError(message="Azure CLI not found on path")


def test_auth_failure_prints_remediation(cli_runner, env_file, monkeypatch):
    monkeypatch.delenv("EPOLICY_ADMIN_TOKEN")
    monkeypatch.delenv("EPOLICY_ARM_TOKEN")
    monkeypatch.setattr("epolicy.auth.azure_cli.AzureCliCredential", UnavailableCliCredential)

    result = cli_runner.invoke(app, ["status", "--env-file", str(env_file)])

    assert result.exit_code == 1
    assert "Authentication failed" in result.output
    assert "az login" in result.output
