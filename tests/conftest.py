from __future__ import annotations

import sys
from pathlib import Path

import pytest
import respx
from typer.testing import CliRunner

# Make the ``src`` layout importable when the project is not installed.
SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def token_getter():
    return lambda: "dummy-token"


@pytest.fixture
def respx_mock():
    with respx.mock(assert_all_called=False) as respx_mgr:
        yield respx_mgr


@pytest.fixture
def no_sleep(monkeypatch):
    """Make operation polling instantaneous."""

    monkeypatch.setattr("epolicy.utils.operation_poller.time.sleep", lambda _: None)


@pytest.fixture
def cli_runner(monkeypatch):
    """Provide a CLI runner with static tokens and a clean configuration environment."""

    monkeypatch.setenv("EPOLICY_ADMIN_TOKEN", "admin-token")
    monkeypatch.setenv("EPOLICY_ARM_TOKEN", "arm-token")
    for key in (
        "TENANT_ID",
        "AZURE_SUBSCRIPTION_ID",
        "RESOURCE_GROUP",
        "ENTERPRISE_POLICY_NAME",
        "ENTERPRISE_POLICY_SYSTEM_ID",
        "POWER_PLATFORM_ENVIRONMENT_ID",
        "POWER_PLATFORM_ENVIRONMENT_NAME",
        "POWER_PLATFORM_ADMIN_BASE",
        "POWER_PLATFORM_ADMIN_AUDIENCE",
        "EPOLICY_POLL_TIMEOUT",
        "EPOLICY_POLL_INTERVAL",
        "AZURE_CLIENT_ID",
        "AZURE_CLIENT_SECRET",
    ):
        monkeypatch.delenv(key, raising=False)
    return CliRunner()
