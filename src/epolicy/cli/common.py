from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Sequence
from functools import wraps
from pathlib import Path
from typing import ParamSpec, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from ..auth import AzureCliTokenProvider, StaticTokenProvider, TokenProvider
from ..auth.azure_ad import AzureADTokenProvider
from ..config import DEFAULT_ARM_AUDIENCE, EnvFileStore, LinkageSettings
from ..errors import AuthError, ConfigError, EpolicyError, HttpError
from ..models.linkage import LinkageOutcome, LinkageStatus, LinkOperationAttempt

console = Console()

LOG_FORMAT = "%(levelname)s %(name)s - %(message)s"

ADMIN_TOKEN_ENV = "EPOLICY_ADMIN_TOKEN"
ARM_TOKEN_ENV = "EPOLICY_ARM_TOKEN"


def configure_logging(verbose: bool = False) -> None:
    """Attach a stream handler to the ``epolicy`` logger tree."""

    level_name = "INFO" if verbose else os.getenv("EPOLICY_LOG_LEVEL", "WARNING")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    root = logging.getLogger("epolicy")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def _render_http_error(exc: HttpError) -> None:
    console.print(f"[red]Error:[/red] {exc}")
    details = getattr(exc, "details", None)
    if details:
        snippet = details
        if isinstance(details, dict):
            snippet = json.dumps(details, indent=2)
        console.print(str(snippet))


CommandParams = ParamSpec("CommandParams")
CommandReturn = TypeVar("CommandReturn")


def handle_cli_errors(
    func: Callable[CommandParams, CommandReturn],
) -> Callable[CommandParams, CommandReturn]:
    @wraps(func)
    def wrapper(*args: CommandParams.args, **kwargs: CommandParams.kwargs) -> CommandReturn:
        try:
            return func(*args, **kwargs)
        except typer.BadParameter:
            raise
        except typer.Exit:
            raise
        except HttpError as exc:
            _render_http_error(exc)
            raise typer.Exit(1) from None
        except AuthError as exc:
            console.print(f"[red]Error:[/red] Authentication failed: {exc}")
            console.print("Run `az login --tenant TENANT_ID` to refresh the Azure CLI session.")
            console.print(
                "Service principals can set AZURE_CLIENT_ID and AZURE_CLIENT_SECRET instead."
            )
            raise typer.Exit(1) from None
        except ConfigError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            console.print("Set the missing keys in the .env file or pass them as options.")
            raise typer.Exit(1) from None
        except EpolicyError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1) from None
        except Exception as exc:
            if os.getenv("EPOLICY_DEBUG"):
                raise
            console.print(f"[red]Error:[/red] Unexpected failure: {exc}")
            console.print("Set EPOLICY_DEBUG=1 for a stack trace.")
            raise typer.Exit(1) from exc

    return wrapper


def load_settings(
    env_file: Path | None, **overrides: object
) -> tuple[EnvFileStore, LinkageSettings]:
    """Load ``env_file`` and apply non-empty command-line overrides."""

    store = EnvFileStore(env_file)
    settings = store.load()
    changes = {key: value for key, value in overrides.items() if value not in (None, "")}
    if changes:
        settings = settings.with_updates(**changes)
    return store, settings


def _provider_for(audience: str, override_env: str, tenant_id: str | None) -> TokenProvider:
    token = os.getenv(override_env)
    if token and token.strip():
        return StaticTokenProvider(token.strip())

    client_id = os.getenv("AZURE_CLIENT_ID")
    client_secret = os.getenv("AZURE_CLIENT_SECRET")
    if client_id and client_secret:
        if not tenant_id:
            raise ConfigError("Missing required configuration: TENANT_ID")
        return AzureADTokenProvider(tenant_id, client_id, audience, client_secret=client_secret)

    return AzureCliTokenProvider(audience, tenant_id=tenant_id)


def resolve_credentials(settings: LinkageSettings) -> tuple[TokenProvider, TokenProvider]:
    """Return ``(admin, arm)`` token providers.

    Resolution order for each audience:

    1. Explicit override via ``EPOLICY_ADMIN_TOKEN`` / ``EPOLICY_ARM_TOKEN``.
    2. MSAL client credentials when ``AZURE_CLIENT_ID`` and ``AZURE_CLIENT_SECRET`` are set.
    3. The signed-in Azure CLI account.
    """

    admin = _provider_for(settings.admin_audience, ADMIN_TOKEN_ENV, settings.tenant_id)
    arm = _provider_for(DEFAULT_ARM_AUDIENCE, ARM_TOKEN_ENV, settings.tenant_id)
    return admin, arm


_STATUS_STYLES = {
    LinkageStatus.LINKED: "green",
    LinkageStatus.UNLINKED: "green",
    LinkageStatus.ALREADY_IN_DESIRED_STATE: "green",
    LinkageStatus.FAILED: "red",
    LinkageStatus.UNKNOWN: "yellow",
}


def render_attempts(attempts: Sequence[LinkOperationAttempt], *, title: str = "Attempts") -> None:
    if not attempts:
        return
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Endpoint")
    table.add_column("API version")
    table.add_column("Body")
    table.add_column("HTTP", justify="right")
    table.add_column("Final")
    table.add_column("Polls", justify="right")
    table.add_column("Error")
    table.add_column("Correlation")
    for index, attempt in enumerate(attempts, start=1):
        error = " ".join(part for part in (attempt.error_code, attempt.error_message) if part)
        table.add_row(
            str(index),
            attempt.endpoint.value,
            attempt.api_version,
            attempt.body_variant.value,
            str(attempt.http_status),
            attempt.final_status.value if attempt.final_status else "-",
            str(attempt.poll_iterations),
            error or "-",
            attempt.correlation_id or "-",
        )
    console.print(table)


def render_outcome(outcome: LinkageOutcome) -> None:
    render_attempts(outcome.attempts)
    style = _STATUS_STYLES[outcome.status]
    line = f"[{style}]{outcome.status.value}[/{style}]"
    if outcome.environment is not None:
        line += f" environment={outcome.environment.id}"
    if outcome.policy is not None:
        line += f" policy={outcome.policy.name}"
    console.print(line)
    if outcome.detail:
        console.print(outcome.detail)


__all__ = [
    "configure_logging",
    "console",
    "handle_cli_errors",
    "load_settings",
    "render_attempts",
    "render_outcome",
    "resolve_credentials",
]
