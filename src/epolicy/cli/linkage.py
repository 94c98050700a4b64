"""CLI commands for linking and unlinking the network injection policy."""

from __future__ import annotations

from pathlib import Path

import typer

from ..config import EnvFileStore, LinkageSettings
from ..linkage.orchestrator import LinkageOrchestrator
from ..models.linkage import BodyVariant, LinkageOutcome, LinkAction
from .common import (
    console,
    handle_cli_errors,
    load_settings,
    render_attempts,
    render_outcome,
    resolve_credentials,
)

ENV_FILE = typer.Option(None, "--env-file", help="Path to the .env file (defaults to ./.env).")
ENVIRONMENT_NAME = typer.Option(
    None, "--environment-name", help="Power Platform environment display name."
)
ENVIRONMENT_ID = typer.Option(
    None, "--environment-id", help="Power Platform environment id (wins over the name)."
)
POLICY_NAME = typer.Option(None, "--policy-name", help="Enterprise policy resource name.")
RESOURCE_GROUP = typer.Option(None, "--resource-group", help="Resource group of the policy.")
SUBSCRIPTION_ID = typer.Option(None, "--subscription-id", help="Azure subscription id.")
TIMEOUT = typer.Option(None, "--timeout", min=0, help="Polling timeout in seconds.")
INTERVAL = typer.Option(None, "--interval", min=0, help="Seconds between status polls.")
EXHAUSTIVE = typer.Option(
    False,
    "--exhaustive",
    help="Try every api-version and body variant instead of a single request.",
)


def _settings(
    env_file: Path | None,
    *,
    environment_name: str | None,
    environment_id: str | None,
    policy_name: str | None,
    resource_group: str | None,
    subscription_id: str | None,
    timeout: float | None = None,
    interval: float | None = None,
) -> tuple[EnvFileStore, LinkageSettings]:
    return load_settings(
        env_file,
        environment_name=environment_name,
        environment_id=environment_id,
        policy_name=policy_name,
        resource_group=resource_group,
        subscription_id=subscription_id,
        poll_timeout=timeout,
        poll_interval=interval,
    )


def _build_orchestrator(settings: LinkageSettings) -> LinkageOrchestrator:
    admin, arm = resolve_credentials(settings)
    return LinkageOrchestrator.from_settings(settings, admin, arm)


def _conclude(store: EnvFileStore, outcome: LinkageOutcome) -> None:
    render_outcome(outcome)
    if outcome.succeeded and outcome.settings is not None:
        store.save(outcome.settings)
        console.print(f"[cyan]Saved[/cyan] {store.path}")
    if outcome.exit_code:
        raise typer.Exit(outcome.exit_code)


@handle_cli_errors
def link(
    env_file: Path | None = ENV_FILE,
    environment_name: str | None = ENVIRONMENT_NAME,
    environment_id: str | None = ENVIRONMENT_ID,
    policy_name: str | None = POLICY_NAME,
    resource_group: str | None = RESOURCE_GROUP,
    subscription_id: str | None = SUBSCRIPTION_ID,
    timeout: float | None = TIMEOUT,
    interval: float | None = INTERVAL,
    exhaustive: bool = EXHAUSTIVE,
) -> None:
    """Link the enterprise policy to the environment."""

    store, settings = _settings(
        env_file,
        environment_name=environment_name,
        environment_id=environment_id,
        policy_name=policy_name,
        resource_group=resource_group,
        subscription_id=subscription_id,
        timeout=timeout,
        interval=interval,
    )
    with _build_orchestrator(settings) as orchestrator:
        outcome = orchestrator.ensure_linked(settings, exhaustive=exhaustive)
    _conclude(store, outcome)


@handle_cli_errors
def unlink(
    env_file: Path | None = ENV_FILE,
    environment_name: str | None = ENVIRONMENT_NAME,
    environment_id: str | None = ENVIRONMENT_ID,
    policy_name: str | None = POLICY_NAME,
    resource_group: str | None = RESOURCE_GROUP,
    subscription_id: str | None = SUBSCRIPTION_ID,
    timeout: float | None = TIMEOUT,
    interval: float | None = INTERVAL,
    exhaustive: bool = EXHAUSTIVE,
    delete_policy: bool = typer.Option(
        False, "--delete-policy", help="Delete the enterprise policy resource once unlinked."
    ),
) -> None:
    """Unlink the enterprise policy from the environment."""

    store, settings = _settings(
        env_file,
        environment_name=environment_name,
        environment_id=environment_id,
        policy_name=policy_name,
        resource_group=resource_group,
        subscription_id=subscription_id,
        timeout=timeout,
        interval=interval,
    )
    with _build_orchestrator(settings) as orchestrator:
        outcome = orchestrator.ensure_unlinked(
            settings, exhaustive=exhaustive, delete_policy=delete_policy
        )
    _conclude(store, outcome)


@handle_cli_errors
def status(
    env_file: Path | None = ENV_FILE,
    environment_name: str | None = ENVIRONMENT_NAME,
    environment_id: str | None = ENVIRONMENT_ID,
    policy_name: str | None = POLICY_NAME,
    resource_group: str | None = RESOURCE_GROUP,
    subscription_id: str | None = SUBSCRIPTION_ID,
) -> None:
    """Show the enterprise policies currently linked to the environment."""

    _, settings = _settings(
        env_file,
        environment_name=environment_name,
        environment_id=environment_id,
        policy_name=policy_name,
        resource_group=resource_group,
        subscription_id=subscription_id,
    )
    with _build_orchestrator(settings) as orchestrator:
        snapshot = orchestrator.inspect(settings)
    name = snapshot.environment.display_name or "-"
    console.print(f"[bold]{name}[/bold]  id={snapshot.environment.id}")
    if snapshot.linkage.is_empty:
        console.print("[yellow]No enterprise policy linked.[/yellow]")
    for linked in snapshot.linkage.linked_ids:
        console.print(f"linked: {linked}")
    if snapshot.policy is not None:
        state = "linked" if snapshot.policy_linked else "not linked"
        console.print(f"policy {snapshot.policy.name}: {state}")


@handle_cli_errors
def diagnose(
    env_file: Path | None = ENV_FILE,
    environment_name: str | None = ENVIRONMENT_NAME,
    environment_id: str | None = ENVIRONMENT_ID,
    policy_name: str | None = POLICY_NAME,
    resource_group: str | None = RESOURCE_GROUP,
    subscription_id: str | None = SUBSCRIPTION_ID,
    timeout: float | None = TIMEOUT,
    interval: float | None = INTERVAL,
    actions: list[LinkAction] | None = typer.Option(
        None, "--action", help="Action(s) to try (repeatable; defaults to unlink)."
    ),
    api_versions: list[str] | None = typer.Option(
        None, "--api-version", help="API version(s) to try (repeatable)."
    ),
    body_variants: list[BodyVariant] | None = typer.Option(
        None, "--body-variant", help="Body variant(s) to try (repeatable)."
    ),
) -> None:
    """Run every request shape and print what each one returned."""

    _, settings = _settings(
        env_file,
        environment_name=environment_name,
        environment_id=environment_id,
        policy_name=policy_name,
        resource_group=resource_group,
        subscription_id=subscription_id,
        timeout=timeout,
        interval=interval,
    )
    with _build_orchestrator(settings) as orchestrator:
        attempts = orchestrator.diagnose(
            settings,
            actions or [LinkAction.UNLINK],
            api_versions=api_versions or None,
            body_variants=body_variants or None,
        )
    render_attempts(attempts, title="Diagnostic attempts")
    succeeded = sum(1 for attempt in attempts if attempt.succeeded)
    console.print(f"{succeeded} of {len(attempts)} attempt(s) succeeded")


__all__ = ["diagnose", "link", "status", "unlink"]
