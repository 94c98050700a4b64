"""Flat ``KEY=value`` configuration store shared with the deployment scripts."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path

from dotenv import dotenv_values, set_key

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"

DEFAULT_ADMIN_BASE = "https://api.bap.microsoft.com/providers/Microsoft.BusinessAppPlatform"
DEFAULT_ADMIN_AUDIENCE = "https://service.powerapps.com/"
DEFAULT_ARM_BASE = "https://management.azure.com"
DEFAULT_ARM_AUDIENCE = "https://management.azure.com/"
DEFAULT_POLL_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 10.0

# Settings attribute -> configuration key.
_KEYS: dict[str, str] = {
    "tenant_id": "TENANT_ID",
    "subscription_id": "AZURE_SUBSCRIPTION_ID",
    "resource_group": "RESOURCE_GROUP",
    "policy_name": "ENTERPRISE_POLICY_NAME",
    "policy_system_id": "ENTERPRISE_POLICY_SYSTEM_ID",
    "environment_id": "POWER_PLATFORM_ENVIRONMENT_ID",
    "environment_name": "POWER_PLATFORM_ENVIRONMENT_NAME",
    "admin_base": "POWER_PLATFORM_ADMIN_BASE",
    "admin_audience": "POWER_PLATFORM_ADMIN_AUDIENCE",
    "poll_timeout": "EPOLICY_POLL_TIMEOUT",
    "poll_interval": "EPOLICY_POLL_INTERVAL",
}

# Keys written back after a successful run.
PERSISTED_FIELDS = ("environment_id", "policy_system_id")


@dataclass(frozen=True)
class LinkageSettings:
    """Inputs consumed by a linkage run.

    Instances are immutable; a run returns an updated copy through
    :meth:`with_updates` rather than mutating shared state.
    """

    tenant_id: str | None = None
    subscription_id: str | None = None
    resource_group: str | None = None
    policy_name: str | None = None
    policy_system_id: str | None = None
    environment_id: str | None = None
    environment_name: str | None = None
    admin_base: str = DEFAULT_ADMIN_BASE
    admin_audience: str = DEFAULT_ADMIN_AUDIENCE
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_mapping(cls, values: Mapping[str, str | None]) -> LinkageSettings:
        kwargs: dict[str, object] = {}
        for attr, key in _KEYS.items():
            raw = values.get(key)
            if raw is None or raw == "":
                continue
            if attr in ("poll_timeout", "poll_interval"):
                try:
                    kwargs[attr] = float(raw)
                except ValueError as exc:
                    raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
            else:
                kwargs[attr] = raw.strip()
        return cls(**kwargs)  # type: ignore[arg-type]

    @property
    def resource_scope(self) -> str:
        """ARM scope of the resource group holding the enterprise policy."""

        self.require("subscription_id", "resource_group")
        return f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"

    def require(self, *names: str) -> None:
        """Raise :class:`ConfigError` listing every missing setting in ``names``."""

        missing = [_KEYS[name] for name in names if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

    def with_updates(self, **changes: object) -> LinkageSettings:
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(self, **changes)  # type: ignore[arg-type]

    def as_env(self, names: Iterable[str] | None = None) -> dict[str, str]:
        selected = names if names is not None else _KEYS.keys()
        result: dict[str, str] = {}
        for name in selected:
            value = getattr(self, name)
            if value is not None and value != "":
                result[_KEYS[name]] = str(value)
        return result


class EnvFileStore:
    """Read and rewrite the ``.env`` file produced by the provisioning scripts.

    Values from the process environment take precedence over the file so a
    single run can be redirected without editing it.
    """

    def __init__(self, path: str | Path | None = None, *, use_environ: bool = True) -> None:
        self.path = Path(path or DEFAULT_ENV_FILE)
        self._use_environ = use_environ

    def load(self) -> LinkageSettings:
        values: dict[str, str | None] = {}
        if self.path.exists():
            try:
                values.update(dotenv_values(self.path))
            except OSError as exc:
                raise ConfigError(f"Unable to read {self.path}: {exc}") from exc
            logger.info("Loaded configuration from %s", self.path)
        else:
            logger.warning("Configuration file %s not found; using environment only", self.path)
        if self._use_environ:
            for key in _KEYS.values():
                override = os.getenv(key)
                if override:
                    values[key] = override
        return LinkageSettings.from_mapping(values)

    def save(self, settings: LinkageSettings, names: Iterable[str] = PERSISTED_FIELDS) -> None:
        """Write ``names`` from ``settings`` back to the file, keeping other lines."""

        if not self.path.exists():
            self.path.touch()
        for key, value in settings.as_env(names).items():
            set_key(str(self.path), key, value, quote_mode="never")
        logger.info("Updated %s", self.path)


__all__ = [
    "DEFAULT_ADMIN_AUDIENCE",
    "DEFAULT_ADMIN_BASE",
    "DEFAULT_ARM_AUDIENCE",
    "DEFAULT_ARM_BASE",
    "DEFAULT_ENV_FILE",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_POLL_TIMEOUT",
    "EnvFileStore",
    "LinkageSettings",
    "PERSISTED_FIELDS",
]
