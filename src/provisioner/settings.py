"""Provisioner configuration settings.

ProvisionerSettings is the single configuration object the surrounding
CLI or service builds once and hands to providers, retry policies and
steps. It is intentionally a plain dataclass (not env-coupled) so tests
can inject config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


class SettingsError(ValueError):
    """Raised when an environment variable cannot be parsed."""


@dataclass(frozen=True, slots=True)
class ProvisionerSettings:
    """Configuration for provisioning runs.

    All fields have sensible defaults for local development.
    Non-local environments must supply provider_base_url and
    provider_token.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Resource provider ──────────────────────────────────────────
    provider_base_url: str = ""
    """Base URL of the resource gateway (e.g. https://gateway.internal)."""

    provider_token: str = ""
    """Bearer token for provider calls. Never log this."""

    provider_call_timeout_seconds: float = 30.0
    """Upper bound on any single provider call."""

    # ── Connect retry ──────────────────────────────────────────────
    connect_max_attempts: int = 5
    connect_backoff_seconds: float = 1.0
    """Delay unit; the wait after failed attempt N is N * this value."""

    connect_attempt_timeout_seconds: float = 10.0

    # ── SSH ────────────────────────────────────────────────────────
    ssh_username: str = "ubuntu"
    ssh_port: int = 22

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.connect_max_attempts < 1:
            errors.append("connect_max_attempts must be >= 1")
        if self.connect_backoff_seconds < 0:
            errors.append("connect_backoff_seconds must be >= 0")
        if self.provider_call_timeout_seconds <= 0:
            errors.append("provider_call_timeout_seconds must be > 0")
        if self.connect_attempt_timeout_seconds <= 0:
            errors.append("connect_attempt_timeout_seconds must be > 0")
        if not 0 < self.ssh_port < 65536:
            errors.append(f"ssh_port out of range: {self.ssh_port}")
        if self.log_format not in ("json", "console"):
            errors.append(f"log_format must be json or console, got {self.log_format!r}")
        if not self.is_local:
            if not self.provider_base_url:
                errors.append(f"{self.environment}: provider_base_url is required")
            if not self.provider_token:
                errors.append(f"{self.environment}: provider_token is required")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ProvisionerSettings:
        """Build settings from PROVISIONER_* environment variables.

        This is a convenience factory for production use. Tests should
        construct ProvisionerSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        defaults = cls()
        return cls(
            environment=env.get("PROVISIONER_ENVIRONMENT", defaults.environment),
            provider_base_url=env.get("PROVISIONER_PROVIDER_URL", ""),
            provider_token=env.get("PROVISIONER_PROVIDER_TOKEN", ""),
            provider_call_timeout_seconds=_float(
                env, "PROVISIONER_PROVIDER_TIMEOUT", defaults.provider_call_timeout_seconds,
            ),
            connect_max_attempts=_int(
                env, "PROVISIONER_CONNECT_MAX_ATTEMPTS", defaults.connect_max_attempts,
            ),
            connect_backoff_seconds=_float(
                env, "PROVISIONER_CONNECT_BACKOFF", defaults.connect_backoff_seconds,
            ),
            connect_attempt_timeout_seconds=_float(
                env, "PROVISIONER_CONNECT_TIMEOUT", defaults.connect_attempt_timeout_seconds,
            ),
            ssh_username=env.get("PROVISIONER_SSH_USERNAME", defaults.ssh_username),
            ssh_port=_int(env, "PROVISIONER_SSH_PORT", defaults.ssh_port),
            log_level=env.get("PROVISIONER_LOG_LEVEL", defaults.log_level),
            log_format=env.get("PROVISIONER_LOG_FORMAT", defaults.log_format),
        )


def _int(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer, got {raw!r}") from exc


def _float(env: dict[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be a number, got {raw!r}") from exc
