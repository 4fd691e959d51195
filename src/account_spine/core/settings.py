"""Environment-driven settings for account-spine.

``AccountSpineSettings`` gathers everything the CLI and gateway factory need:
where the PDS lives, which credentials to use, how to log, where local state
is kept, and the field mutability policy. Values come from ``ACCOUNT_SPINE_*``
environment variables or a ``.env`` file.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    Secrets are held as ``SecretStr`` so they never show up in a settings
    dump or a traceback.

Examples:
    >>> import os
    >>> os.environ["ACCOUNT_SPINE_PDS_HOST"] = "https://pds.example.com"
    >>> AccountSpineSettings().pds_host
    'https://pds.example.com'

Tags:
    settings, configuration, pydantic, environment, account-spine
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RESTRICTED_SCOPES = ("com.atproto.appPass", "com.atproto.appPassPrivileged")


class AccountSpineSettings(BaseSettings):
    """Settings shared by the CLI, gateway factory and lifecycle controller.

    Fields
    ──────
    pds_host            : Base URL of the PDS (``https://pds.example.com``)
    admin_password      : PDS admin password, required for account management
    access_token        : Caller session token checked by the precondition gate
    session_identifier  : Handle/email used to obtain ``access_token`` when unset
    session_password    : Password used with ``session_identifier``
    timeout_seconds     : Per-request timeout for the HTTP gateway
    log_level           : Structlog log level
    json_logs           : Force JSON (True) or console (False) logs; None = auto
    state_file          : JSON file holding observed state between runs
    handle_mutable      : Allow handle changes after creation
    email_mutable       : Allow email changes after creation
    restricted_scopes   : Token scopes refused for create/delete
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCOUNT_SPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Remote ───────────────────────────────────────────────────
    pds_host: str = "http://localhost:2583"
    admin_password: SecretStr | None = None
    access_token: SecretStr | None = None
    session_identifier: str | None = None
    session_password: SecretStr | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── State ────────────────────────────────────────────────────
    state_file: Path = Field(
        default_factory=lambda: Path(".account-spine") / "state.json",
        description="Observed state persisted between reconciliation cycles",
    )

    # ── Policy ───────────────────────────────────────────────────
    handle_mutable: bool = True
    email_mutable: bool = True
    restricted_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_RESTRICTED_SCOPES))

    @field_validator("pds_host")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


def get_settings(**overrides) -> AccountSpineSettings:
    """Build settings from the environment, applying explicit overrides."""
    return AccountSpineSettings(**{k: v for k, v in overrides.items() if v is not None})


__all__ = [
    "DEFAULT_RESTRICTED_SCOPES",
    "AccountSpineSettings",
    "get_settings",
]
