"""Pydantic models for Account YAML documents.

Desired configuration is declared in YAML and validated before it reaches
the engine. A file may hold several documents separated by ``---``; every
document declares one account, keyed by ``metadata.name``.

Usage::

    from account_spine.config import AccountSpec, load_account_specs

    spec = AccountSpec.from_yaml(yaml_content)
    desired = spec.to_desired()

    specs = load_account_specs("accounts.yaml")

Example YAML::

    apiVersion: account-spine/v1
    kind: Account
    metadata:
      name: alice
    spec:
      handle: alice.example
      email: a@example.com
      password: ""          # optional, generated when empty
      displayName: Alice    # optional

Tags:
    account-spine, config, yaml, declarative
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from account_spine.core.errors import SpecLoadError
from account_spine.reconcile.models import DesiredConfiguration

API_VERSION = "account-spine/v1"


class AccountMetadataSpec(BaseModel):
    """Metadata section of an account document."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Resource name used as the state key")
    description: str = Field(default="", description="Human-readable description")


class AccountSpecSection(BaseModel):
    """The 'spec' section: the account's desired fields."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    handle: str = Field(..., min_length=1, description="Unique handle, e.g. alice.example")
    email: str = Field(..., min_length=3, description="Account email address")
    password: SecretStr | None = Field(default=None, description="Initial password")
    display_name: str | None = Field(default=None, alias="displayName")

    @field_validator("handle")
    @classmethod
    def validate_handle(cls, v: str) -> str:
        if any(ch.isspace() for ch in v) or "." not in v:
            raise ValueError(f"Handle {v!r} must be a domain-like name without spaces")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError(f"Email {v!r} is missing '@'")
        return v


class AccountSpec(BaseModel):
    """Complete YAML account document."""

    model_config = ConfigDict(extra="forbid")

    apiVersion: Literal["account-spine/v1"] = Field(default=API_VERSION)
    kind: Literal["Account"] = Field(default="Account")
    metadata: AccountMetadataSpec
    spec: AccountSpecSection

    @property
    def name(self) -> str:
        return self.metadata.name

    def to_desired(self) -> DesiredConfiguration:
        password = self.spec.password.get_secret_value() if self.spec.password is not None else None
        return DesiredConfiguration(
            handle=self.spec.handle,
            email=self.spec.email,
            password=password or None,
            display_name=self.spec.display_name or None,
        )

    @classmethod
    def from_dict(cls, data: Any) -> AccountSpec:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SpecLoadError(f"Invalid account document: {e}", cause=e) from e

    @classmethod
    def from_yaml(cls, yaml_content: str) -> AccountSpec:
        """Parse and validate a single YAML document.

        Raises:
            SpecLoadError: YAML is malformed or does not match the schema.
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise SpecLoadError(f"Invalid YAML: {e}", cause=e) from e
        return cls.from_dict(data)

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> AccountSpec:
        return cls.from_yaml(_read(path))


def _read(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Cannot read {path}: {e}", cause=e).with_context(path=str(path)) from e


def load_account_specs(path: str | Path) -> list[AccountSpec]:
    """Load every account document in a (possibly multi-document) YAML file.

    Empty documents are skipped. Resource names must be unique within the
    file.

    Raises:
        SpecLoadError: unreadable file, malformed YAML, schema violation or
            duplicate resource names.
    """
    content = _read(path)
    try:
        documents = [d for d in yaml.safe_load_all(content) if d is not None]
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}", cause=e).with_context(path=str(path)) from e

    if not documents:
        raise SpecLoadError(f"No account documents in {path}").with_context(path=str(path))

    specs = [AccountSpec.from_dict(d) for d in documents]
    names = [s.name for s in specs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise SpecLoadError(f"Duplicate account names in {path}: {duplicates}")
    return specs


__all__ = [
    "API_VERSION",
    "AccountMetadataSpec",
    "AccountSpecSection",
    "AccountSpec",
    "load_account_specs",
]
