"""
Remote account gateway protocol.

The reconciliation engine never talks HTTP. It depends on the shape
described by :class:`AccountGateway`, and any object with matching methods
can be handed to the lifecycle controller: the XRPC client in
:mod:`account_spine.gateway.xrpc`, the in-memory fake in
:mod:`account_spine.gateway.memory`, or a test double.

Manifesto:
    - **Structural typing:** Protocols, not base classes
    - **One remote call per method:** The engine decides ordering and
      failure handling, the gateway only performs the call
    - **Typed errors:** Every method raises from
      :mod:`account_spine.core.errors`, never a transport-specific exception

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      AccountGateway                          │
        ├─────────────────────────────────────────────────────────────┤
        │  issue_invite_token(max_uses=1)      -> str                  │
        │  create_account(handle, email, pw, invite) -> CreatedAccount │
        │  get_account_info(identity_key)      -> AccountInfo          │
        │  update_email / update_handle / update_password              │
        │  delete_account(identity_key)                                │
        │  get_profile_document(identity_key)  -> ProfileDocument|None │
        │  put_profile_document(key, record, expected_version) -> str  │
        │  scoped(session_token)               -> AccountGateway       │
        └─────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Retry inside a gateway method
    ✅ DO: Raise TransportError and let the caller decide

    ❌ DON'T: Mutate the shared client's credentials in ``scoped``
    ✅ DO: Return a new gateway object carrying its own credential

Tags:
    protocol, gateway, xrpc, account-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from account_spine.core.secrets import SecretValue

PROFILE_COLLECTION = "app.bsky.actor.profile"
PROFILE_RKEY = "self"
DISPLAY_NAME_KEY = "displayName"


@dataclass(frozen=True)
class CreatedAccount:
    """What the remote returns from a successful create.

    ``session_token`` is the new account's own access token when the remote
    issues one; it is used only for the post-create profile write.
    """

    identity_key: str
    handle: str
    session_token: SecretValue | None = None


@dataclass(frozen=True)
class AccountInfo:
    """Server view of an account's identity fields."""

    identity_key: str
    handle: str
    email: str | None


@dataclass(frozen=True)
class ProfileDocument:
    """A profile record and the version it was read at.

    ``version`` is the content identifier used for optimistic concurrency on
    write.
    """

    record: dict[str, Any] = field(default_factory=dict)
    version: str | None = None

    @property
    def display_name(self) -> str | None:
        value = self.record.get(DISPLAY_NAME_KEY)
        return value if value else None


@runtime_checkable
class AccountGateway(Protocol):
    """Operations the reconciliation engine needs from the remote service."""

    def issue_invite_token(self, max_uses: int = 1) -> str:
        """Create an invite token valid for ``max_uses`` account creations."""
        ...

    def create_account(
        self, handle: str, email: str, password: str, invite_token: str
    ) -> CreatedAccount:
        """Create the account. Not idempotent."""
        ...

    def get_account_info(self, identity_key: str) -> AccountInfo:
        """Raises AccountNotFoundError when the account does not exist."""
        ...

    def update_email(self, identity_key: str, email: str) -> None: ...

    def update_handle(self, identity_key: str, handle: str) -> None: ...

    def update_password(self, identity_key: str, password: str) -> None: ...

    def delete_account(self, identity_key: str) -> None: ...

    def get_profile_document(self, identity_key: str) -> ProfileDocument | None:
        """Return None when the account has no profile document yet."""
        ...

    def put_profile_document(
        self, identity_key: str, record: dict[str, Any], expected_version: str | None
    ) -> str:
        """Write the profile; raises VersionConflictError on a stale version."""
        ...

    def scoped(self, session_token: SecretValue) -> AccountGateway:
        """Derived gateway authenticated with ``session_token``."""
        ...


__all__ = [
    "PROFILE_COLLECTION",
    "PROFILE_RKEY",
    "DISPLAY_NAME_KEY",
    "CreatedAccount",
    "AccountInfo",
    "ProfileDocument",
    "AccountGateway",
]
