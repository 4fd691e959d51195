"""
In-memory account gateway.

Behaves like a PDS for the operations the engine uses: invite codes are
single-use, handles are unique case-insensitively, deleted accounts are gone,
and profile writes are checked against the version they were read at.
Failures can be injected per method so partial-failure paths are easy to
exercise.

Used by the test suite and by ``account-spine --backend memory``.

Examples:
    >>> gw = InMemoryAccountGateway()
    >>> code = gw.issue_invite_token()
    >>> created = gw.create_account("alice.example", "a@example.com", "pw", code)
    >>> gw.get_account_info(created.identity_key).handle
    'alice.example'

    Injecting a failure:

    >>> gw.fail_on("update_handle", ServiceRejectedError("taken"))
    >>> gw.update_handle(created.identity_key, "bob.example")
    Traceback (most recent call last):
    ...
    ServiceRejectedError: taken
"""

from __future__ import annotations

import copy
import secrets
from dataclasses import dataclass, field
from typing import Any

from account_spine.core.errors import (
    AccountNotFoundError,
    ServiceRejectedError,
    VersionConflictError,
)
from account_spine.core.logging import get_logger
from account_spine.core.secrets import SecretValue
from account_spine.gateway.protocol import (
    AccountInfo,
    CreatedAccount,
    ProfileDocument,
)

logger = get_logger(__name__)


@dataclass
class _StoredAccount:
    identity_key: str
    handle: str
    email: str
    password: str


@dataclass
class _MemoryStore:
    """State shared between a gateway and every gateway scoped from it."""

    accounts: dict[str, _StoredAccount] = field(default_factory=dict)
    invites: dict[str, int] = field(default_factory=dict)
    profiles: dict[str, ProfileDocument] = field(default_factory=dict)
    failures: dict[str, list[Exception]] = field(default_factory=dict)
    calls: list[tuple[str, str | None]] = field(default_factory=list)
    version_counter: int = 0


class InMemoryAccountGateway:
    """Process-local stand-in for the remote account service."""

    def __init__(
        self,
        *,
        session_token: SecretValue | None = None,
        _store: _MemoryStore | None = None,
    ):
        self._store = _store or _MemoryStore()
        self.session_token = session_token

    # ------------------------------------------------------------------ #
    # Test hooks
    # ------------------------------------------------------------------ #

    def fail_on(self, method: str, error: Exception, *, times: int = 1) -> None:
        """Make the next ``times`` calls to ``method`` raise ``error``."""
        self._store.failures.setdefault(method, []).extend([error] * times)

    @property
    def calls(self) -> list[tuple[str, str | None]]:
        """(method, identity_key) for every call made, in order."""
        return self._store.calls

    def call_names(self) -> list[str]:
        return [name for name, _ in self._store.calls]

    def password_of(self, identity_key: str) -> str:
        return self._account(identity_key).password

    def _enter(self, method: str, identity_key: str | None = None) -> None:
        self._store.calls.append((method, identity_key))
        pending = self._store.failures.get(method)
        if pending:
            raise pending.pop(0)

    def _account(self, identity_key: str) -> _StoredAccount:
        account = self._store.accounts.get(identity_key)
        if account is None:
            raise AccountNotFoundError(
                f"Account not found: {identity_key}"
            ).with_context(identity_key=identity_key)
        return account

    def _handle_taken(self, handle: str, *, excluding: str | None = None) -> bool:
        wanted = handle.lower()
        return any(
            a.handle.lower() == wanted and a.identity_key != excluding
            for a in self._store.accounts.values()
        )

    # ------------------------------------------------------------------ #
    # AccountGateway
    # ------------------------------------------------------------------ #

    def issue_invite_token(self, max_uses: int = 1) -> str:
        self._enter("issue_invite_token")
        code = f"memory-invite-{secrets.token_hex(6)}"
        self._store.invites[code] = max_uses
        return code

    def create_account(
        self, handle: str, email: str, password: str, invite_token: str
    ) -> CreatedAccount:
        self._enter("create_account")

        remaining = self._store.invites.get(invite_token, 0)
        if remaining < 1:
            raise ServiceRejectedError("Invalid invite code", xrpc_error="InvalidInviteCode")
        if self._handle_taken(handle):
            raise ServiceRejectedError(
                f"Handle already taken: {handle}", xrpc_error="HandleNotAvailable"
            )
        if "@" not in email:
            raise ServiceRejectedError(f"Invalid email: {email}", xrpc_error="InvalidEmail")

        self._store.invites[invite_token] = remaining - 1
        identity_key = f"did:plc:{secrets.token_hex(12)}"
        self._store.accounts[identity_key] = _StoredAccount(
            identity_key=identity_key,
            handle=handle,
            email=email,
            password=password,
        )
        logger.debug("memory_account_created", identity_key=identity_key, handle=handle)
        return CreatedAccount(
            identity_key=identity_key,
            handle=handle,
            session_token=SecretValue(f"memory-session-{identity_key}"),
        )

    def get_account_info(self, identity_key: str) -> AccountInfo:
        self._enter("get_account_info", identity_key)
        account = self._account(identity_key)
        return AccountInfo(
            identity_key=account.identity_key,
            handle=account.handle,
            email=account.email,
        )

    def update_email(self, identity_key: str, email: str) -> None:
        self._enter("update_email", identity_key)
        account = self._account(identity_key)
        if "@" not in email:
            raise ServiceRejectedError(f"Invalid email: {email}", xrpc_error="InvalidEmail")
        account.email = email

    def update_handle(self, identity_key: str, handle: str) -> None:
        self._enter("update_handle", identity_key)
        account = self._account(identity_key)
        if self._handle_taken(handle, excluding=identity_key):
            raise ServiceRejectedError(
                f"Handle already taken: {handle}", xrpc_error="HandleNotAvailable"
            )
        account.handle = handle

    def update_password(self, identity_key: str, password: str) -> None:
        self._enter("update_password", identity_key)
        self._account(identity_key).password = password

    def delete_account(self, identity_key: str) -> None:
        self._enter("delete_account", identity_key)
        self._account(identity_key)
        del self._store.accounts[identity_key]
        self._store.profiles.pop(identity_key, None)

    def get_profile_document(self, identity_key: str) -> ProfileDocument | None:
        self._enter("get_profile_document", identity_key)
        self._account(identity_key)
        doc = self._store.profiles.get(identity_key)
        if doc is None:
            return None
        return ProfileDocument(record=copy.deepcopy(doc.record), version=doc.version)

    def put_profile_document(
        self, identity_key: str, record: dict[str, Any], expected_version: str | None
    ) -> str:
        self._enter("put_profile_document", identity_key)
        self._account(identity_key)

        current = self._store.profiles.get(identity_key)
        current_version = current.version if current else None
        if current_version != expected_version:
            raise VersionConflictError(
                f"Profile changed since read (expected {expected_version}, found {current_version})"
            ).with_context(identity_key=identity_key)

        self._store.version_counter += 1
        version = f"v{self._store.version_counter}"
        self._store.profiles[identity_key] = ProfileDocument(
            record=copy.deepcopy(record), version=version
        )
        return version

    def scoped(self, session_token: SecretValue) -> InMemoryAccountGateway:
        return InMemoryAccountGateway(session_token=session_token, _store=self._store)


__all__ = ["InMemoryAccountGateway"]
