"""
Ordered, failure-tolerant application of account mutations.

The remote service has no transactions: every field is changed by its own
call and each call can fail on its own. The sequencer applies the diff's
mutations strictly in order and records one outcome per field in a
:class:`~account_spine.reconcile.models.MutationRecord`. A failed field is
recorded and the sequence moves on; the caller sees every failure of the
cycle at once.

Creation is different. Invite issuance and the create call itself are
fatal on failure, because there is no half-created account to reconcile.
Only the profile step that follows a successful create is tolerated.

Architecture:
    ::

        apply(identity_key, mutations)
            for mutation in mutations:          (email, handle, password, display name)
                ctx cancelled?  ──yes──▶ record rest as skipped, stop
                local_only?     ──yes──▶ record Ok, no remote call
                gateway call    ──ok───▶ record Ok(value)
                                ──err──▶ record Err(error), continue

        create(desired, credential)
            issue_invite_token(max_uses=1)       fatal on error
            create_account(...)                  fatal on error, at most once
            display name?  ──▶ profile update    recorded, never unwinds the account

Guardrails:
    ❌ DON'T: Catch broad exceptions around gateway calls
    ✅ DO: Record RemoteError subclasses; let programming errors propagate

    ❌ DON'T: Call create_account twice from one sequencer
    ✅ DO: Build a new cycle (and sequencer) to try again

Tags:
    reconciliation, partial-failure, sequencing, account-spine
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from account_spine.core.errors import AccountStateError, RemoteError
from account_spine.core.logging import get_logger
from account_spine.core.secrets import Credential
from account_spine.gateway.protocol import (
    DISPLAY_NAME_KEY,
    AccountGateway,
    CreatedAccount,
    ProfileDocument,
)
from account_spine.reconcile.context import ReconcileContext
from account_spine.reconcile.models import (
    AccountField,
    DesiredConfiguration,
    Mutation,
    MutationRecord,
)

logger = get_logger(__name__)


def update_display_name(gateway: AccountGateway, identity_key: str, display_name: str | None) -> str:
    """Set or clear ``displayName`` on the profile document.

    Every other field of the document is preserved. The write is checked
    against the version that was read; a concurrent change raises
    VersionConflictError and is not retried.
    """
    document = gateway.get_profile_document(identity_key) or ProfileDocument()
    record = dict(document.record)
    if display_name:
        record[DISPLAY_NAME_KEY] = display_name
    else:
        record.pop(DISPLAY_NAME_KEY, None)
    return gateway.put_profile_document(identity_key, record, document.version)


@dataclass
class CreationOutcome:
    """Result of a successful create call plus the follow-up profile step."""

    created: CreatedAccount
    record: MutationRecord = field(default_factory=MutationRecord)


class MutationSequencer:
    """Applies one cycle's mutations through a gateway."""

    def __init__(self, gateway: AccountGateway, ctx: ReconcileContext | None = None):
        self.gateway = gateway
        self.ctx = ctx or ReconcileContext()
        self._create_attempted = False

    def _operation(self, target: AccountField) -> Callable[[str, str | None], object]:
        if target is AccountField.EMAIL:
            return self.gateway.update_email
        if target is AccountField.HANDLE:
            return self.gateway.update_handle
        if target is AccountField.PASSWORD:
            return self.gateway.update_password
        return lambda key, value: update_display_name(self.gateway, key, value)

    def apply(self, identity_key: str, mutations: Sequence[Mutation]) -> MutationRecord:
        """Apply ``mutations`` in order, continuing past per-field failures."""
        record = MutationRecord()

        for index, mutation in enumerate(mutations):
            if self.ctx.cancelled:
                for remaining in mutations[index:]:
                    record.record_skipped(remaining.target)
                record.cancelled = True
                logger.warning(
                    "reconcile_cancelled",
                    identity_key=identity_key,
                    skipped=[m.target.value for m in mutations[index:]],
                )
                break

            if mutation.local_only:
                record.record_applied(mutation.target, mutation.value)
                logger.debug("local_field_applied", field_name=mutation.target.value)
                continue

            try:
                self._operation(mutation.target)(identity_key, mutation.value)
            except RemoteError as e:
                e.with_context(
                    field_name=mutation.target.value,
                    identity_key=identity_key,
                    operation="update",
                )
                record.record_failed(mutation.target, e)
                logger.warning(
                    "field_update_failed",
                    identity_key=identity_key,
                    field_name=mutation.target.value,
                    error=e.to_dict(),
                )
            else:
                record.record_applied(mutation.target, mutation.value)
                logger.info(
                    "field_updated",
                    identity_key=identity_key,
                    field_name=mutation.target.value,
                )

        return record

    def create(self, desired: DesiredConfiguration, credential: Credential) -> CreationOutcome:
        """Issue an invite, create the account, then set the display name.

        Raises:
            RemoteError: invite issuance or account creation failed.
            ReconcileCancelledError: cancelled before the create call.
            AccountStateError: this sequencer already attempted a create.
        """
        if self._create_attempted:
            raise AccountStateError("Account creation was already attempted in this cycle")

        self.ctx.raise_if_cancelled()
        try:
            invite_token = self.gateway.issue_invite_token(max_uses=1)
        except RemoteError as e:
            raise e.with_context(operation="create", step="issue_invite_token")

        self.ctx.raise_if_cancelled()
        self._create_attempted = True
        try:
            created = self.gateway.create_account(
                handle=desired.handle,
                email=desired.email,
                password=credential.secret.get_secret(),
                invite_token=invite_token,
            )
        except RemoteError as e:
            raise e.with_context(operation="create", step="create_account")

        handle = created.handle or desired.handle
        logger.info("account_created", identity_key=created.identity_key, handle=handle)

        outcome = CreationOutcome(created=created)
        outcome.record.record_applied(AccountField.EMAIL, desired.email)
        outcome.record.record_applied(AccountField.HANDLE, handle)
        outcome.record.record_applied(
            AccountField.PASSWORD,
            None if credential.generated else credential.secret.get_secret(),
        )

        if desired.display_name:
            self._set_initial_profile(created, desired.display_name, outcome.record)
        return outcome

    def _set_initial_profile(
        self, created: CreatedAccount, display_name: str, record: MutationRecord
    ) -> None:
        if self.ctx.cancelled:
            record.record_skipped(AccountField.DISPLAY_NAME)
            record.cancelled = True
            return

        # Profile writes need the new account's own session.
        gateway = (
            self.gateway.scoped(created.session_token)
            if created.session_token is not None
            else self.gateway
        )
        try:
            update_display_name(gateway, created.identity_key, display_name)
        except RemoteError as e:
            e.with_context(
                field_name=AccountField.DISPLAY_NAME.value,
                identity_key=created.identity_key,
                operation="create",
            )
            record.record_failed(AccountField.DISPLAY_NAME, e)
            logger.warning(
                "profile_update_failed",
                identity_key=created.identity_key,
                error=e.to_dict(),
            )
        else:
            record.record_applied(AccountField.DISPLAY_NAME, display_name)


__all__ = [
    "update_display_name",
    "CreationOutcome",
    "MutationSequencer",
]
