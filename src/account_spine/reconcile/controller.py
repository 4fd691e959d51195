"""
Lifecycle controller for one declared account.

Orchestrates the gate, diff, sequencer and committer for each lifecycle
call and translates every outcome into a :class:`LifecycleResult`: the
state the host must persist, the resulting phase, and the caller-facing
diagnostics. Remote and gate failures never escape as exceptions; only
programming errors propagate.

Manifesto:
    - **Gate before mutate:** create and delete are refused before any
      remote call when the session's scope is restricted
    - **Persist only what happened:** state after a cycle reflects exactly
      the mutations that demonstrably succeeded
    - **Surface everything at once:** field failures accumulate and are
      reported together at the end of the cycle
    - **Secrets surface once:** a generated initial password appears in a
      single warning at creation and nowhere else

Architecture:
    ::

        absent ──create──▶ present ──update──▶ present
           ▲                  │  ╲               │
           │                  │   ╲ (partial)    │ (partial)
           │                  │    ▼             ▼
           │                  │   present-degraded ──update──▶ present
           │                  │                       │
           └────delete────────┴───────────────────────┘
                 (failure keeps state)

        apply(desired, observed, token)
            validate(event = create | update) ─ error ─▶ return, state unchanged
            create(desired) | update(desired, observed)

Examples:
    >>> controller = LifecycleController(InMemoryAccountGateway())
    >>> result = controller.create(DesiredConfiguration("alice.example", "a@example.com"))
    >>> result.phase
    <LifecyclePhase.PRESENT: 'present'>
    >>> result.warnings[0].summary
    'Initial password created'

Tags:
    lifecycle, reconciliation, orchestration, diagnostics, account-spine
"""

from __future__ import annotations

import secrets
from collections.abc import Callable

from account_spine.core.errors import (
    AccountNotFoundError,
    AccountStateError,
    GateError,
    RandomnessUnavailableError,
    ReconcileCancelledError,
    RemoteError,
)
from account_spine.core.logging import LogContext, get_logger
from account_spine.core.secrets import SecretValue, resolve_initial_password
from account_spine.core.settings import AccountSpineSettings
from account_spine.gateway.protocol import AccountGateway
from account_spine.reconcile.committer import commit_state, initial_state
from account_spine.reconcile.context import ReconcileContext
from account_spine.reconcile.diff import DiffEngine, MutabilityPolicy
from account_spine.reconcile.models import (
    AccountField,
    DesiredConfiguration,
    Diagnostic,
    LifecycleEvent,
    LifecyclePhase,
    LifecycleResult,
    Mutation,
    MutationRecord,
    ObservedState,
    Severity,
)
from account_spine.reconcile.precondition import PreconditionValidator
from account_spine.reconcile.sequencer import MutationSequencer

logger = get_logger(__name__)

_FIELD_LABELS = {
    AccountField.EMAIL: "email",
    AccountField.HANDLE: "handle",
    AccountField.PASSWORD: "password",
    AccountField.DISPLAY_NAME: "profile",
}


def _error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)


def _phase_for(state: ObservedState | None, diagnostics: list[Diagnostic]) -> LifecyclePhase:
    if state is None:
        return LifecyclePhase.ABSENT
    if any(d.severity is Severity.ERROR for d in diagnostics):
        return LifecyclePhase.PRESENT_DEGRADED
    return LifecyclePhase.PRESENT


class LifecycleController:
    """Create/read/update/delete/validate for a single account resource.

    Args:
        gateway: Remote service adapter
        policy: Which identity fields may change after creation
        validator: Scope gate for create/delete
        random_bytes: Secure byte source for generated passwords
    """

    def __init__(
        self,
        gateway: AccountGateway,
        *,
        policy: MutabilityPolicy | None = None,
        validator: PreconditionValidator | None = None,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
    ):
        self.gateway = gateway
        self.diff_engine = DiffEngine(policy)
        self.validator = validator or PreconditionValidator()
        self._random_bytes = random_bytes

    @classmethod
    def from_settings(
        cls, gateway: AccountGateway, settings: AccountSpineSettings
    ) -> LifecycleController:
        return cls(
            gateway,
            policy=MutabilityPolicy(
                handle_mutable=settings.handle_mutable,
                email_mutable=settings.email_mutable,
            ),
            validator=PreconditionValidator(settings.restricted_scopes),
        )

    # =========================================================================
    # VALIDATE / PLAN
    # =========================================================================

    def validate(
        self,
        desired: DesiredConfiguration | None,
        auth_token: str | SecretValue | None,
        event: LifecycleEvent,
        *,
        has_state: bool = False,
    ) -> list[Diagnostic]:
        """Pre-check a lifecycle event.

        Gate failures come back as error diagnostics. Creating without an
        initial password adds a warning that one will be generated and
        shown in plaintext.
        """
        diagnostics: list[Diagnostic] = []

        try:
            self.validator.check(auth_token, event)
        except GateError as e:
            diagnostics.append(
                Diagnostic.from_error(
                    e,
                    "PRECONDITION_FAILED",
                    f"Cannot {event.value} account",
                )
            )

        if (
            event is LifecycleEvent.CREATE
            and not has_state
            and desired is not None
            and not desired.password
        ):
            diagnostics.append(
                Diagnostic.warning(
                    "PASSWORD_NOT_SPECIFIED",
                    "Initial password not specified",
                    f"Initial password for account {desired.handle} was not specified, "
                    "one will be generated and included in the output in plaintext.",
                    field_name=AccountField.PASSWORD.value,
                )
            )
        return diagnostics

    def plan(
        self, desired: DesiredConfiguration, observed: ObservedState | None = None
    ) -> LifecycleResult:
        """Mutations the next cycle would apply, without touching the remote."""
        if observed is None:
            mutations = [
                Mutation(AccountField.EMAIL, desired.email),
                Mutation(AccountField.HANDLE, desired.handle),
            ]
            if desired.password:
                mutations.append(Mutation(AccountField.PASSWORD, desired.password))
            if desired.display_name:
                mutations.append(Mutation(AccountField.DISPLAY_NAME, desired.display_name))
            return LifecycleResult(None, LifecyclePhase.ABSENT, mutations=mutations)

        diff = self.diff_engine.diff(desired, observed)
        diagnostics = [
            Diagnostic.from_error(c, "FIELD_IMMUTABLE", "Account must be replaced", field_name=c.field_name)
            for c in diff.conflicts
        ]
        return LifecycleResult(
            observed,
            LifecyclePhase.PRESENT,
            diagnostics=diagnostics,
            mutations=list(diff.mutations),
        )

    # =========================================================================
    # CREATE
    # =========================================================================

    def create(
        self, desired: DesiredConfiguration, ctx: ReconcileContext | None = None
    ) -> LifecycleResult:
        ctx = ctx or ReconcileContext()
        with LogContext(**ctx.log_fields(), lifecycle_event=LifecycleEvent.CREATE.value):
            try:
                credential = resolve_initial_password(
                    desired.password, random_bytes=self._random_bytes
                )
            except RandomnessUnavailableError as e:
                logger.error("initial_password_failed", error=e.to_dict())
                return self._absent(
                    Diagnostic.from_error(
                        e,
                        "RANDOMNESS_UNAVAILABLE",
                        "Error creating account",
                        f"Failed to generate random initial password: {e.message}",
                    )
                )

            sequencer = MutationSequencer(self.gateway, ctx)
            try:
                outcome = sequencer.create(desired, credential)
            except ReconcileCancelledError as e:
                logger.warning("create_cancelled")
                return self._absent(
                    Diagnostic.from_error(e, "RECONCILE_CANCELLED", "Account creation cancelled")
                )
            except RemoteError as e:
                step = e.context.metadata.get("step")
                what = "create invite code" if step == "issue_invite_token" else "create account"
                logger.error("create_failed", step=step, error=e.to_dict())
                return self._absent(
                    Diagnostic.from_error(
                        e,
                        "CREATE_FAILED",
                        "Error creating account",
                        f"Could not {what}, unexpected error: {e.message}",
                    )
                )

            state = initial_state(outcome.created, desired, outcome.record)
            diagnostics = self._record_diagnostics(outcome.record, "Error creating account")

            if credential.generated:
                diagnostics.append(
                    Diagnostic.warning(
                        "INITIAL_PASSWORD_CREATED",
                        "Initial password created",
                        f"Generated initial password for account {desired.handle}: "
                        f"{credential.secret.get_secret()}",
                        field_name=AccountField.PASSWORD.value,
                    )
                )

            phase = _phase_for(state, diagnostics)
            logger.info(
                "create_completed",
                identity_key=state.identity_key,
                phase=phase.value,
                errors=sum(1 for d in diagnostics if d.severity is Severity.ERROR),
            )
            return LifecycleResult(
                state,
                phase,
                diagnostics=diagnostics,
                mutations=self.plan(desired).mutations,
            )

    # =========================================================================
    # READ / IMPORT
    # =========================================================================

    def read(
        self,
        identity_key: str,
        previous: ObservedState | None = None,
        ctx: ReconcileContext | None = None,
    ) -> LifecycleResult:
        """Refresh state from the remote.

        Only the password placeholder is carried over from ``previous``;
        every other field comes from the service. A missing account yields
        an absent result with an error diagnostic. Any other read failure
        leaves ``previous`` untouched.
        """
        ctx = ctx or ReconcileContext()
        with LogContext(**ctx.log_fields(), lifecycle_event=LifecycleEvent.READ.value):
            try:
                info = self.gateway.get_account_info(identity_key)
            except AccountNotFoundError as e:
                logger.warning("account_not_found", identity_key=identity_key)
                return self._absent(
                    Diagnostic.from_error(
                        e,
                        "ACCOUNT_NOT_FOUND",
                        "Failed to retrieve account",
                        f"Could not retrieve the account, error: {e.message}",
                    )
                )
            except RemoteError as e:
                logger.error("read_failed", identity_key=identity_key, error=e.to_dict())
                return self._unchanged(
                    previous,
                    Diagnostic.from_error(
                        e,
                        "READ_FAILED",
                        "Failed to retrieve account",
                        f"Could not retrieve the account, error: {e.message}",
                    ),
                )

            try:
                document = self.gateway.get_profile_document(identity_key)
            except RemoteError as e:
                logger.error("profile_read_failed", identity_key=identity_key, error=e.to_dict())
                return self._unchanged(
                    previous,
                    Diagnostic.from_error(
                        e,
                        "PROFILE_READ_FAILED",
                        "Failed to retrieve account profile",
                        f"Could not retrieve the account's profile, error: {e.message}",
                        field_name=AccountField.DISPLAY_NAME.value,
                    ),
                )

            state = ObservedState(
                identity_key=identity_key,
                handle=info.handle,
                email=info.email or "",
                password_placeholder=previous.password_placeholder if previous else None,
                display_name=document.display_name if document else None,
            )
            logger.debug("account_read", identity_key=identity_key)
            return LifecycleResult(state, LifecyclePhase.PRESENT)

    def import_state(
        self, identity_key: str, ctx: ReconcileContext | None = None
    ) -> LifecycleResult:
        """Adopt an existing account by identity key; no password is tracked."""
        logger.info("account_import", identity_key=identity_key)
        return self.read(identity_key, previous=None, ctx=ctx)

    # =========================================================================
    # UPDATE
    # =========================================================================

    def update(
        self,
        desired: DesiredConfiguration,
        observed: ObservedState,
        ctx: ReconcileContext | None = None,
    ) -> LifecycleResult:
        ctx = ctx or ReconcileContext()
        with LogContext(**ctx.log_fields(), lifecycle_event=LifecycleEvent.UPDATE.value):
            if not observed.identity_key:
                error = AccountStateError("Cannot update an account without an identity key")
                return self._unchanged(
                    observed,
                    Diagnostic.from_error(error, "ACCOUNT_STATE", "Error updating account"),
                )

            diff = self.diff_engine.diff(desired, observed)
            diagnostics = [
                Diagnostic.from_error(
                    c, "FIELD_IMMUTABLE", "Error updating account", field_name=c.field_name
                )
                for c in diff.conflicts
            ]

            record = MutationSequencer(self.gateway, ctx).apply(
                observed.identity_key, diff.mutations
            )
            state = commit_state(observed, record)
            diagnostics.extend(self._record_diagnostics(record, "Error updating account"))

            phase = _phase_for(state, diagnostics)
            logger.info(
                "update_completed",
                identity_key=state.identity_key,
                phase=phase.value,
                applied=[f.value for f in record.applied()],
                failed=[f.value for f, _ in record.failures()],
            )
            return LifecycleResult(
                state, phase, diagnostics=diagnostics, mutations=list(diff.mutations)
            )

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete(
        self,
        identity_key: str,
        *,
        observed: ObservedState | None = None,
        ctx: ReconcileContext | None = None,
    ) -> LifecycleResult:
        """Delete the account. On failure ``observed`` is kept so the caller can retry."""
        ctx = ctx or ReconcileContext()
        with LogContext(**ctx.log_fields(), lifecycle_event=LifecycleEvent.DELETE.value):
            try:
                ctx.raise_if_cancelled()
                self.gateway.delete_account(identity_key)
            except ReconcileCancelledError as e:
                return self._unchanged(
                    observed,
                    Diagnostic.from_error(e, "RECONCILE_CANCELLED", "Account deletion cancelled"),
                )
            except RemoteError as e:
                e.with_context(identity_key=identity_key, operation="delete")
                logger.error("delete_failed", identity_key=identity_key, error=e.to_dict())
                return self._unchanged(
                    observed,
                    Diagnostic.from_error(
                        e,
                        "DELETE_FAILED",
                        "Error deleting account",
                        f"Could not delete account, error: {e.message}",
                    ),
                )

            logger.info("account_deleted", identity_key=identity_key)
            return LifecycleResult(None, LifecyclePhase.ABSENT)

    # =========================================================================
    # GATED ENTRY POINTS
    # =========================================================================

    def apply(
        self,
        desired: DesiredConfiguration,
        observed: ObservedState | None,
        auth_token: str | SecretValue | None,
        ctx: ReconcileContext | None = None,
    ) -> LifecycleResult:
        """Validate, then create (no state) or update (existing state)."""
        event = LifecycleEvent.CREATE if observed is None else LifecycleEvent.UPDATE
        checks = self.validate(desired, auth_token, event, has_state=observed is not None)
        if any(d.severity is Severity.ERROR for d in checks):
            return LifecycleResult(observed, _phase_for(observed, []), diagnostics=checks)

        if observed is None:
            result = self.create(desired, ctx)
        else:
            result = self.update(desired, observed, ctx)
        result.diagnostics[:0] = checks
        return result

    def destroy(
        self,
        observed: ObservedState,
        auth_token: str | SecretValue | None,
        ctx: ReconcileContext | None = None,
    ) -> LifecycleResult:
        """Validate, then delete."""
        checks = self.validate(None, auth_token, LifecycleEvent.DELETE, has_state=True)
        if any(d.severity is Severity.ERROR for d in checks):
            return LifecycleResult(observed, _phase_for(observed, []), diagnostics=checks)
        return self.delete(observed.identity_key, observed=observed, ctx=ctx)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _record_diagnostics(record: MutationRecord, summary: str) -> list[Diagnostic]:
        diagnostics = [
            Diagnostic.from_error(
                error,
                "FIELD_UPDATE_FAILED",
                summary,
                f"Could not update account {_FIELD_LABELS[target]}, error: {_error_message(error)}",
                field_name=target.value,
            )
            for target, error in record.failures()
        ]
        if record.cancelled:
            skipped = [f.value for f in record.skipped]
            diagnostics.append(
                Diagnostic.from_error(
                    ReconcileCancelledError(skipped=skipped),
                    "RECONCILE_CANCELLED",
                    "Reconciliation cancelled",
                    f"Cancelled before applying: {', '.join(skipped)}",
                )
            )
        return diagnostics

    @staticmethod
    def _absent(*diagnostics: Diagnostic) -> LifecycleResult:
        return LifecycleResult(None, LifecyclePhase.ABSENT, diagnostics=list(diagnostics))

    @staticmethod
    def _unchanged(previous: ObservedState | None, *diagnostics: Diagnostic) -> LifecycleResult:
        phase = LifecyclePhase.ABSENT if previous is None else LifecyclePhase.PRESENT
        return LifecycleResult(previous, phase, diagnostics=list(diagnostics))


__all__ = [
    "LifecycleController",
]
