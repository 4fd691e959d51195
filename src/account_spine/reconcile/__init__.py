"""Account reconciliation engine.

Layer 1 -- Model
    models.py          Desired/observed state, mutations, diagnostics
    context.py         Per-cycle context and cancellation

Layer 2 -- Core steps
    precondition.py    Token scope gate for create/delete
    diff.py            Desired vs observed -> ordered mutations
    sequencer.py       Ordered, failure-tolerant application
    committer.py       Applied mutations -> next ObservedState

Layer 3 -- Orchestration
    controller.py      Create/read/update/delete/validate lifecycle
"""

from account_spine.reconcile.committer import commit_state, initial_state
from account_spine.reconcile.context import ReconcileContext
from account_spine.reconcile.controller import LifecycleController
from account_spine.reconcile.diff import DiffEngine, DiffResult, MutabilityPolicy
from account_spine.reconcile.models import (
    FIELD_ORDER,
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
from account_spine.reconcile.precondition import PreconditionValidator, decode_token_claims
from account_spine.reconcile.sequencer import CreationOutcome, MutationSequencer, update_display_name

__all__ = [
    # models
    "FIELD_ORDER",
    "AccountField",
    "DesiredConfiguration",
    "Diagnostic",
    "LifecycleEvent",
    "LifecyclePhase",
    "LifecycleResult",
    "Mutation",
    "MutationRecord",
    "ObservedState",
    "Severity",
    # context
    "ReconcileContext",
    # steps
    "PreconditionValidator",
    "decode_token_claims",
    "DiffEngine",
    "DiffResult",
    "MutabilityPolicy",
    "MutationSequencer",
    "CreationOutcome",
    "update_display_name",
    "commit_state",
    "initial_state",
    # orchestration
    "LifecycleController",
]
