"""
Data model for account reconciliation.

Defines what the caller wants (:class:`DesiredConfiguration`), what the
engine last confirmed (:class:`ObservedState`), the per-field mutations the
diff produces (:class:`Mutation`), the per-cycle outcome record
(:class:`MutationRecord`), and what every lifecycle call hands back
(:class:`LifecycleResult` with its :class:`Diagnostic` list).

Manifesto:
    - **Confirmed, never assumed:** ObservedState only ever contains values a
      remote call demonstrably accepted
    - **Secrets stay out of reprs:** Passwords are excluded from ``repr`` and
      only a fingerprint is persisted
    - **One record per cycle:** MutationRecord is built, read by the state
      committer, then dropped

Architecture:
    ::

        DesiredConfiguration ──┐
                               ├──▶ DiffEngine ──▶ [Mutation, ...]
        ObservedState ─────────┘                        │
              ▲                                         ▼
              │                               MutationSequencer
              │                                         │
              └──── StateCommitter ◀── MutationRecord ◀─┘
                                   {field: Ok | Err | skipped}

Tags:
    data-model, reconciliation, state, diagnostics, account-spine
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from account_spine.core.errors import AccountSpineError, ReconcileCancelledError
from account_spine.core.result import Err, Ok, Result


class AccountField(str, Enum):
    """Fields the engine reconciles, in application order."""

    EMAIL = "email"
    HANDLE = "handle"
    PASSWORD = "password"
    DISPLAY_NAME = "display_name"


# Handle after email, password before profile.
FIELD_ORDER: tuple[AccountField, ...] = (
    AccountField.EMAIL,
    AccountField.HANDLE,
    AccountField.PASSWORD,
    AccountField.DISPLAY_NAME,
)


class LifecycleEvent(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    IMPORT = "import"


class LifecyclePhase(str, Enum):
    """Where the resource stands after a lifecycle call."""

    ABSENT = "absent"
    PRESENT = "present"
    PRESENT_DEGRADED = "present-degraded"


@dataclass(frozen=True)
class DesiredConfiguration:
    """Caller-declared target for one account.

    ``password`` is the optional *initial* password. An empty value on a
    later cycle means "stop tracking the initial password", never "remove
    the account's credential".
    """

    handle: str
    email: str
    password: str | None = field(default=None, repr=False)
    display_name: str | None = None


@dataclass(frozen=True)
class ObservedState:
    """Last confirmed state of the remote account.

    ``identity_key`` is assigned by the server at creation and never
    changes. ``password_placeholder`` holds a fingerprint of the
    caller-supplied password (see
    :func:`account_spine.core.secrets.password_fingerprint`), or None when
    no password is tracked.
    """

    identity_key: str
    handle: str
    email: str
    password_placeholder: str | None = None
    display_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObservedState:
        return cls(
            identity_key=data["identity_key"],
            handle=data.get("handle", ""),
            email=data.get("email", ""),
            password_placeholder=data.get("password_placeholder"),
            display_name=data.get("display_name"),
        )


@dataclass(frozen=True)
class Mutation:
    """One field change the sequencer must apply.

    ``local_only`` mutations change ObservedState without a remote call
    (clearing the password placeholder).
    """

    target: AccountField
    value: str | None = field(repr=False)
    previous: str | None = field(default=None, repr=False)
    local_only: bool = False

    @property
    def display_value(self) -> str:
        if self.target is AccountField.PASSWORD:
            return "(forget)" if self.value is None else "(sensitive)"
        return "" if self.value is None else self.value

    @property
    def display_previous(self) -> str:
        if self.target is AccountField.PASSWORD:
            return "(sensitive)" if self.previous else ""
        return "" if self.previous is None else self.previous

    def __repr__(self) -> str:
        suffix = ", local_only=True" if self.local_only else ""
        return f"Mutation({self.target.value}={self.display_value!r}{suffix})"


@dataclass
class MutationRecord:
    """Per-cycle outcome for every field the sequencer was asked to touch."""

    outcomes: dict[AccountField, Result[str | None]] = field(default_factory=dict)
    skipped: list[AccountField] = field(default_factory=list)
    cancelled: bool = False

    def record_applied(self, target: AccountField, value: str | None) -> None:
        self.outcomes[target] = Ok(value)

    def record_failed(self, target: AccountField, error: Exception) -> None:
        self.outcomes[target] = Err(error)

    def record_skipped(self, target: AccountField) -> None:
        self.skipped.append(target)

    def applied(self) -> dict[AccountField, str | None]:
        """Applied fields and the values they were set to, in field order."""
        return {
            f: self.outcomes[f].value
            for f in FIELD_ORDER
            if f in self.outcomes and isinstance(self.outcomes[f], Ok)
        }

    def failures(self) -> list[tuple[AccountField, Exception]]:
        return [
            (f, self.outcomes[f].error)
            for f in FIELD_ORDER
            if f in self.outcomes and isinstance(self.outcomes[f], Err)
        ]


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    """A caller-facing message produced by a lifecycle call.

    Attributes:
        severity: ``warning`` or ``error``
        code: Machine-readable code (``FIELD_UPDATE_FAILED``, ...)
        summary: Short title
        detail: Full human-readable explanation
        field_name: Account field the diagnostic refers to, if any
        error: The exception behind an error diagnostic
    """

    severity: Severity
    code: str
    summary: str
    detail: str
    field_name: str | None = None
    error: Exception | None = field(default=None, compare=False, repr=False)

    @classmethod
    def warning(cls, code: str, summary: str, detail: str, *, field_name: str | None = None) -> Diagnostic:
        return cls(Severity.WARNING, code, summary, detail, field_name=field_name)

    @classmethod
    def from_error(
        cls,
        error: Exception,
        code: str,
        summary: str,
        detail: str | None = None,
        *,
        field_name: str | None = None,
    ) -> Diagnostic:
        message = error.message if isinstance(error, AccountSpineError) else str(error)
        return cls(
            Severity.ERROR,
            code,
            summary,
            detail or message,
            field_name=field_name,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "summary": self.summary,
            "detail": self.detail,
        }
        if self.field_name:
            d["field"] = self.field_name
        if isinstance(self.error, AccountSpineError):
            d["error"] = self.error.to_dict()
        return d


@dataclass
class LifecycleResult:
    """Envelope returned by every LifecycleController call.

    ``state`` is what the host must persist: None after a successful delete
    or a create that never reached the remote.
    """

    state: ObservedState | None
    phase: LifecyclePhase
    diagnostics: list[Diagnostic] = field(default_factory=list)
    mutations: list[Mutation] = field(default_factory=list)

    @property
    def identity_key(self) -> str | None:
        return self.state.identity_key if self.state else None

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def cancelled(self) -> bool:
        return any(isinstance(d.error, ReconcileCancelledError) for d in self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "state": self.state.to_dict() if self.state else None,
            "mutations": [
                {"field": m.target.value, "value": m.display_value, "local_only": m.local_only}
                for m in self.mutations
            ],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


__all__ = [
    "AccountField",
    "FIELD_ORDER",
    "LifecycleEvent",
    "LifecyclePhase",
    "DesiredConfiguration",
    "ObservedState",
    "Mutation",
    "MutationRecord",
    "Severity",
    "Diagnostic",
    "LifecycleResult",
]
