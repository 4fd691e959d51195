"""
Diff between desired configuration and last observed state.

Produces the ordered list of field mutations a cycle must apply. Comparison
rules follow how the remote service treats each field:

    ┌──────────────┬──────────────────────────────────────────────────────┐
    │ field        │ rule                                                 │
    ├──────────────┼──────────────────────────────────────────────────────┤
    │ email        │ case-insensitive                                     │
    │ handle       │ case-insensitive                                     │
    │ password     │ never compared with the remote; desired empty clears │
    │              │ the local placeholder, otherwise its fingerprint is  │
    │              │ compared with the recorded one                       │
    │ display_name │ exact; None and "" both mean "no display name"       │
    └──────────────┴──────────────────────────────────────────────────────┘

Handle and email changes are subject to a :class:`MutabilityPolicy`. A
change to an immutable field yields a :class:`FieldImmutableError` conflict
instead of a mutation; the other fields still reconcile.

Examples:
    >>> observed = ObservedState("did:plc:abc", "alice.example", "a@example.com")
    >>> desired = DesiredConfiguration("Alice.Example", "A@Example.com")
    >>> DiffEngine().diff(desired, observed).is_empty
    True
"""

from __future__ import annotations

from dataclasses import dataclass

from account_spine.core.errors import FieldImmutableError
from account_spine.core.secrets import fingerprint_matches
from account_spine.reconcile.models import (
    AccountField,
    DesiredConfiguration,
    Mutation,
    ObservedState,
)


@dataclass(frozen=True)
class MutabilityPolicy:
    """Which identity fields may change after creation."""

    handle_mutable: bool = True
    email_mutable: bool = True

    def allows(self, target: AccountField) -> bool:
        if target is AccountField.HANDLE:
            return self.handle_mutable
        if target is AccountField.EMAIL:
            return self.email_mutable
        return True


@dataclass(frozen=True)
class DiffResult:
    mutations: tuple[Mutation, ...] = ()
    conflicts: tuple[FieldImmutableError, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.mutations and not self.conflicts


def _normalize_name(value: str | None) -> str | None:
    return value or None


class DiffEngine:
    """Computes field mutations in the fixed order email, handle, password, display name."""

    def __init__(self, policy: MutabilityPolicy | None = None):
        self.policy = policy or MutabilityPolicy()

    def diff(self, desired: DesiredConfiguration, observed: ObservedState) -> DiffResult:
        mutations: list[Mutation] = []
        conflicts: list[FieldImmutableError] = []

        for target, want, have in (
            (AccountField.EMAIL, desired.email, observed.email),
            (AccountField.HANDLE, desired.handle, observed.handle),
        ):
            if want.casefold() == (have or "").casefold():
                continue
            if not self.policy.allows(target):
                conflicts.append(FieldImmutableError(target.value, have, want))
                continue
            mutations.append(Mutation(target, want, previous=have))

        password_mutation = self._diff_password(desired.password, observed.password_placeholder)
        if password_mutation is not None:
            mutations.append(password_mutation)

        want_name = _normalize_name(desired.display_name)
        have_name = _normalize_name(observed.display_name)
        if want_name != have_name:
            mutations.append(Mutation(AccountField.DISPLAY_NAME, want_name, previous=have_name))

        return DiffResult(mutations=tuple(mutations), conflicts=tuple(conflicts))

    @staticmethod
    def _diff_password(desired: str | None, placeholder: str | None) -> Mutation | None:
        if not desired:
            if placeholder is None:
                return None
            return Mutation(AccountField.PASSWORD, None, previous=placeholder, local_only=True)
        if fingerprint_matches(desired, placeholder):
            return None
        return Mutation(AccountField.PASSWORD, desired, previous=placeholder)


__all__ = [
    "MutabilityPolicy",
    "DiffResult",
    "DiffEngine",
]
