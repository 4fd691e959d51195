"""
Merge a cycle's applied mutations into the next ObservedState.

Only fields whose outcome is ``Ok`` are overwritten. Failed and skipped
fields keep their previous value, and the identity key is always carried
over, so the persisted state never claims a change the remote did not
accept.
"""

from __future__ import annotations

from dataclasses import replace

from account_spine.core.secrets import password_fingerprint
from account_spine.gateway.protocol import CreatedAccount
from account_spine.reconcile.models import (
    AccountField,
    DesiredConfiguration,
    MutationRecord,
    ObservedState,
)

_STATE_ATTRIBUTES = {
    AccountField.EMAIL: "email",
    AccountField.HANDLE: "handle",
    AccountField.PASSWORD: "password_placeholder",
    AccountField.DISPLAY_NAME: "display_name",
}


def commit_state(observed: ObservedState, record: MutationRecord) -> ObservedState:
    """Return ``observed`` with every applied field overwritten."""
    changes: dict[str, str | None] = {}
    for target, value in record.applied().items():
        if target is AccountField.PASSWORD:
            value = password_fingerprint(value) if value else None
        changes[_STATE_ATTRIBUTES[target]] = value
    if not changes:
        return observed
    return replace(observed, **changes)


def initial_state(
    created: CreatedAccount, desired: DesiredConfiguration, record: MutationRecord
) -> ObservedState:
    """State for a freshly created account.

    Starts from what the create call confirmed (identity key, handle,
    email) and layers the rest of the creation record on top. The display
    name stays empty unless the profile step succeeded.
    """
    base = ObservedState(
        identity_key=created.identity_key,
        handle=created.handle or desired.handle,
        email=desired.email,
    )
    return commit_state(base, record)


__all__ = [
    "commit_state",
    "initial_state",
]
