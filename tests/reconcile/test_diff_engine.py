"""Tests for DiffEngine."""

import hashlib

from account_spine.core.secrets import password_fingerprint
from account_spine.reconcile import (
    AccountField,
    DesiredConfiguration,
    DiffEngine,
    MutabilityPolicy,
    ObservedState,
)

OBSERVED = ObservedState(
    identity_key="did:plc:abc",
    handle="alice.example",
    email="a@example.com",
    password_placeholder=None,
    display_name=None,
)


def targets(result):
    return [m.target for m in result.mutations]


class TestIdentityFields:
    def test_no_changes(self):
        desired = DesiredConfiguration("alice.example", "a@example.com")
        assert DiffEngine().diff(desired, OBSERVED).is_empty

    def test_case_insensitive(self):
        desired = DesiredConfiguration("Alice.EXAMPLE", "A@Example.COM")
        assert DiffEngine().diff(desired, OBSERVED).is_empty

    def test_email_before_handle(self):
        desired = DesiredConfiguration("bob.example", "b@example.com")
        result = DiffEngine().diff(desired, OBSERVED)
        assert targets(result) == [AccountField.EMAIL, AccountField.HANDLE]
        assert result.mutations[1].value == "bob.example"
        assert result.mutations[1].previous == "alice.example"


class TestPassword:
    def test_empty_password_without_placeholder_is_noop(self):
        desired = DesiredConfiguration("alice.example", "a@example.com", password="")
        assert DiffEngine().diff(desired, OBSERVED).is_empty

    def test_new_password_is_remote_mutation(self):
        desired = DesiredConfiguration("alice.example", "a@example.com", password="pw-1")
        result = DiffEngine().diff(desired, OBSERVED)
        assert targets(result) == [AccountField.PASSWORD]
        assert not result.mutations[0].local_only

    def test_matching_fingerprint_is_noop(self):
        observed = ObservedState(
            "did:plc:abc", "alice.example", "a@example.com",
            password_placeholder=password_fingerprint("pw-1"),
        )
        desired = DesiredConfiguration("alice.example", "a@example.com", password="pw-1")
        assert DiffEngine().diff(desired, observed).is_empty

    def test_unsalted_legacy_placeholder_triggers_update(self):
        observed = ObservedState(
            "did:plc:abc", "alice.example", "a@example.com",
            password_placeholder="sha256:" + hashlib.sha256(b"pw-1").hexdigest(),
        )
        desired = DesiredConfiguration("alice.example", "a@example.com", password="pw-1")
        assert targets(DiffEngine().diff(desired, observed)) == [AccountField.PASSWORD]

    def test_cleared_password_forgets_placeholder_locally(self):
        observed = ObservedState(
            "did:plc:abc", "alice.example", "a@example.com",
            password_placeholder=password_fingerprint("pw-1"),
        )
        desired = DesiredConfiguration("alice.example", "a@example.com", password=None)
        result = DiffEngine().diff(desired, observed)
        assert len(result.mutations) == 1
        mutation = result.mutations[0]
        assert mutation.local_only
        assert mutation.value is None
        assert result.conflicts == ()

    def test_password_never_in_repr(self):
        desired = DesiredConfiguration("alice.example", "a@example.com", password="hunter2")
        result = DiffEngine().diff(desired, OBSERVED)
        assert "hunter2" not in repr(result)
        assert "hunter2" not in repr(desired)


class TestDisplayName:
    def test_exact_comparison(self):
        observed = ObservedState("did:plc:abc", "alice.example", "a@example.com", display_name="alice")
        desired = DesiredConfiguration("alice.example", "a@example.com", display_name="Alice")
        assert targets(DiffEngine().diff(desired, observed)) == [AccountField.DISPLAY_NAME]

    def test_none_and_empty_are_equal(self):
        observed = ObservedState("did:plc:abc", "alice.example", "a@example.com", display_name="")
        desired = DesiredConfiguration("alice.example", "a@example.com", display_name=None)
        assert DiffEngine().diff(desired, observed).is_empty

    def test_clear_display_name(self):
        observed = ObservedState("did:plc:abc", "alice.example", "a@example.com", display_name="Alice")
        desired = DesiredConfiguration("alice.example", "a@example.com")
        (mutation,) = DiffEngine().diff(desired, observed).mutations
        assert mutation.value is None
        assert mutation.previous == "Alice"


class TestOrdering:
    def test_all_fields_in_fixed_order(self):
        desired = DesiredConfiguration("bob.example", "b@example.com", password="pw", display_name="Bob")
        assert targets(DiffEngine().diff(desired, OBSERVED)) == [
            AccountField.EMAIL,
            AccountField.HANDLE,
            AccountField.PASSWORD,
            AccountField.DISPLAY_NAME,
        ]


class TestMutabilityPolicy:
    def test_immutable_handle_is_a_conflict(self):
        engine = DiffEngine(MutabilityPolicy(handle_mutable=False))
        desired = DesiredConfiguration("bob.example", "b@example.com", display_name="Bob")
        result = engine.diff(desired, OBSERVED)

        assert targets(result) == [AccountField.EMAIL, AccountField.DISPLAY_NAME]
        (conflict,) = result.conflicts
        assert conflict.field_name == "handle"
        assert not result.is_empty

    def test_immutable_email_unchanged_is_fine(self):
        engine = DiffEngine(MutabilityPolicy(email_mutable=False))
        desired = DesiredConfiguration("alice.example", "A@example.com")
        assert engine.diff(desired, OBSERVED).is_empty

    def test_policy_allows_other_fields(self):
        policy = MutabilityPolicy(handle_mutable=False, email_mutable=False)
        assert policy.allows(AccountField.PASSWORD)
        assert policy.allows(AccountField.DISPLAY_NAME)
        assert not policy.allows(AccountField.HANDLE)
