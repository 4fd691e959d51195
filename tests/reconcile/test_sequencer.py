"""Tests for MutationSequencer."""

import pytest

from account_spine.core.errors import (
    AccountStateError,
    ReconcileCancelledError,
    ServiceRejectedError,
    TransportError,
    VersionConflictError,
)
from account_spine.core.secrets import Credential, SecretValue
from account_spine.gateway.memory import InMemoryAccountGateway
from account_spine.reconcile import (
    AccountField,
    DesiredConfiguration,
    Mutation,
    MutationSequencer,
    ReconcileContext,
    initial_state,
    update_display_name,
)


@pytest.fixture
def account(gateway):
    code = gateway.issue_invite_token()
    created = gateway.create_account("alice.example", "a@example.com", "pw-0", code)
    gateway.calls.clear()
    return created.identity_key


def supplied(password="pw-1"):
    return Credential(secret=SecretValue(password), generated=False)


ALL_FIELDS = [
    Mutation(AccountField.EMAIL, "b@example.com"),
    Mutation(AccountField.HANDLE, "bob.example"),
    Mutation(AccountField.PASSWORD, "pw-2"),
    Mutation(AccountField.DISPLAY_NAME, "Bob"),
]


class TestApply:
    def test_applies_in_order(self, gateway, account):
        record = MutationSequencer(gateway).apply(account, ALL_FIELDS)

        assert gateway.call_names() == [
            "update_email",
            "update_handle",
            "update_password",
            "get_profile_document",
            "put_profile_document",
        ]
        assert list(record.applied()) == list(AccountField)
        assert record.failures() == [] and not record.cancelled

    def test_continues_after_failure(self, gateway, account):
        gateway.fail_on("update_handle", ServiceRejectedError("taken", xrpc_error="HandleNotAvailable"))
        record = MutationSequencer(gateway).apply(account, ALL_FIELDS)

        assert "update_password" in gateway.call_names()
        assert AccountField.HANDLE not in record.applied()
        ((target, error),) = record.failures()
        assert target is AccountField.HANDLE
        assert error.context.field_name == "handle"
        assert error.context.identity_key == account
        assert gateway.get_account_info(account).email == "b@example.com"

    def test_local_only_makes_no_remote_call(self, gateway, account):
        mutation = Mutation(AccountField.PASSWORD, None, previous="scrypt:00:00", local_only=True)
        record = MutationSequencer(gateway).apply(account, [mutation])
        assert gateway.calls == []
        assert record.applied() == {AccountField.PASSWORD: None}

    def test_cancel_before_start_skips_everything(self, gateway, account):
        ctx = ReconcileContext()
        ctx.cancel()
        record = MutationSequencer(gateway, ctx).apply(account, ALL_FIELDS)
        assert gateway.calls == []
        assert record.cancelled
        assert record.skipped == list(AccountField)

    def test_cancel_mid_sequence_finishes_current_step(self):
        ctx = ReconcileContext()

        class CancellingGateway(InMemoryAccountGateway):
            def update_email(self, identity_key, email):
                super().update_email(identity_key, email)
                ctx.cancel()

        gateway = CancellingGateway()
        code = gateway.issue_invite_token()
        key = gateway.create_account("carol.example", "c@example.com", "pw", code).identity_key

        record = MutationSequencer(gateway, ctx).apply(key, ALL_FIELDS)
        assert record.applied() == {AccountField.EMAIL: "b@example.com"}
        assert record.skipped == [AccountField.HANDLE, AccountField.PASSWORD, AccountField.DISPLAY_NAME]
        assert record.cancelled

    def test_programming_errors_propagate(self, gateway, account):
        gateway.fail_on("update_email", KeyError("bug"))
        with pytest.raises(KeyError):
            MutationSequencer(gateway).apply(account, ALL_FIELDS)


class TestUpdateDisplayName:
    def test_preserves_other_profile_fields(self, gateway, account):
        gateway.put_profile_document(account, {"description": "hi", "displayName": "Old"}, None)
        update_display_name(gateway, account, "New")
        doc = gateway.get_profile_document(account)
        assert doc.record == {"description": "hi", "displayName": "New"}

    def test_clear_removes_key(self, gateway, account):
        gateway.put_profile_document(account, {"description": "hi", "displayName": "Old"}, None)
        update_display_name(gateway, account, None)
        assert gateway.get_profile_document(account).record == {"description": "hi"}

    def test_version_conflict_is_not_retried(self, gateway, account):
        gateway.fail_on("put_profile_document", VersionConflictError("stale"))
        record = MutationSequencer(gateway).apply(account, [Mutation(AccountField.DISPLAY_NAME, "Bob")])
        ((target, error),) = record.failures()
        assert isinstance(error, VersionConflictError)
        assert gateway.call_names().count("put_profile_document") == 1


class TestCreate:
    def test_issues_single_use_invite_then_creates(self, gateway):
        desired = DesiredConfiguration("alice.example", "a@example.com")
        outcome = MutationSequencer(gateway).create(desired, supplied())

        assert gateway.call_names() == ["issue_invite_token", "create_account"]
        assert gateway.password_of(outcome.created.identity_key) == "pw-1"
        assert outcome.record.applied() == {
            AccountField.EMAIL: "a@example.com",
            AccountField.HANDLE: "alice.example",
            AccountField.PASSWORD: "pw-1",
        }

    def test_records_server_confirmed_handle(self):
        class NormalizingGateway(InMemoryAccountGateway):
            def create_account(self, handle, email, password, invite_token):
                return super().create_account(f"{handle}.example.com", email, password, invite_token)

        gateway = NormalizingGateway()
        desired = DesiredConfiguration("alice", "a@example.com")
        outcome = MutationSequencer(gateway).create(desired, supplied())

        assert outcome.created.handle == "alice.example.com"
        assert outcome.record.applied()[AccountField.HANDLE] == "alice.example.com"
        assert initial_state(outcome.created, desired, outcome.record).handle == "alice.example.com"

    def test_generated_password_is_not_recorded(self, gateway):
        desired = DesiredConfiguration("alice.example", "a@example.com")
        credential = Credential(secret=SecretValue("generated"), generated=True)
        outcome = MutationSequencer(gateway).create(desired, credential)
        assert outcome.record.applied()[AccountField.PASSWORD] is None

    def test_profile_written_with_new_session(self, gateway, monkeypatch):
        seen = []
        original = InMemoryAccountGateway.scoped

        def spy(self, token):
            seen.append(token)
            return original(self, token)

        desired = DesiredConfiguration("alice.example", "a@example.com", display_name="Alice")
        monkeypatch.setattr(InMemoryAccountGateway, "scoped", spy)
        outcome = MutationSequencer(gateway).create(desired, supplied())

        key = outcome.created.identity_key
        assert seen == [SecretValue(f"memory-session-{key}")]
        assert gateway.get_profile_document(key).display_name == "Alice"
        assert outcome.record.applied()[AccountField.DISPLAY_NAME] == "Alice"

    def test_profile_failure_is_recorded_not_raised(self, gateway):
        gateway.fail_on("put_profile_document", TransportError("down"))
        desired = DesiredConfiguration("alice.example", "a@example.com", display_name="Alice")
        outcome = MutationSequencer(gateway).create(desired, supplied())

        assert outcome.created.identity_key
        ((target, error),) = outcome.record.failures()
        assert target is AccountField.DISPLAY_NAME
        assert error.context.operation == "create"

    def test_invite_failure_is_fatal(self, gateway):
        gateway.fail_on("issue_invite_token", TransportError("down"))
        with pytest.raises(TransportError) as exc_info:
            MutationSequencer(gateway).create(DesiredConfiguration("a.example", "a@example.com"), supplied())
        assert exc_info.value.context.metadata["step"] == "issue_invite_token"
        assert "create_account" not in gateway.call_names()

    def test_create_failure_is_fatal(self, gateway):
        gateway.fail_on("create_account", ServiceRejectedError("taken"))
        with pytest.raises(ServiceRejectedError) as exc_info:
            MutationSequencer(gateway).create(DesiredConfiguration("a.example", "a@example.com"), supplied())
        assert exc_info.value.context.metadata["step"] == "create_account"

    def test_create_attempted_at_most_once(self, gateway):
        gateway.fail_on("create_account", TransportError("timeout"))
        sequencer = MutationSequencer(gateway)
        desired = DesiredConfiguration("alice.example", "a@example.com")
        with pytest.raises(TransportError):
            sequencer.create(desired, supplied())
        with pytest.raises(AccountStateError):
            sequencer.create(desired, supplied())
        assert gateway.call_names().count("create_account") == 1

    def test_cancelled_before_create(self, gateway):
        ctx = ReconcileContext()
        ctx.cancel()
        with pytest.raises(ReconcileCancelledError):
            MutationSequencer(gateway, ctx).create(
                DesiredConfiguration("alice.example", "a@example.com"), supplied()
            )
        assert gateway.calls == []
