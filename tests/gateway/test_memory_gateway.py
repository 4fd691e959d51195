"""Tests for account_spine.gateway.memory."""

import pytest

from account_spine.core.errors import (
    AccountNotFoundError,
    ServiceRejectedError,
    TransportError,
    VersionConflictError,
)
from account_spine.core.secrets import SecretValue
from account_spine.gateway import AccountGateway
from account_spine.gateway.memory import InMemoryAccountGateway


@pytest.fixture
def created(gateway):
    code = gateway.issue_invite_token()
    return gateway.create_account("alice.example", "a@example.com", "pw-123", code)


class TestProtocol:
    def test_satisfies_gateway_protocol(self, gateway):
        assert isinstance(gateway, AccountGateway)


class TestCreateAccount:
    def test_create_and_read_back(self, gateway, created):
        assert created.identity_key.startswith("did:plc:")
        assert created.session_token is not None
        info = gateway.get_account_info(created.identity_key)
        assert (info.handle, info.email) == ("alice.example", "a@example.com")
        assert gateway.password_of(created.identity_key) == "pw-123"

    def test_invite_is_single_use(self, gateway):
        code = gateway.issue_invite_token(max_uses=1)
        gateway.create_account("alice.example", "a@example.com", "pw", code)
        with pytest.raises(ServiceRejectedError) as exc_info:
            gateway.create_account("bob.example", "b@example.com", "pw", code)
        assert exc_info.value.xrpc_error == "InvalidInviteCode"

    def test_unknown_invite(self, gateway):
        with pytest.raises(ServiceRejectedError):
            gateway.create_account("alice.example", "a@example.com", "pw", "bogus")

    def test_handle_unique_case_insensitive(self, gateway, created):
        code = gateway.issue_invite_token()
        with pytest.raises(ServiceRejectedError) as exc_info:
            gateway.create_account("ALICE.example", "x@example.com", "pw", code)
        assert exc_info.value.xrpc_error == "HandleNotAvailable"

    def test_invalid_email(self, gateway):
        code = gateway.issue_invite_token()
        with pytest.raises(ServiceRejectedError):
            gateway.create_account("alice.example", "not-an-email", "pw", code)


class TestUpdates:
    def test_update_fields(self, gateway, created):
        key = created.identity_key
        gateway.update_email(key, "new@example.com")
        gateway.update_handle(key, "alice2.example")
        gateway.update_password(key, "pw-456")
        info = gateway.get_account_info(key)
        assert (info.handle, info.email) == ("alice2.example", "new@example.com")
        assert gateway.password_of(key) == "pw-456"

    def test_handle_may_change_case_of_own_handle(self, gateway, created):
        gateway.update_handle(created.identity_key, "Alice.Example")

    def test_unknown_account(self, gateway):
        with pytest.raises(AccountNotFoundError):
            gateway.update_email("did:plc:missing", "a@example.com")

    def test_delete_then_read_fails_not_found(self, gateway, created):
        gateway.delete_account(created.identity_key)
        with pytest.raises(AccountNotFoundError):
            gateway.get_account_info(created.identity_key)


class TestProfileDocument:
    def test_absent_document(self, gateway, created):
        assert gateway.get_profile_document(created.identity_key) is None

    def test_write_read_and_version(self, gateway, created):
        key = created.identity_key
        v1 = gateway.put_profile_document(key, {"displayName": "Alice"}, None)
        doc = gateway.get_profile_document(key)
        assert doc.display_name == "Alice"
        assert doc.version == v1

        v2 = gateway.put_profile_document(key, {"displayName": "Al"}, v1)
        assert v2 != v1

    def test_stale_version_conflicts(self, gateway, created):
        key = created.identity_key
        v1 = gateway.put_profile_document(key, {"displayName": "Alice"}, None)
        gateway.put_profile_document(key, {"displayName": "Al"}, v1)
        with pytest.raises(VersionConflictError):
            gateway.put_profile_document(key, {"displayName": "Stale"}, v1)

    def test_expected_absent_but_present_conflicts(self, gateway, created):
        gateway.put_profile_document(created.identity_key, {}, None)
        with pytest.raises(VersionConflictError):
            gateway.put_profile_document(created.identity_key, {}, None)

    def test_returned_record_is_a_copy(self, gateway, created):
        key = created.identity_key
        gateway.put_profile_document(key, {"displayName": "Alice"}, None)
        gateway.get_profile_document(key).record["displayName"] = "Mutated"
        assert gateway.get_profile_document(key).display_name == "Alice"


class TestTestHooks:
    def test_fail_on_raises_once(self, gateway, created):
        gateway.fail_on("update_handle", TransportError("down"))
        with pytest.raises(TransportError):
            gateway.update_handle(created.identity_key, "b.example")
        gateway.update_handle(created.identity_key, "b.example")

    def test_fail_on_times(self, gateway, created):
        gateway.fail_on("get_account_info", TransportError("down"), times=2)
        for _ in range(2):
            with pytest.raises(TransportError):
                gateway.get_account_info(created.identity_key)
        gateway.get_account_info(created.identity_key)

    def test_calls_are_recorded(self, gateway, created):
        assert gateway.call_names() == ["issue_invite_token", "create_account"]
        gateway.get_account_info(created.identity_key)
        assert gateway.calls[-1] == ("get_account_info", created.identity_key)


class TestScoped:
    def test_scoped_shares_store_but_not_credential(self, gateway, created):
        scoped = gateway.scoped(SecretValue("session"))
        assert isinstance(scoped, InMemoryAccountGateway)
        assert scoped is not gateway
        assert scoped.session_token == SecretValue("session")
        assert gateway.session_token is None
        assert scoped.get_account_info(created.identity_key).handle == "alice.example"
