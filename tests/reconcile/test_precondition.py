"""Tests for the token scope gate."""

import pytest

from account_spine.core.errors import PrivilegeInsufficientError, TokenMalformedError
from account_spine.core.secrets import SecretValue
from account_spine.reconcile import LifecycleEvent, PreconditionValidator, decode_token_claims


class TestDecodeTokenClaims:
    def test_decodes_without_verifying_signature(self, token_factory):
        claims = decode_token_claims(token_factory("com.atproto.access", aud="did:web:pds"))
        assert claims["scope"] == "com.atproto.access"
        assert claims["aud"] == "did:web:pds"

    def test_accepts_secret_value(self, full_token):
        assert decode_token_claims(SecretValue(full_token))["scope"] == "com.atproto.access"

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.b.c"])
    def test_malformed(self, token):
        with pytest.raises(TokenMalformedError):
            decode_token_claims(token)


class TestPreconditionValidator:
    @pytest.mark.parametrize("event", [LifecycleEvent.CREATE, LifecycleEvent.DELETE])
    def test_full_scope_allowed(self, full_token, event):
        claims = PreconditionValidator().check(full_token, event)
        assert claims["scope"] == "com.atproto.access"

    @pytest.mark.parametrize("event", [LifecycleEvent.CREATE, LifecycleEvent.DELETE])
    def test_app_password_refused(self, app_password_token, event):
        with pytest.raises(PrivilegeInsufficientError) as exc_info:
            PreconditionValidator().check(app_password_token, event)
        assert exc_info.value.context.operation == event.value

    def test_privileged_app_password_refused(self, token_factory):
        with pytest.raises(PrivilegeInsufficientError):
            PreconditionValidator().check(
                token_factory("com.atproto.appPassPrivileged"), LifecycleEvent.CREATE
            )

    def test_missing_scope_claim_allowed(self, token_factory):
        assert PreconditionValidator().check(token_factory(None), LifecycleEvent.CREATE) is not None

    @pytest.mark.parametrize("event", [LifecycleEvent.READ, LifecycleEvent.UPDATE, LifecycleEvent.IMPORT])
    def test_ungated_events_skip_token(self, event):
        assert PreconditionValidator().check("garbage", event) is None

    def test_malformed_token_on_create(self):
        with pytest.raises(TokenMalformedError):
            PreconditionValidator().check("garbage", LifecycleEvent.CREATE)

    def test_custom_restricted_scopes(self, full_token):
        validator = PreconditionValidator(restricted_scopes=["com.atproto.access"])
        with pytest.raises(PrivilegeInsufficientError):
            validator.check(full_token, LifecycleEvent.DELETE)


class TestScopeClaimShapes:
    def test_list_scope_with_full_access_allowed(self, token_factory):
        claims = PreconditionValidator().check(
            token_factory(["com.atproto.access"]), LifecycleEvent.CREATE
        )
        assert claims["scope"] == ["com.atproto.access"]

    def test_list_scope_with_app_password_refused(self, token_factory):
        with pytest.raises(PrivilegeInsufficientError) as exc_info:
            PreconditionValidator().check(
                token_factory(["openid", "com.atproto.appPass"]), LifecycleEvent.DELETE
            )
        assert exc_info.value.scope == "com.atproto.appPass"

    def test_space_separated_scope_refused(self, token_factory):
        with pytest.raises(PrivilegeInsufficientError):
            PreconditionValidator().check(
                token_factory("openid com.atproto.appPass"), LifecycleEvent.CREATE
            )

    @pytest.mark.parametrize("scope", [42, {"name": "com.atproto.access"}, ["ok", 7]])
    def test_unsupported_scope_type_is_malformed(self, token_factory, scope):
        with pytest.raises(TokenMalformedError):
            PreconditionValidator().check(token_factory(scope), LifecycleEvent.CREATE)
