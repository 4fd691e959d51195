"""
Precondition gate for creating and deleting accounts.

Before a create or delete, the caller's authentication token is decoded and
its ``scope`` claim inspected. App-password sessions carry a restricted
scope and may not create or delete accounts; full-access sessions may.

The token is decoded *without* signature verification. Its authenticity is
the session's concern; this is a capability check layered on an already
authenticated channel, never a trust boundary.

Examples:
    >>> validator = PreconditionValidator()
    >>> validator.check(full_scope_token, LifecycleEvent.CREATE)
    {'scope': 'com.atproto.access', ...}
    >>> validator.check(app_password_token, LifecycleEvent.DELETE)
    Traceback (most recent call last):
    ...
    PrivilegeInsufficientError: ...
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import jwt

from account_spine.core.errors import PrivilegeInsufficientError, TokenMalformedError
from account_spine.core.logging import get_logger
from account_spine.core.secrets import SecretValue
from account_spine.core.settings import DEFAULT_RESTRICTED_SCOPES
from account_spine.reconcile.models import LifecycleEvent

logger = get_logger(__name__)

SCOPE_CLAIM = "scope"
GATED_EVENTS = frozenset({LifecycleEvent.CREATE, LifecycleEvent.DELETE})


def decode_token_claims(token: str | SecretValue | None) -> dict[str, Any]:
    """Decode a JWT's claims without verifying its signature.

    Raises:
        TokenMalformedError: the token is missing or not a structurally valid JWT.
    """
    raw = token.get_secret() if isinstance(token, SecretValue) else token
    if not raw:
        raise TokenMalformedError("No authentication token available")

    try:
        claims = jwt.decode(raw, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise TokenMalformedError(f"Could not decode authentication token: {e}", cause=e) from e

    if not isinstance(claims, dict):
        raise TokenMalformedError("Authentication token claims are not an object")
    return claims


def token_scopes(claims: dict[str, Any]) -> frozenset[str]:
    """Scopes named by the claims' ``scope`` entry.

    A string holds space-separated scopes; a list holds one scope per item.
    """
    scope = claims.get(SCOPE_CLAIM)
    if scope is None:
        return frozenset()
    if isinstance(scope, str):
        return frozenset(scope.split())
    if isinstance(scope, (list, tuple)) and all(isinstance(s, str) for s in scope):
        return frozenset(scope)
    raise TokenMalformedError(
        f"Authentication token scope claim has unsupported type {type(scope).__name__}"
    )


class PreconditionValidator:
    """Capability gate evaluated at the start of every create/delete cycle."""

    def __init__(self, restricted_scopes: Iterable[str] = DEFAULT_RESTRICTED_SCOPES):
        self.restricted_scopes = frozenset(restricted_scopes)

    def check(
        self, token: str | SecretValue | None, event: LifecycleEvent
    ) -> dict[str, Any] | None:
        """Gate ``event`` on the token's scope.

        Returns the decoded claims for gated events and None for any other
        event, whose token is not inspected.

        Raises:
            TokenMalformedError: token cannot be decoded or its scope claim
                is neither a string nor a list of strings.
            PrivilegeInsufficientError: token scope is restricted.
        """
        if event not in GATED_EVENTS:
            return None

        claims = decode_token_claims(token)
        scopes = token_scopes(claims)
        restricted = scopes & self.restricted_scopes
        if restricted:
            scope = " ".join(sorted(restricted))
            logger.warning("privilege_insufficient", lifecycle_event=event.value, scope=scope)
            raise PrivilegeInsufficientError(
                f"The session token has restricted scope {scope!r}; "
                f"a full-access session is required to {event.value} accounts",
                scope=scope,
            ).with_context(operation=event.value)

        logger.debug(
            "privilege_checked", lifecycle_event=event.value, scope=" ".join(sorted(scopes))
        )
        return claims


__all__ = [
    "SCOPE_CLAIM",
    "GATED_EVENTS",
    "decode_token_claims",
    "token_scopes",
    "PreconditionValidator",
]
