"""
XRPC account gateway for AT Protocol PDS servers.

Implements :class:`~account_spine.gateway.protocol.AccountGateway` over the
PDS HTTP API using ``httpx``. Account management goes through the admin
endpoints and authenticates with HTTP Basic ``admin:<password>``; profile
writes go through ``com.atproto.repo.putRecord`` and need the account's own
session, which is why :meth:`XrpcAccountGateway.scoped` exists.

Credentials are attached per request. The underlying ``httpx.Client`` is
shared by a gateway and every gateway scoped from it, and is never mutated.

Error mapping:
    ::

        httpx timeout / connection error   -> TransportError
        HTTP 5xx                            -> TransportError
        AccountNotFound / RepoNotFound      -> AccountNotFoundError
        HTTP 404 (other than RecordNotFound)-> AccountNotFoundError
        InvalidSwap                         -> VersionConflictError
        other HTTP 4xx                      -> ServiceRejectedError(xrpc_error=...)

Examples:
    >>> gw = XrpcAccountGateway(
    ...     "https://pds.example.com",
    ...     admin_password=SecretValue("admin-secret"),
    ... )
    >>> code = gw.issue_invite_token()
    >>> created = gw.create_account("alice.example.com", "a@example.com", "pw", code)
"""

from __future__ import annotations

from typing import Any

import httpx

from account_spine.core.errors import (
    AccountNotFoundError,
    ErrorContext,
    ServiceRejectedError,
    TransportError,
    VersionConflictError,
)
from account_spine.core.logging import get_logger
from account_spine.core.secrets import SecretValue
from account_spine.gateway.protocol import (
    PROFILE_COLLECTION,
    PROFILE_RKEY,
    AccountInfo,
    CreatedAccount,
    ProfileDocument,
)

logger = get_logger(__name__)

_NOT_FOUND_ERRORS = frozenset({"AccountNotFound", "RepoNotFound"})


class XrpcAccountGateway:
    """Synchronous XRPC client for the account operations the engine uses."""

    def __init__(
        self,
        host: str,
        *,
        admin_password: SecretValue | None = None,
        session_token: SecretValue | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.host = host.rstrip("/")
        self._admin_password = admin_password
        self._session_token = session_token
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=self.host, timeout=timeout)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> XrpcAccountGateway:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _request_options(self, auth: str | None) -> dict[str, Any]:
        if auth == "admin" and self._admin_password is not None:
            return {"auth": httpx.BasicAuth("admin", self._admin_password.get_secret())}
        if auth == "session" and self._session_token is not None:
            return {"headers": {"Authorization": f"Bearer {self._session_token.get_secret()}"}}
        return {}

    def _call(
        self,
        nsid: str,
        *,
        query: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        auth: str | None = "admin",
    ) -> dict[str, Any]:
        """Perform one XRPC call; GET when ``body`` is None, POST otherwise."""
        path = f"/xrpc/{nsid}"
        options = self._request_options(auth)
        try:
            if body is None:
                response = self._client.get(path, params=query, **options)
            else:
                response = self._client.post(path, json=body, **options)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"{nsid} timed out", cause=e, context=ErrorContext(xrpc_method=nsid)
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"{nsid} failed: {e}", cause=e, context=ErrorContext(xrpc_method=nsid)
            ) from e

        if response.status_code >= 400:
            raise self._error_for(nsid, response)

        if not response.content:
            return {}
        context = ErrorContext(xrpc_method=nsid, http_status=response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(
                f"{nsid} returned a body that is not JSON", cause=e, context=context
            ) from e
        if not isinstance(payload, dict):
            raise TransportError(
                f"{nsid} returned a JSON body that is not an object", context=context
            )
        return payload

    @staticmethod
    def _error_for(nsid: str, response: httpx.Response) -> Exception:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        xrpc_error = payload.get("error") if isinstance(payload, dict) else None
        message = (payload.get("message") if isinstance(payload, dict) else None) or response.reason_phrase
        context = ErrorContext(xrpc_method=nsid, http_status=response.status_code)
        text = f"{nsid} returned {response.status_code}: {xrpc_error or 'Error'}: {message}"

        if response.status_code >= 500:
            return TransportError(text, context=context)
        if xrpc_error in _NOT_FOUND_ERRORS or (
            response.status_code == 404 and xrpc_error != "RecordNotFound"
        ):
            return AccountNotFoundError(text, context=context)
        if xrpc_error == "InvalidSwap":
            return VersionConflictError(text, context=context)
        return ServiceRejectedError(text, xrpc_error=xrpc_error, context=context)

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    def create_session(self, identifier: str, password: SecretValue) -> SecretValue:
        """Log in and return the session's access token."""
        data = self._call(
            "com.atproto.server.createSession",
            body={"identifier": identifier, "password": password.get_secret()},
            auth=None,
        )
        return SecretValue(data["accessJwt"])

    def scoped(self, session_token: SecretValue) -> XrpcAccountGateway:
        return XrpcAccountGateway(
            self.host,
            admin_password=self._admin_password,
            session_token=session_token,
            client=self._client,
        )

    # ------------------------------------------------------------------ #
    # AccountGateway
    # ------------------------------------------------------------------ #

    def issue_invite_token(self, max_uses: int = 1) -> str:
        data = self._call("com.atproto.server.createInviteCode", body={"useCount": max_uses})
        return data["code"]

    def create_account(
        self, handle: str, email: str, password: str, invite_token: str
    ) -> CreatedAccount:
        data = self._call(
            "com.atproto.server.createAccount",
            body={
                "handle": handle,
                "email": email,
                "password": password,
                "inviteCode": invite_token,
            },
            auth=None,
        )
        token = data.get("accessJwt")
        logger.debug("xrpc_account_created", identity_key=data["did"], handle=data.get("handle"))
        return CreatedAccount(
            identity_key=data["did"],
            handle=data.get("handle", handle),
            session_token=SecretValue(token) if token else None,
        )

    def get_account_info(self, identity_key: str) -> AccountInfo:
        data = self._call("com.atproto.admin.getAccountInfo", query={"did": identity_key})
        return AccountInfo(
            identity_key=data.get("did", identity_key),
            handle=data["handle"],
            email=data.get("email"),
        )

    def update_email(self, identity_key: str, email: str) -> None:
        self._call(
            "com.atproto.admin.updateAccountEmail",
            body={"account": identity_key, "email": email},
        )

    def update_handle(self, identity_key: str, handle: str) -> None:
        self._call(
            "com.atproto.admin.updateAccountHandle",
            body={"did": identity_key, "handle": handle},
        )

    def update_password(self, identity_key: str, password: str) -> None:
        self._call(
            "com.atproto.admin.updateAccountPassword",
            body={"did": identity_key, "password": password},
        )

    def delete_account(self, identity_key: str) -> None:
        self._call("com.atproto.admin.deleteAccount", body={"did": identity_key})

    def get_profile_document(self, identity_key: str) -> ProfileDocument | None:
        try:
            data = self._call(
                "com.atproto.repo.getRecord",
                query={
                    "repo": identity_key,
                    "collection": PROFILE_COLLECTION,
                    "rkey": PROFILE_RKEY,
                },
                auth=None,
            )
        except ServiceRejectedError as e:
            if e.xrpc_error == "RecordNotFound":
                return None
            raise
        return ProfileDocument(record=dict(data.get("value") or {}), version=data.get("cid"))

    def put_profile_document(
        self, identity_key: str, record: dict[str, Any], expected_version: str | None
    ) -> str:
        body: dict[str, Any] = {
            "repo": identity_key,
            "collection": PROFILE_COLLECTION,
            "rkey": PROFILE_RKEY,
            "record": {"$type": PROFILE_COLLECTION, **record},
        }
        if expected_version is not None:
            body["swapRecord"] = expected_version
        data = self._call(
            "com.atproto.repo.putRecord",
            body=body,
            auth="session" if self._session_token is not None else "admin",
        )
        logger.debug("xrpc_profile_updated", identity_key=identity_key, cid=data.get("cid"))
        return data.get("cid", "")


__all__ = ["XrpcAccountGateway"]
