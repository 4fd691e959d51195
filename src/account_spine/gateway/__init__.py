"""Remote account gateways.

``build_gateway`` turns settings into a ready gateway. The XRPC backend
refuses to start without the PDS admin password, since every account
management endpoint requires it.
"""

from __future__ import annotations

from account_spine.core.errors import InvalidConfigError, MissingConfigError
from account_spine.core.secrets import SecretValue
from account_spine.core.settings import AccountSpineSettings
from account_spine.gateway.memory import InMemoryAccountGateway
from account_spine.gateway.protocol import (
    AccountGateway,
    AccountInfo,
    CreatedAccount,
    ProfileDocument,
)
from account_spine.gateway.xrpc import XrpcAccountGateway

BACKENDS = ("xrpc", "memory")


def build_gateway(settings: AccountSpineSettings, backend: str = "xrpc") -> AccountGateway:
    """Construct the gateway named by ``backend``."""
    if backend == "memory":
        return InMemoryAccountGateway()
    if backend != "xrpc":
        raise InvalidConfigError("backend", backend, f"Unknown backend {backend!r}; expected one of {BACKENDS}")

    if settings.admin_password is None:
        raise MissingConfigError(
            "admin_password",
            "An admin password is required to manage accounts; "
            "set ACCOUNT_SPINE_ADMIN_PASSWORD.",
        )
    return XrpcAccountGateway(
        settings.pds_host,
        admin_password=SecretValue(settings.admin_password.get_secret_value()),
        timeout=settings.timeout_seconds,
    )


__all__ = [
    "BACKENDS",
    "AccountGateway",
    "AccountInfo",
    "CreatedAccount",
    "ProfileDocument",
    "InMemoryAccountGateway",
    "XrpcAccountGateway",
    "build_gateway",
]
