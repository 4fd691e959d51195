"""Account Spine Core -- primitives shared by the engine, gateways and CLI.

Architecture::

    errors.py          Structured error hierarchy (AccountSpineError, RemoteError)
    result.py          Result[T] envelope (Ok / Err)
    secrets.py         SecretValue, initial password generation, fingerprints
    settings.py        Environment-driven settings (pydantic-settings)
    logging.py         structlog configuration with credential redaction
"""

from account_spine.core.errors import (
    AccountNotFoundError,
    AccountSpineError,
    AccountStateError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    FieldImmutableError,
    GateError,
    InvalidConfigError,
    MissingConfigError,
    PrivilegeInsufficientError,
    RandomnessUnavailableError,
    ReconcileCancelledError,
    ReconcileError,
    RemoteError,
    ServiceRejectedError,
    SpecLoadError,
    StateStoreError,
    TokenMalformedError,
    TransportError,
    VersionConflictError,
)
from account_spine.core.logging import LogContext, configure_logging, get_logger
from account_spine.core.result import Err, Ok, Result
from account_spine.core.secrets import (
    Credential,
    SecretValue,
    generate_initial_password,
    fingerprint_matches,
    password_fingerprint,
    resolve_initial_password,
)
from account_spine.core.settings import AccountSpineSettings, get_settings

__all__ = [
    # errors
    "AccountSpineError",
    "ErrorCategory",
    "ErrorContext",
    "GateError",
    "RandomnessUnavailableError",
    "TokenMalformedError",
    "PrivilegeInsufficientError",
    "RemoteError",
    "ServiceRejectedError",
    "TransportError",
    "VersionConflictError",
    "AccountNotFoundError",
    "ReconcileError",
    "FieldImmutableError",
    "ReconcileCancelledError",
    "AccountStateError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "SpecLoadError",
    "StateStoreError",
    # result
    "Ok",
    "Err",
    "Result",
    # secrets
    "SecretValue",
    "Credential",
    "generate_initial_password",
    "resolve_initial_password",
    "password_fingerprint",
    "fingerprint_matches",
    # settings
    "AccountSpineSettings",
    "get_settings",
    # logging
    "configure_logging",
    "get_logger",
    "LogContext",
]
