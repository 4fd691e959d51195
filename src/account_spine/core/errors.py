"""
Structured error types for account-spine.

Provides the typed error hierarchy used across the reconciliation engine.
Every error carries a category, a retryable flag, structured context and an
optional chained cause, so the lifecycle controller can translate failures
into caller-facing diagnostics without losing detail.

Manifesto:
    - **Typed Error Hierarchy:** Gate failures, field failures and read
      failures are different types, handled at different seams
    - **Explicit Retry Semantics:** Each error knows whether the *caller*
      may retry; the engine itself never retries
    - **Rich Context:** Errors carry the field, identity key and XRPC method
    - **Error Chaining:** The original transport exception is preserved

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                     AccountSpineError                            │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  GateError               RemoteError            ConfigError      │
        │  (fatal, cycle aborts)   (field level)          (CONFIG)         │
        │       │                       │                      │           │
        │  RandomnessUnavailable   ServiceRejected        MissingConfig    │
        │  PrivilegeInsufficient   TransportError         InvalidConfig    │
        │  TokenMalformed          VersionConflict        SpecLoadError    │
        │                          AccountNotFound                         │
        │                                                                  │
        │  ReconcileError          StateStoreError                         │
        │  (INTERNAL)              (STORAGE)                               │
        │       │                                                          │
        │  FieldImmutable                                                  │
        │  ReconcileCancelled                                              │
        │  AccountStateError                                               │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    Gate errors abort the whole cycle before any mutation. Remote errors
    raised while applying a single field are recorded against that field
    and the cycle continues. A remote error from the primary create call is
    fatal to the cycle.

Examples:
    >>> err = ServiceRejectedError("Handle already taken", xrpc_error="HandleNotAvailable")
    >>> err.retryable
    False
    >>> err.with_context(field_name="handle").context.field_name
    'handle'

Tags:
    error-handling, exception-hierarchy, reconciliation, account-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, timeout, DNS
    REMOTE = "REMOTE"             # The remote service rejected the request
    CONFLICT = "CONFLICT"         # Optimistic concurrency, immutable fields
    NOT_FOUND = "NOT_FOUND"       # Resource is gone
    AUTH = "AUTH"                 # Token shape, privilege
    SECURITY = "SECURITY"         # Entropy source
    CONFIG = "CONFIG"             # Missing config, invalid settings
    VALIDATION = "VALIDATION"     # Desired configuration problems
    STORAGE = "STORAGE"           # Local state persistence
    INTERNAL = "INTERNAL"         # Bugs, invalid lifecycle transitions


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are serialized by :meth:`to_dict`, so errors raised
    deep in a gateway carry just what they know and the controller can add
    the rest with :meth:`AccountSpineError.with_context`.

    Attributes:
        field_name: Account field the failure belongs to (``email``, ``handle``...)
        identity_key: Server-assigned identifier of the account
        operation: Lifecycle operation (``create``, ``update``...)
        xrpc_method: Remote method that failed
        http_status: HTTP status returned by the remote, if any
        metadata: Additional key-value pairs

    Guardrails:
        ❌ DON'T: Put passwords, invite codes or tokens in metadata
        ✅ DO: Store identifiers and small values only
    """

    field_name: str | None = None
    identity_key: str | None = None
    operation: str | None = None
    xrpc_method: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["field_name", "identity_key", "operation", "xrpc_method", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class AccountSpineError(Exception):
    """
    Base exception for all account-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so raising
    sites only pass what differs from the defaults.

    Examples:
        >>> err = AccountSpineError("Something went wrong")
        >>> err.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> err.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AccountSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ServiceRejectedError("rejected").with_context(
                field_name="email",
                identity_key="did:plc:abc",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# GATE ERRORS (Fatal, no mutation attempted)
# =============================================================================


class GateError(AccountSpineError):
    """
    A precondition failed; the cycle aborts with no state change.
    """

    default_category = ErrorCategory.AUTH
    default_retryable = False


class RandomnessUnavailableError(GateError):
    """The secure random source could not supply entropy."""

    default_category = ErrorCategory.SECURITY


class TokenMalformedError(GateError):
    """The caller's authentication token could not be decoded."""


class PrivilegeInsufficientError(GateError):
    """The caller's token carries a restricted scope."""

    def __init__(self, message: str, *, scope: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.scope = scope


# =============================================================================
# REMOTE ERRORS (Field level, recorded)
# =============================================================================


class RemoteError(AccountSpineError):
    """Failure reported by, or while talking to, the remote service."""

    default_category = ErrorCategory.REMOTE
    default_retryable = False


class ServiceRejectedError(RemoteError):
    """
    The remote service refused the request (bad invite, taken handle,
    invalid email...).

    ``xrpc_error`` holds the machine-readable error name when the remote
    returned one.
    """

    def __init__(self, message: str, *, xrpc_error: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.xrpc_error = xrpc_error

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.xrpc_error:
            result["xrpc_error"] = self.xrpc_error
        return result


class TransportError(RemoteError):
    """
    The request did not complete (connection, timeout, 5xx).

    Marked retryable so the *caller* knows re-running the cycle may help.
    The engine itself does not retry.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class VersionConflictError(RemoteError):
    """The profile document changed between read and write."""

    default_category = ErrorCategory.CONFLICT


class AccountNotFoundError(RemoteError):
    """No account exists for the identity key."""

    default_category = ErrorCategory.NOT_FOUND


# =============================================================================
# RECONCILE ERRORS
# =============================================================================


class ReconcileError(AccountSpineError):
    """Errors raised by the engine itself rather than the remote."""

    default_category = ErrorCategory.INTERNAL


class FieldImmutableError(ReconcileError):
    """A field differs from state but policy forbids changing it."""

    default_category = ErrorCategory.CONFLICT

    def __init__(self, field_name: str, current: str, desired: str):
        super().__init__(
            f"{field_name} cannot be changed from {current!r} to {desired!r}; "
            "the account must be replaced",
            context=ErrorContext(field_name=field_name),
        )
        self.field_name = field_name


class ReconcileCancelledError(ReconcileError):
    """The cycle was cancelled between mutation steps."""

    def __init__(self, message: str = "Reconciliation cancelled", *, skipped: list[str] | None = None):
        super().__init__(message)
        self.skipped = skipped or []


class AccountStateError(ReconcileError):
    """An operation was requested that the lifecycle does not allow."""


# =============================================================================
# CONFIG / STORAGE ERRORS
# =============================================================================


class ConfigError(AccountSpineError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        super().__init__(message or f"Missing required config: {key}")
        self.key = key


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        super().__init__(message or f"Invalid config value for {key}: {value!r}")
        self.key = key
        self.value = value


class SpecLoadError(ConfigError):
    """A desired-configuration document could not be loaded."""

    default_category = ErrorCategory.VALIDATION


class StateStoreError(AccountSpineError):
    """Persisted state could not be read or written."""

    default_category = ErrorCategory.STORAGE


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AccountSpineError",
    # Gate
    "GateError",
    "RandomnessUnavailableError",
    "TokenMalformedError",
    "PrivilegeInsufficientError",
    # Remote
    "RemoteError",
    "ServiceRejectedError",
    "TransportError",
    "VersionConflictError",
    "AccountNotFoundError",
    # Reconcile
    "ReconcileError",
    "FieldImmutableError",
    "ReconcileCancelledError",
    "AccountStateError",
    # Config / storage
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "SpecLoadError",
    "StateStoreError",
]
