"""
Credential materialization and secret handling.

Three small pieces live here:

- :class:`SecretValue` keeps a credential out of ``str()``, ``repr()`` and
  log output until someone explicitly asks for it.
- :func:`generate_initial_password` produces the initial account password
  when the caller did not supply one.
- :func:`password_fingerprint` turns a caller-supplied password into the
  salted placeholder stored in ObservedState, so state never carries
  plaintext or an unsalted hash of it.

Generation follows the PDS admin tooling: 30 random bytes, URL-safe base64,
truncated to 30 characters.

Examples:
    >>> cred = generate_initial_password()
    >>> cred.generated
    True
    >>> len(cred.secret)
    30
    >>> str(cred.secret)
    '[REDACTED]'
    >>> fingerprint_matches("hunter2", password_fingerprint("hunter2"))
    True

Tags:
    secrets, credentials, password-generation, account-spine
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from account_spine.core.errors import RandomnessUnavailableError

INITIAL_PASSWORD_LENGTH = 30
FINGERPRINT_PREFIX = "scrypt:"
FINGERPRINT_SALT_BYTES = 16
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_SCRYPT_DKLEN = 32


class SecretValue:
    """Wrapper for secret values that prevents accidental logging.

    The string representation shows ``[REDACTED]`` instead of the value.
    Use ``.get_secret()`` to access the actual value.

    Example:
        >>> secret = SecretValue("my_password")
        >>> print(secret)           # [REDACTED]
        >>> secret.get_secret()     # "my_password"
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def get_secret(self) -> str:
        """Get the actual secret value."""
        return self._value

    def __str__(self) -> str:
        return "[REDACTED]"

    def __repr__(self) -> str:
        return "SecretValue('[REDACTED]')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return secrets.compare_digest(self._value, other._value)
        return False

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

    def __len__(self) -> int:
        return len(self._value)


@dataclass(frozen=True)
class Credential:
    """An initial account password and where it came from.

    ``generated`` is True only when the engine produced the secret; the
    lifecycle controller uses it to decide whether the one-time plaintext
    notice is emitted.
    """

    secret: SecretValue
    generated: bool


def generate_initial_password(
    length: int = INITIAL_PASSWORD_LENGTH,
    *,
    random_bytes: Callable[[int], bytes] = secrets.token_bytes,
) -> Credential:
    """Generate a URL-safe initial password of exactly ``length`` characters.

    Raises:
        RandomnessUnavailableError: the secure random source failed or
            returned fewer bytes than requested.
    """
    try:
        raw = random_bytes(length)
    except (OSError, NotImplementedError) as e:
        raise RandomnessUnavailableError(
            "Failed to generate random initial password", cause=e
        ) from e

    if len(raw) < length:
        raise RandomnessUnavailableError(
            f"Secure random source returned {len(raw)} of {length} bytes"
        )

    encoded = base64.urlsafe_b64encode(raw).decode("ascii")
    return Credential(secret=SecretValue(encoded[:length]), generated=True)


def resolve_initial_password(
    supplied: str | None,
    *,
    random_bytes: Callable[[int], bytes] = secrets.token_bytes,
) -> Credential:
    """Use the caller's password if given, otherwise generate one."""
    if supplied:
        return Credential(secret=SecretValue(supplied), generated=False)
    return generate_initial_password(random_bytes=random_bytes)


def password_fingerprint(password: str, *, salt: bytes | None = None) -> str:
    """Salted scrypt placeholder for a caller-supplied password.

    Format: ``scrypt:<salt hex>:<digest hex>``. A fresh random salt is drawn
    unless one is passed, so two placeholders for the same password differ;
    compare with :func:`fingerprint_matches`.
    """
    if salt is None:
        salt = secrets.token_bytes(FINGERPRINT_SALT_BYTES)
    return f"{FINGERPRINT_PREFIX}{salt.hex()}:{_scrypt(password, salt).hex()}"


def fingerprint_matches(password: str, placeholder: str | None) -> bool:
    """Whether ``placeholder`` was produced from ``password``.

    Unknown or unparseable placeholders never match.
    """
    if not placeholder or not placeholder.startswith(FINGERPRINT_PREFIX):
        return False
    salt_hex, _, digest_hex = placeholder[len(FINGERPRINT_PREFIX):].partition(":")
    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
    except ValueError:
        return False
    if not salt or not expected:
        return False
    return hmac.compare_digest(_scrypt(password, salt), expected)


def _scrypt(password: str, salt: bytes) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=_SCRYPT_DKLEN,
    )


__all__ = [
    "INITIAL_PASSWORD_LENGTH",
    "SecretValue",
    "Credential",
    "generate_initial_password",
    "resolve_initial_password",
    "password_fingerprint",
    "fingerprint_matches",
]
