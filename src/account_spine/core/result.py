"""
Result envelope for per-step success/failure.

Provides a small Result[T] pattern (``Ok`` / ``Err``) used by the mutation
sequencer to record the outcome of every remote call without raising. A
reconciliation cycle that touches four fields produces four results; the
state committer reads them afterwards to decide which fields to persist.

Manifesto:
    - **Explicit over Implicit:** A field outcome is a value, not a
      try/except branch that the caller might forget
    - **Batch-friendly:** Collect outcomes from many calls, inspect them all
      at the end of the cycle

Examples:
    >>> ok = Ok("did:plc:abc")
    >>> ok.value
    'did:plc:abc'
    >>> isinstance(Err(ValueError("bad")), Err)
    True

Tags:
    result-pattern, error-handling, account-spine
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result carrying the exception that caused it."""

    error: Exception

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


__all__ = [
    "Ok",
    "Err",
    "Result",
]
