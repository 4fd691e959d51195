"""
Cycle-scoped context for reconciliation.

Every lifecycle call runs inside a :class:`ReconcileContext`. It carries the
cycle identifier used in log context and the cooperative cancellation flag
the sequencer checks between mutation steps. A mutation that has started is
never abandoned: cancellation only stops the *next* step.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from account_spine.core.errors import ReconcileCancelledError


@dataclass
class ReconcileContext:
    """Context passed to every lifecycle call.

    Attributes:
        cycle_id: Unique ID for this reconciliation cycle (auto-generated).
        resource: Name of the declared resource, for logging.
        caller: Origin of the request (``"cli"``, ``"sdk"``...).
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    cycle_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    resource: str | None = None
    caller: str = "sdk"
    metadata: dict[str, Any] = field(default_factory=dict)
    _cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)

    def cancel(self) -> None:
        """Request cancellation; honored before the next mutation step."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ReconcileCancelledError()

    def log_fields(self) -> dict[str, Any]:
        fields = {"cycle_id": self.cycle_id, "caller": self.caller}
        if self.resource:
            fields["resource"] = self.resource
        return fields
