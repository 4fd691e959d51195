"""
JSON file store for observed account state.

Stands in for the host's state persistence: one JSON file maps resource
names to the :class:`ObservedState` the last cycle committed. Only the
password fingerprint is ever written, never a password.

File layout::

    {
      "version": 1,
      "resources": {
        "alice": {"identity_key": "did:plc:...", "handle": "...", ...}
      }
    }
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from account_spine.core.errors import StateStoreError
from account_spine.core.logging import get_logger
from account_spine.reconcile.models import ObservedState

logger = get_logger(__name__)

STATE_VERSION = 1


class StateStore:
    """Named ObservedStates in a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict[str, ObservedState]:
        """All stored states; an absent file is an empty store."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StateStoreError(f"Cannot read state file {self.path}: {e}", cause=e) from e

        if not isinstance(data, dict) or data.get("version") != STATE_VERSION:
            raise StateStoreError(
                f"Unsupported state file format in {self.path}"
            ).with_context(path=str(self.path))

        try:
            return {
                name: ObservedState.from_dict(entry)
                for name, entry in data.get("resources", {}).items()
            }
        except (KeyError, TypeError, AttributeError) as e:
            raise StateStoreError(f"Corrupt entry in state file {self.path}: {e}", cause=e) from e

    def get(self, name: str) -> ObservedState | None:
        return self.load().get(name)

    def put(self, name: str, state: ObservedState | None) -> None:
        """Store ``state`` under ``name``; None removes the entry."""
        states = self.load()
        if state is None:
            states.pop(name, None)
        else:
            states[name] = state
        self._write(states)
        logger.debug("state_saved", resource=name, present=state is not None)

    def _write(self, states: dict[str, ObservedState]) -> None:
        payload = {
            "version": STATE_VERSION,
            "resources": {name: s.to_dict() for name, s in sorted(states.items())},
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".json.tmp")
        except OSError as e:
            raise StateStoreError(f"Cannot write state file {self.path}: {e}", cause=e) from e

        # Atomic write
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            os.unlink(tmp_path)
            raise StateStoreError(f"Cannot write state file {self.path}: {e}", cause=e) from e


__all__ = [
    "STATE_VERSION",
    "StateStore",
]
