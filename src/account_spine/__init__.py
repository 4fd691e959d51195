"""
Account Spine - declarative lifecycle management for PDS accounts.

- account_spine.core: errors, results, secrets, settings, logging
- account_spine.gateway: remote service adapters (XRPC, in-memory)
- account_spine.reconcile: diff, sequencing and lifecycle control
"""

__version__ = "0.1.0"

from account_spine.core import *  # noqa
from account_spine.reconcile import (  # noqa: E402
    DesiredConfiguration,
    LifecycleController,
    LifecycleResult,
    ObservedState,
    ReconcileContext,
)
