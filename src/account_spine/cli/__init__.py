"""
CLI layer for account-spine.

Provides a Typer application whose commands delegate to the lifecycle
controller (``account_spine.reconcile``). This package handles only the
terminal side: argument parsing, coloured output and tables.

Entry point::

    account-spine --help
"""

from account_spine.cli.app import app

__all__ = ["app"]
