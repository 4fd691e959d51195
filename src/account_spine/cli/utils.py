"""
CLI utility helpers — session wiring and output formatting.
"""

from __future__ import annotations

import json
import signal
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from account_spine.core.errors import AccountSpineError
from account_spine.core.secrets import SecretValue
from account_spine.core.settings import AccountSpineSettings, get_settings
from account_spine.gateway import AccountGateway, build_gateway
from account_spine.reconcile import LifecycleController, LifecycleResult, ReconcileContext, Severity
from account_spine.state import StateStore

console = Console()
err_console = Console(stderr=True)


# ── Options / session ────────────────────────────────────────────────────


@dataclass
class CliOptions:
    """Global options collected by the root callback."""

    backend: str = "xrpc"
    state_file: str | None = None
    log_level: str | None = None
    json_logs: bool | None = None

    def settings(self) -> AccountSpineSettings:
        try:
            return get_settings(
                state_file=self.state_file,
                log_level=self.log_level,
                json_logs=self.json_logs,
            )
        except ValidationError as e:
            err_console.print(f"[bold red]Invalid settings:[/bold red] {e}")
            raise typer.Exit(code=1)


@dataclass
class CliSession:
    """Gateway, controller and state store for one CLI invocation."""

    settings: AccountSpineSettings
    gateway: AccountGateway
    controller: LifecycleController
    store: StateStore
    _token: SecretValue | None = field(default=None, repr=False)

    def __enter__(self) -> CliSession:
        return self

    def __exit__(self, *args) -> None:
        close = getattr(self.gateway, "close", None)
        if callable(close):
            close()

    def auth_token(self) -> SecretValue | None:
        """Caller session token for the precondition gate.

        Uses ``ACCOUNT_SPINE_ACCESS_TOKEN`` when set, otherwise logs in with
        the configured session identifier and password.
        """
        if self._token is not None:
            return self._token
        if self.settings.access_token is not None:
            self._token = SecretValue(self.settings.access_token.get_secret_value())
        elif self.settings.session_identifier and self.settings.session_password:
            create_session = getattr(self.gateway, "create_session", None)
            if callable(create_session):
                self._token = create_session(
                    self.settings.session_identifier,
                    SecretValue(self.settings.session_password.get_secret_value()),
                )
        return self._token


def make_session(ctx: typer.Context) -> CliSession:
    """Build the session from the root callback's options."""
    options: CliOptions = ctx.obj or CliOptions()
    settings = options.settings()
    try:
        gateway = build_gateway(settings, options.backend)
    except AccountSpineError as e:
        fail(e)
    return CliSession(
        settings=settings,
        gateway=gateway,
        controller=LifecycleController.from_settings(gateway, settings),
        store=StateStore(settings.state_file),
    )


def make_store(ctx: typer.Context) -> StateStore:
    options: CliOptions = ctx.obj or CliOptions()
    return StateStore(options.settings().state_file)


def fail(error: AccountSpineError) -> NoReturn:
    """Print an error and exit 1."""
    err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error.message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────

_SEVERITY_STYLE = {Severity.WARNING: "yellow", Severity.ERROR: "bold red"}


def output_results(
    results: dict[str, LifecycleResult],
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render lifecycle results and exit 1 if any carries an error."""
    if as_json:
        payload = {name: r.to_dict() for name, r in results.items()}
        console.print_json(json.dumps(payload, default=str))
    else:
        for name, result in results.items():
            _print_result(name, result, title=title)

    if any(r.has_errors for r in results.values()):
        raise typer.Exit(code=1)


def _print_result(name: str, result: LifecycleResult, *, title: str = "") -> None:
    heading = f"{title} {name}".strip()
    console.print(f"[bold]{heading}[/bold] [dim]({result.phase.value})[/dim]")

    if result.mutations:
        table = Table(show_lines=False, pad_edge=False)
        table.add_column("field")
        table.add_column("from", overflow="fold")
        table.add_column("to", overflow="fold")
        for m in result.mutations:
            table.add_row(
                m.target.value,
                m.display_previous,
                m.display_value + (" [dim](local)[/dim]" if m.local_only else ""),
            )
        console.print(table)
    elif not result.diagnostics:
        console.print("  [dim]No changes.[/dim]")

    for d in result.diagnostics:
        style = _SEVERITY_STYLE[d.severity]
        console.print(f"  [{style}]{d.severity.value}[/{style}] {escape(d.summary)}: {escape(d.detail)}", highlight=False)


def print_states(states: dict[str, Any], *, as_json: bool = False) -> None:
    """Render stored ObservedStates."""
    if as_json:
        console.print_json(json.dumps({n: s.to_dict() for n, s in states.items()}, default=str))
        return
    if not states:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title="Accounts", show_lines=False, pad_edge=False)
    for col in ("name", "identity_key", "handle", "email", "display_name", "password"):
        table.add_column(col, overflow="fold")
    for name, s in states.items():
        table.add_row(
            name,
            s.identity_key,
            s.handle,
            s.email,
            s.display_name or "",
            "tracked" if s.password_placeholder else "",
        )
    console.print(table)


# ── Cancellation ─────────────────────────────────────────────────────────


@contextmanager
def cancel_on_signal(rctx: ReconcileContext) -> Iterator[ReconcileContext]:
    """Turn SIGINT/SIGTERM into cooperative cancellation of ``rctx``.

    The mutation in flight completes; the next step is skipped.
    """

    def _handle_signal(signum, frame):
        err_console.print(f"[yellow]Received signal {signum}, finishing current step...[/yellow]")
        rctx.cancel()

    previous: dict[int, Any] = {}
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _handle_signal)
    except (ValueError, OSError):
        pass  # not in the main thread

    try:
        yield rctx
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
