"""
Root Typer application for the account-spine CLI.

Commands read desired configuration from YAML, reconcile through the
lifecycle controller and persist observed state in the JSON state file.
Every command exits 1 when any account ends the cycle with an error
diagnostic.
"""

from __future__ import annotations

from pathlib import Path

import typer

from account_spine.cli.utils import (
    CliOptions,
    CliSession,
    cancel_on_signal,
    console,
    err_console,
    fail,
    make_session,
    make_store,
    output_results,
    print_states,
)
from account_spine.config import AccountSpec, load_account_specs
from account_spine.core.errors import RemoteError, SpecLoadError, StateStoreError
from account_spine.core.logging import configure_logging
from account_spine.core.secrets import SecretValue
from account_spine.gateway import BACKENDS
from account_spine.reconcile import (
    LifecycleEvent,
    LifecyclePhase,
    LifecycleResult,
    ObservedState,
    ReconcileContext,
)

app = typer.Typer(
    name="account-spine",
    help="account-spine — declarative lifecycle management for PDS accounts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from account_spine import __version__

        typer.echo(f"account-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    backend: str = typer.Option("xrpc", "--backend", "-b", help=f"Gateway backend: {', '.join(BACKENDS)}"),
    state_file: str | None = typer.Option(None, "--state", "-s", help="State file path"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs", help="Log format"),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """account-spine CLI — plan, apply and destroy PDS accounts."""
    options = CliOptions(
        backend=backend,
        state_file=state_file,
        log_level=log_level,
        json_logs=json_logs,
    )
    settings = options.settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    ctx.obj = options


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_specs(config: Path, only: list[str] | None = None) -> list[AccountSpec]:
    try:
        specs = load_account_specs(config)
    except SpecLoadError as e:
        fail(e)
    if only:
        unknown = sorted(set(only) - {s.name for s in specs})
        if unknown:
            fail(SpecLoadError(f"No account named {', '.join(unknown)} in {config}"))
        specs = [s for s in specs if s.name in only]
    return specs


def _load_states(session: CliSession) -> dict[str, ObservedState]:
    try:
        return session.store.load()
    except StateStoreError as e:
        fail(e)


def _auth_token(session: CliSession) -> SecretValue | None:
    try:
        return session.auth_token()
    except RemoteError as e:
        fail(e)


def _save(session: CliSession, name: str, state: ObservedState | None) -> None:
    try:
        session.store.put(name, state)
    except StateStoreError as e:
        fail(e)


def _phase(observed: ObservedState | None) -> LifecyclePhase:
    return LifecyclePhase.ABSENT if observed is None else LifecyclePhase.PRESENT


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("validate")
def validate(
    ctx: typer.Context,
    config: Path = typer.Argument(..., help="Account YAML file"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Check the config and the session's privileges without changing anything."""
    specs = _load_specs(config)
    with make_session(ctx) as session:
        states = _load_states(session)
        token = _auth_token(session)
        results: dict[str, LifecycleResult] = {}
        for spec in specs:
            observed = states.get(spec.name)
            event = LifecycleEvent.CREATE if observed is None else LifecycleEvent.UPDATE
            diagnostics = session.controller.validate(
                spec.to_desired(), token, event, has_state=observed is not None
            )
            results[spec.name] = LifecycleResult(observed, _phase(observed), diagnostics=diagnostics)
    output_results(results, as_json=json_out, title="Validate")


@app.command("plan")
def plan(
    ctx: typer.Context,
    config: Path = typer.Argument(..., help="Account YAML file"),
    only: list[str] | None = typer.Option(None, "--only", "-n", help="Limit to these account names"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the changes ``apply`` would make."""
    specs = _load_specs(config, only)
    with make_session(ctx) as session:
        states = _load_states(session)
        results = {
            spec.name: session.controller.plan(spec.to_desired(), states.get(spec.name))
            for spec in specs
        }
    output_results(results, as_json=json_out, title="Plan")


@app.command("apply")
def apply(
    ctx: typer.Context,
    config: Path = typer.Argument(..., help="Account YAML file"),
    only: list[str] | None = typer.Option(None, "--only", "-n", help="Limit to these account names"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create or update every account in the config."""
    specs = _load_specs(config, only)
    results: dict[str, LifecycleResult] = {}
    with make_session(ctx) as session:
        states = _load_states(session)
        token = _auth_token(session)
        for spec in specs:
            rctx = ReconcileContext(resource=spec.name, caller="cli")
            with cancel_on_signal(rctx):
                result = session.controller.apply(
                    spec.to_desired(), states.get(spec.name), token, rctx
                )
            _save(session, spec.name, result.state)
            results[spec.name] = result
            if rctx.cancelled:
                break
    output_results(results, as_json=json_out, title="Apply")


@app.command("refresh")
def refresh(
    ctx: typer.Context,
    names: list[str] | None = typer.Argument(None, help="Account names (default: all)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Re-read stored accounts from the remote service."""
    results: dict[str, LifecycleResult] = {}
    with make_session(ctx) as session:
        states = _load_states(session)
        for name in names or list(states):
            observed = states.get(name)
            if observed is None:
                err_console.print(f"[dim]No state for {name}; skipping.[/dim]")
                continue
            rctx = ReconcileContext(resource=name, caller="cli")
            result = session.controller.read(observed.identity_key, previous=observed, ctx=rctx)
            _save(session, name, result.state)
            results[name] = result
    output_results(results, as_json=json_out, title="Refresh")


@app.command("destroy")
def destroy(
    ctx: typer.Context,
    names: list[str] | None = typer.Argument(None, help="Account names (default: all)"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete stored accounts from the remote service."""
    results: dict[str, LifecycleResult] = {}
    with make_session(ctx) as session:
        states = _load_states(session)
        targets = [n for n in (names or list(states)) if n in states]
        if not targets:
            console.print("[dim]Nothing to destroy.[/dim]")
            return

        if not force:
            if not typer.confirm(f"Delete {len(targets)} account(s): {', '.join(targets)}?"):
                console.print("[dim]Aborted.[/dim]")
                raise typer.Exit(code=0)

        token = _auth_token(session)
        for name in targets:
            rctx = ReconcileContext(resource=name, caller="cli")
            with cancel_on_signal(rctx):
                result = session.controller.destroy(states[name], token, rctx)
            _save(session, name, result.state)
            results[name] = result
    output_results(results, as_json=json_out, title="Destroy")


@app.command("import")
def import_account(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Account name to store the state under"),
    identity_key: str = typer.Argument(..., help="Existing account DID"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Adopt an existing account into the state file."""
    with make_session(ctx) as session:
        states = _load_states(session)
        if name in states:
            fail(StateStoreError(f"Account {name} is already managed ({states[name].identity_key})"))
        result = session.controller.import_state(
            identity_key, ReconcileContext(resource=name, caller="cli")
        )
        if result.state is not None:
            _save(session, name, result.state)
    output_results({name: result}, as_json=json_out, title="Import")


@app.command("show")
def show(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Account name (default: all)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show stored account state."""
    try:
        states = make_store(ctx).load()
    except StateStoreError as e:
        fail(e)
    if name is not None:
        if name not in states:
            fail(StateStoreError(f"No state for account {name}"))
        states = {name: states[name]}
    print_states(states, as_json=json_out)
