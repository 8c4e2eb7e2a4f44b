"""
CLI interface for MPAI Guard.

Provides command-line access to analysis, history and cost governance.
"""

import logging
import sys
import time
from datetime import date
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from mpai_guard.api.handlers import build_service
from mpai_guard.config.loader import AppConfig, load_config, with_cost_limits_enabled
from mpai_guard.core.classification import Method, describe_method
from mpai_guard.core.ledger import CostLedger
from mpai_guard.storage.repository import (
    CostRepository,
    SessionRepository,
    UserProfileRepository,
    initialize_schema,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_REJECTED = 2  # Cost limit rejection

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration")


def _load(config_path: Optional[str]) -> AppConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """MPAI Guard CLI."""
    if ctx.invoked_subcommand is None:
        console.print("MPAI Guard - Use --help to see available commands")


@app.command()
def status(config: Optional[str] = _CONFIG_OPTION):
    """Show the effective configuration."""
    cfg = _load(config)
    limits = cfg.cost_limits
    console.print(f"Database: {cfg.storage.db_path}")
    console.print(f"Model: {cfg.pricing.model}")
    state = "[green]enabled[/]" if limits.enabled else "[yellow]disabled[/]"
    console.print(f"Cost limits: {state}")
    console.print(
        f"  per request ${limits.max_cost_per_request:.2f} | "
        f"per user/day ${limits.max_cost_per_user_per_day:.2f} | "
        f"total/day ${limits.max_cost_total_per_day:.2f} | "
        f"per user/month ${limits.default_monthly_limit_per_user:.2f}"
    )


@app.command()
def init(config: Optional[str] = _CONFIG_OPTION):
    """Initialize the database."""
    cfg = _load(config)
    try:
        initialize_schema(cfg.storage.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def analyze(
    query: str = typer.Argument(..., help="Question or situation to analyze"),
    method: Optional[str] = typer.Option(None, "--method", "-m", help="Force an analysis method"),
    style: Optional[str] = typer.Option(None, "--style", "-s", help="natural, structured or abbreviated"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="professional or personal"),
    session: Optional[str] = typer.Option(None, "--session", help="Continue an existing session"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User identifier"),
    config: Optional[str] = _CONFIG_OPTION,
    enforce_limits: bool = typer.Option(
        False, "--enforce-limits", help="Check cost limits even if the config disables them",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline steps"),
):
    """Run one analysis through the full pipeline."""
    _configure_logging(verbose)
    cfg = _load(config)
    if enforce_limits:
        cfg = with_cost_limits_enabled(cfg)
    initialize_schema(cfg.storage.db_path)
    service = build_service(cfg)

    body = {
        "userQuery": query,
        "method": method,
        "outputStyle": style,
        "roleContext": role,
        "sessionId": session,
        "userId": user,
    }
    result = service.handle_analyze(body)
    payload = result.body

    if result.status_code == 200:
        console.print(f"\n[bold]{payload['method']}[/] | session {payload['sessionId']}\n")
        console.print(payload["response"])
        usage = payload["usage"]
        console.print(
            f"\n[dim]tokens in {usage['inputTokens']:,} / out {usage['outputTokens']:,} | "
            f"context messages {payload['contextInfo']['messageCount']}[/]"
        )
        sys.exit(EXIT_CODE_PASS)

    console.print(f"[red]Error ({result.status_code}):[/] {payload.get('error')}")
    sys.exit(EXIT_CODE_REJECTED if result.status_code == 429 else EXIT_CODE_FAIL)


@app.command()
def history(
    user: str = typer.Argument(..., help="User identifier"),
    session: Optional[str] = typer.Option(None, "--session", help="Show a single session"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum exchanges to show"),
    config: Optional[str] = _CONFIG_OPTION,
):
    """List recent exchanges for a user."""
    cfg = _load(config)
    repository = SessionRepository(cfg.storage.db_path)
    total = None
    try:
        if session:
            exchanges = repository.query_session(user, session, limit)
            total = repository.count_session_exchanges(user, session)
        else:
            exchanges = repository.list_user_history(user, limit)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not exchanges:
        console.print("\n[dim]No history found.[/]")
        return

    table = Table(title=f"History for {user}")
    table.add_column("When")
    table.add_column("Session")
    table.add_column("Method")
    table.add_column("Preview")
    for exchange in exchanges:
        table.add_row(
            exchange.timestamp.strftime("%Y-%m-%d %H:%M"),
            exchange.session_id[:8],
            exchange.method or "",
            (exchange.preview or "")[:60],
        )
    console.print(table)
    if total is not None:
        console.print(f"[dim]Showing {len(exchanges)} of {total} exchange(s) in session {session}[/]")


@app.command("delete-session")
def delete_session(
    user: str = typer.Argument(..., help="User identifier"),
    session: str = typer.Argument(..., help="Session identifier"),
    config: Optional[str] = _CONFIG_OPTION,
):
    """Delete every exchange of a session."""
    cfg = _load(config)
    try:
        deleted = SessionRepository(cfg.storage.db_path).delete_session(user, session)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Deleted {deleted} exchange(s)")


@app.command("purge-expired")
def purge_expired(config: Optional[str] = _CONFIG_OPTION):
    """Remove exchanges past their expiry marker."""
    cfg = _load(config)
    removed = SessionRepository(cfg.storage.db_path).purge_expired(int(time.time()))
    console.print(f"[green]✓[/] Removed {removed} expired exchange(s)")


@app.command()
def costs(
    user: str = typer.Argument(..., help="User identifier"),
    config: Optional[str] = _CONFIG_OPTION,
):
    """Show a user's spend for the current billing period."""
    cfg = _load(config)
    ledger = CostLedger(
        policy=cfg.cost_limits.to_policy(),
        cost_repository=CostRepository(cfg.storage.db_path),
        profile_repository=UserProfileRepository(cfg.storage.db_path),
    )
    spent = ledger.monthly_cost(user)
    limit = ledger.monthly_limit(user)
    console.print(f"\n[bold]Period:[/] {ledger.period_key(user)}")
    console.print(f"Spent: {_format_currency(spent)}")
    console.print(f"Limit: {_format_currency(limit)}")
    console.print(f"Remaining: {_format_currency(max(0.0, limit - spent))}")


@app.command("set-limit")
def set_limit(
    user: str = typer.Argument(..., help="User identifier"),
    amount: float = typer.Argument(..., help="Monthly limit in USD"),
    config: Optional[str] = _CONFIG_OPTION,
):
    """Set a per-user monthly limit override."""
    cfg = _load(config)
    try:
        UserProfileRepository(cfg.storage.db_path).set_monthly_limit(user, amount)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Monthly limit for {user} set to {_format_currency(amount)}")


@app.command("set-cycle")
def set_cycle(
    user: str = typer.Argument(..., help="User identifier"),
    cycle_start: str = typer.Argument(..., help="Billing cycle start date (YYYY-MM-DD)"),
    config: Optional[str] = _CONFIG_OPTION,
):
    """Anchor a user's billing period to a cycle start date."""
    cfg = _load(config)
    try:
        anchor = date.fromisoformat(cycle_start)
    except ValueError:
        console.print(f"[red]Error:[/] invalid date {cycle_start!r}, expected YYYY-MM-DD")
        sys.exit(EXIT_CODE_FAIL)
    try:
        UserProfileRepository(cfg.storage.db_path).set_billing_cycle_start(user, anchor)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Billing cycle for {user} starts on day {anchor.day}")


@app.command()
def methods():
    """List analysis methods."""
    table = Table(title="Analysis methods")
    table.add_column("Method")
    table.add_column("Description")
    for method in Method:
        table.add_row(method.value, describe_method(method))
    console.print(table)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


if __name__ == "__main__":
    app()
