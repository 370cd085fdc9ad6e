"""
CLI interface for YT Stock AI.

Provides command-line access to setup, serving and account administration.
"""

import logging
import sqlite3
import sys
from datetime import datetime, timezone
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from yt_stock_ai.config.loader import AppConfig, load_app_config
from yt_stock_ai.core.usage import FREE_TIER_QUOTA, current_month, effective_count
from yt_stock_ai.storage.models import SubscriptionTier
from yt_stock_ai.storage.repository import (
    RecommendationRepository,
    UserRepository,
    initialize_schema,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML config (defaults to $YT_STOCK_AI_CONFIG)"
)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(path: Optional[str]) -> AppConfig:
    try:
        config = load_app_config(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    configure_logging(config.logging.level)
    return config


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """YT Stock AI CLI."""
    if ctx.invoked_subcommand is None:
        console.print("YT Stock AI - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = ConfigOption):
    """Initialize the YT Stock AI database."""
    config = _load_config(config_path)
    try:
        initialize_schema(config.database.path)
        console.print(f"[green]✓[/] Database initialized at {config.database.path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def serve(
    config_path: Optional[str] = ConfigOption,
    host: Optional[str] = typer.Option(None, "--host", help="Override server.host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override server.port"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from yt_stock_ai.web.app import build_app

    config = _load_config(config_path)
    uvicorn.run(
        build_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.logging.level.lower(),
    )


@app.command("set-tier")
def set_tier(
    email: str = typer.Argument(..., help="User email"),
    tier: SubscriptionTier = typer.Argument(..., help="free or premium"),
    config_path: Optional[str] = ConfigOption,
):
    """Change a user's subscription tier."""
    config = _load_config(config_path)
    if not UserRepository(config.database.path).set_subscription(email, tier):
        console.print(f"[red]No user with email[/] {email}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] {email} is now on the {tier.value} tier")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    email: str = typer.Argument(..., help="User email"),
    config_path: Optional[str] = ConfigOption,
):
    """Show a user's tier and analyses used this month."""
    config = _load_config(config_path)
    user = UserRepository(config.database.path).find_by_email(email)
    if user is None:
        console.print(f"[red]No user with email[/] {email}")
        sys.exit(EXIT_CODE_FAIL)

    now = datetime.now(timezone.utc)
    used = effective_count(user.usage, now)

    table = Table(title=f"Usage for {email}")
    table.add_column("Tier")
    table.add_column("Month")
    table.add_column("Used", justify="right")
    table.add_column("Quota", justify="right")
    table.add_row(
        user.subscription.value,
        current_month(now),
        str(used),
        "unlimited" if user.is_premium else str(FREE_TIER_QUOTA),
    )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command("top-stocks")
def top_stocks(
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=50, help="Number of stocks to show"),
    config_path: Optional[str] = ConfigOption,
):
    """Show the most recommended stocks across analyzed videos."""
    config = _load_config(config_path)
    try:
        stocks = RecommendationRepository(config.database.path).top_stocks(limit)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("\n[bold yellow]Database not initialized[/]")
            console.print("Run `yt-stock-ai init` first.\n")
            sys.exit(EXIT_CODE_FAIL)
        raise
    if not stocks:
        console.print("\n[bold yellow]No recommendations stored yet[/]\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Top Recommended Stocks")
    table.add_column("#", justify="right")
    table.add_column("Company")
    table.add_column("Ticker")
    table.add_column("Videos", justify="right")
    for rank, stock in enumerate(stocks, start=1):
        table.add_row(str(rank), stock["company_name"], stock["ticker"], str(stock["count"]))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
