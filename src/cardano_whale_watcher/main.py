"""
Main CLI application for Cardano Whale Watcher.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .analyzer import analyze_whale_activity
from .api_clients import BlockfrostClient, CoinGeckoClient
from .config import Config
from .exceptions import ConfigError, UpstreamError
from .models import ActivityAnalysis, TransactionRecord
from .resolver import AddressResolver, popular_handles
from .server import WhaleWatcherServer
from .utils import format_ada, short_address

logger = logging.getLogger(__name__)


app = typer.Typer(
    name="whale-watcher",
    help="Watch the Cardano chain for whale transactions and track wallets in real time."
)

console = Console()


def load_config() -> Config:
    """Load application configuration."""
    try:
        return Config.from_env()
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print(
            "\n[yellow]Please create a .env file with your API keys:[/yellow]")
        console.print("BLOCKFROST_API_KEY=your_key_here")
        console.print("COINGECKO_API_KEY=your_key_here  # Optional")
        raise typer.Exit(1)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Seconds between whale refreshes"),
):
    """Start the HTTP/WebSocket server and background whale updates."""
    config = load_config()
    if host:
        config.host = host
    if port:
        config.port = port
    if interval:
        config.update_interval = interval

    configure_logging(config.log_level)
    console.print("[green]Blockfrost API: configured[/green]")

    server = WhaleWatcherServer(config)
    code = asyncio.run(server.serve())
    raise typer.Exit(code)


def display_snapshot(transactions: List[TransactionRecord], analysis: ActivityAnalysis,
                     price: Optional[float]):
    """Display whale activity in a rich table."""
    price_str = f"${price:.4f}" if price is not None else "[red]unavailable[/red]"
    console.print(Panel(
        f"Activity Score: [bold]{analysis.score}[/bold]/100\n"
        f"Sentiment: [bold]{analysis.sentiment.value}[/bold]\n"
        f"Total Volume: [green]{format_ada(analysis.total_volume)}[/green]\n"
        f"ADA Price: {price_str}",
        title="Whale Activity",
        expand=False
    ))

    if not transactions:
        console.print("[yellow]No whale transactions found in recent blocks.[/yellow]")
        return

    table = Table(title="\nRecent Whale Transactions")
    table.add_column("Hash", style="yellow", no_wrap=True)
    table.add_column("Amount", style="green", justify="right")
    table.add_column("Type", style="blue", no_wrap=True)
    table.add_column("Confidence", style="magenta", no_wrap=True)
    table.add_column("Date", style="white", no_wrap=True)

    for tx in transactions:
        table.add_row(
            f"{tx.hash[:12]}...",
            format_ada(tx.amount),
            tx.direction,
            tx.confidence or "",
            tx.timestamp.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def snapshot(
    limit: int = typer.Option(10, "--limit", "-n", help="Transactions to show"),
):
    """Scan recent blocks once and print whale activity."""
    config = load_config()
    chain = BlockfrostClient(config)
    prices = CoinGeckoClient(config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task1 = progress.add_task("Scanning recent blocks...", total=None)
        try:
            transactions = chain.get_whale_transactions()
        except UpstreamError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        progress.update(task1, description="✓ Scanned recent blocks")

        task2 = progress.add_task("Getting ADA price...", total=None)
        try:
            price = prices.get_ada_price()["price"]
        except UpstreamError as e:
            logger.warning(f"Price fetch error: {e}")
            price = None
        progress.update(task2, description="✓ Fetched ADA price")

    display_snapshot(transactions[:limit], analyze_whale_activity(transactions), price)


@app.command()
def resolve(
    value: str = typer.Argument(..., help="Cardano address (addr1...) or handle ($alice)"),
):
    """Resolve an address or $handle without tracking it."""
    resolver = AddressResolver()
    result = asyncio.run(resolver.resolve(value))

    if not result.success:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"Address: [yellow]{result.address}[/yellow]\n"
        f"Handle: {result.handle or '-'}\n"
        f"Source: [green]{result.source}[/green]",
        title=result.default_name or short_address(result.address),
        expand=False
    ))


@app.command()
def popular():
    """List well-known handles worth tracking."""
    table = Table(title="Popular Handles")
    table.add_column("Handle", style="cyan")
    table.add_column("Nickname", style="white")
    for entry in popular_handles():
        table.add_row(entry["input"], entry["nickname"])
    console.print(table)


@app.command()
def setup():
    """Setup the application by creating a .env file template."""
    env_content = """# Cardano Whale Watcher Configuration

# Required: Blockfrost project id (get from https://blockfrost.io)
BLOCKFROST_API_KEY=your_blockfrost_project_id_here

# Optional: CoinGecko pro key
# COINGECKO_API_KEY=your_coingecko_api_key_here

# Server
PORT=3000
UPDATE_INTERVAL=45

# Analysis Settings
WHALE_THRESHOLD_ADA=50000
STALE_AFTER_MINUTES=5
RATE_LIMIT_DELAY=0.1
# Comma separated exchange addresses used to label whale buys and sells
# EXCHANGE_ADDRESSES=

LOG_LEVEL=INFO
"""

    env_path = Path(".env")
    if env_path.exists():
        console.print("[yellow].env file already exists![/yellow]")
        if not typer.confirm("Overwrite existing .env file?"):
            return

    with open(env_path, 'w') as f:
        f.write(env_content)

    console.print(f"[green]Created .env file at {env_path.absolute()}[/green]")
    console.print(
        "\n[yellow]Please edit the .env file and add your API key:[/yellow]")
    console.print("1. Get a Blockfrost project id from https://blockfrost.io")
    console.print(
        "2. Replace 'your_blockfrost_project_id_here' with your real key")
    console.print("3. Run: whale-watcher serve")


if __name__ == "__main__":
    app()
