"""CLI entry point using Typer."""

import signal
import threading

import structlog
import typer
from rich.console import Console
from rich.table import Table

from salesbot.config import settings

app = typer.Typer(
    name="salesbot",
    help="NFT sales bot - marketplace sale and listing notifications for Discord.",
)
console = Console()
destinations_app = typer.Typer(help="Manage notification destinations.")
app.add_typer(destinations_app, name="destinations")
collections_app = typer.Typer(help="Manage tracked collections per destination.")
app.add_typer(collections_app, name="collections")
feeds_app = typer.Typer(help="Marketplace feed helpers.")
app.add_typer(feeds_app, name="feeds")

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)


def _stats_table(title: str, stats: dict) -> Table:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green")
    for key, value in stats.items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    return table


@app.command()
def init_db() -> None:
    """Create tables directly (use Alembic migrations in production)."""
    from salesbot.db import init_db as create_tables

    create_tables()
    console.print("[bold green]Tables created.[/bold green]")


@app.command()
def seed(destinations_path: str = typer.Option("destinations.yaml", help="Path to destinations YAML file")) -> None:
    """Seed destinations and tracked collections from YAML."""
    from salesbot.seed import seed_destinations

    console.print("[bold blue]Seeding destinations...[/bold blue]")

    try:
        stats = seed_destinations(destinations_path)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(_stats_table("Seed Results", stats))
    console.print("[bold green]Done![/bold green]")


@app.command()
def run() -> None:
    """Run the scheduler loop until interrupted."""
    from salesbot.db import acquire_advisory_lock, get_db, release_advisory_lock
    from salesbot.pipeline.scheduler import Scheduler
    from salesbot.pipeline.tick import build_default_pipeline

    stop_event = threading.Event()

    def _stop(signum, frame) -> None:
        console.print("[yellow]Stopping...[/yellow]")
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    with get_db() as session:
        if not acquire_advisory_lock(session, "salesbot_scheduler"):
            console.print("[bold red]Another salesbot instance is already running.[/bold red]")
            raise typer.Exit(1)
        try:
            console.print(
                f"[bold blue]Polling every {settings.tick_interval_seconds:g}s. Ctrl+C to stop.[/bold blue]"
            )
            Scheduler(build_default_pipeline()).run_forever(stop_event)
        finally:
            release_advisory_lock(session, "salesbot_scheduler")


@app.command()
def tick() -> None:
    """Run a single pipeline tick and print its stats."""
    from salesbot.pipeline.tick import build_default_pipeline

    pipeline = build_default_pipeline()
    pipeline.resolver.refresh()
    stats = pipeline.run_tick()
    console.print(_stats_table("Tick Results", stats))


@app.command()
def seed_watermarks() -> None:
    """Raise each class watermark to the newest event the feeds report."""
    from salesbot.pipeline.tick import build_default_pipeline

    seeded = build_default_pipeline().seed_watermarks()
    console.print(_stats_table("Watermarks (ms)", seeded))


@app.command()
def prune(days: int | None = typer.Option(None, "--days", help="Retention in days")) -> None:
    """Delete ledger entries older than the retention window."""
    from datetime import timedelta

    from salesbot.storage.ledger import SqlLedger

    retention = timedelta(days=days if days is not None else settings.ledger_retention_days)
    deleted = SqlLedger().prune_older_than(retention)
    console.print(f"[green]Pruned {deleted} ledger entries.[/green]")


@app.command()
def status() -> None:
    """Show watermarks, ledger size and destinations."""
    from salesbot.ingest.events import EventClass, from_millis
    from salesbot.storage.ledger import SqlLedger
    from salesbot.storage.subscriptions import SubscriptionStore

    console.print("[bold blue]Sales Bot Status[/bold blue]\n")

    try:
        ledger = SqlLedger()
        for event_class in EventClass:
            watermark = ledger.get_watermark(event_class)
            label = from_millis(watermark).isoformat() if watermark else "unset"
            console.print(f"[cyan]Watermark ({event_class.value}):[/cyan] {label}")
        console.print(f"[cyan]Ledger entries:[/cyan] {ledger.count()}")

        destinations = SubscriptionStore().list_destinations()
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        console.print("[yellow]Tip:[/yellow] Run 'alembic upgrade head' or 'salesbot init-db' first.")
        raise typer.Exit(1)

    _print_destinations(destinations)


def _print_destinations(destinations) -> None:
    table = Table(title="Destinations")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Channel", style="magenta")
    table.add_column("Listings Channel", style="magenta")
    table.add_column("Enabled", style="green")
    table.add_column("Collections", style="white")
    for destination in destinations:
        table.add_row(
            destination.destination_id,
            destination.name,
            destination.primary_channel_ref,
            destination.secondary_channel_ref or "",
            "yes" if destination.enabled else "no",
            str(len(destination.tracked_collection_ids)),
        )
    console.print(table)


@feeds_app.command("check")
def check_feeds() -> None:
    """Run a lightweight health check against each marketplace feed."""
    from salesbot.feeds.kabila import KabilaAdapter
    from salesbot.feeds.sentx import SentxAdapter

    table = Table(title="Feed Health")
    table.add_column("Feed", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Message", style="white")

    for adapter in (SentxAdapter(), KabilaAdapter()):
        feed_status = adapter.health_check()
        table.add_row(adapter.source_feed.value, "ok" if feed_status.ok else "fail", feed_status.message)

    console.print(table)


@destinations_app.command("list")
def list_destinations() -> None:
    from salesbot.storage.subscriptions import SubscriptionStore

    _print_destinations(SubscriptionStore().list_destinations())


@destinations_app.command("add")
def add_destination(
    destination_id: str = typer.Argument(..., help="Server (guild) ID"),
    channel_id: str = typer.Argument(..., help="Channel for sales"),
    name: str | None = typer.Option(None, "--name", help="Display name"),
    listings_channel: str | None = typer.Option(None, "--listings-channel", help="Separate channel for listings"),
) -> None:
    from salesbot.storage.subscriptions import SubscriptionStore

    created = SubscriptionStore().upsert_destination(
        destination_id=destination_id,
        name=name or destination_id,
        primary_channel_id=channel_id,
        listings_channel_id=listings_channel,
    )
    console.print(f"[green]Destination {'added' if created else 'updated'}:[/green] {destination_id}")


@destinations_app.command("remove")
def remove_destination(destination_id: str = typer.Argument(..., help="Server (guild) ID")) -> None:
    from salesbot.storage.subscriptions import SubscriptionStore

    if not SubscriptionStore().remove_destination(destination_id):
        console.print(f"[red]Destination not found:[/red] {destination_id}")
        raise typer.Exit(1)
    console.print(f"[green]Destination removed:[/green] {destination_id}")


@destinations_app.command("toggle")
def toggle_destination(
    destination_id: str = typer.Argument(..., help="Server (guild) ID"),
    enabled: bool = typer.Option(True, "--enable/--disable"),
) -> None:
    from salesbot.storage.subscriptions import DestinationNotFound, SubscriptionStore

    try:
        SubscriptionStore().set_enabled(destination_id, enabled)
    except DestinationNotFound:
        console.print(f"[red]Destination not found:[/red] {destination_id}")
        raise typer.Exit(1)
    console.print(f"[green]Destination {'enabled' if enabled else 'disabled'}:[/green] {destination_id}")


@destinations_app.command("set-listings-channel")
def set_listings_channel(
    destination_id: str = typer.Argument(..., help="Server (guild) ID"),
    channel_id: str | None = typer.Argument(None, help="Listings channel; omit to fall back to the sales channel"),
) -> None:
    from salesbot.storage.subscriptions import DestinationNotFound, SubscriptionStore

    try:
        SubscriptionStore().set_listings_channel(destination_id, channel_id)
    except DestinationNotFound:
        console.print(f"[red]Destination not found:[/red] {destination_id}")
        raise typer.Exit(1)
    console.print(f"[green]Listings channel set:[/green] {channel_id or '(sales channel)'}")


@collections_app.command("list")
def list_collections(destination_id: str = typer.Argument(..., help="Server (guild) ID")) -> None:
    from salesbot.storage.subscriptions import DestinationNotFound, SubscriptionStore

    try:
        rows = SubscriptionStore().list_collections(destination_id)
    except DestinationNotFound:
        console.print(f"[red]Destination not found:[/red] {destination_id}")
        raise typer.Exit(1)

    table = Table(title=f"Tracked Collections ({destination_id})")
    table.add_column("Token ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Enabled", style="green")
    for collection_id, name, enabled in rows:
        table.add_row(collection_id, name, "yes" if enabled else "no")
    console.print(table)


@collections_app.command("add")
def add_collection(
    destination_id: str = typer.Argument(..., help="Server (guild) ID"),
    collection_id: str = typer.Argument(..., help="Token ID, e.g. 0.0.1234"),
    name: str | None = typer.Option(None, "--name", help="Collection name"),
) -> None:
    from salesbot.feeds.parsing import normalize_token_id
    from salesbot.storage.subscriptions import DestinationNotFound, SubscriptionStore

    token_id = normalize_token_id(collection_id)
    try:
        added = SubscriptionStore().add_collection(destination_id, token_id, name)
    except DestinationNotFound:
        console.print(f"[red]Destination not found:[/red] {destination_id}")
        raise typer.Exit(1)
    console.print(f"[green]{'Tracking' if added else 'Already tracking'}:[/green] {token_id}")


@collections_app.command("remove")
def remove_collection(
    destination_id: str = typer.Argument(..., help="Server (guild) ID"),
    collection_id: str = typer.Argument(..., help="Token ID, e.g. 0.0.1234"),
) -> None:
    from salesbot.feeds.parsing import normalize_token_id
    from salesbot.storage.subscriptions import DestinationNotFound, SubscriptionStore

    try:
        removed = SubscriptionStore().remove_collection(destination_id, normalize_token_id(collection_id))
    except DestinationNotFound:
        console.print(f"[red]Destination not found:[/red] {destination_id}")
        raise typer.Exit(1)
    if not removed:
        console.print(f"[yellow]Collection was not tracked:[/yellow] {collection_id}")
        raise typer.Exit(1)
    console.print(f"[green]Stopped tracking:[/green] {collection_id}")


if __name__ == "__main__":
    app()
