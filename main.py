#!/usr/bin/env python3
"""
PatchWatch - Update Poller
==========================

Command line interface for configuration checks, local store management and
manual poll runs.

Usage:
    python main.py --help                        # Show all commands
    python main.py check-config                  # Validate configuration
    python main.py init-db                       # Create the local SQLite store
    python main.py add-source NAME URL           # Register a source
    python main.py list-sources                  # Show sources and this minute's window
    python main.py fetch-source URL              # Fetch and extract without storing
    python main.py poll                          # Run one poll and print the summary
"""

import sys
import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from patchwatch.config.settings import StoreBackend, get_settings
from patchwatch.database.models import Source, SourceType
from patchwatch.database.schema import DatabaseSchema
from patchwatch.processing.fetcher import SourceFetcher
from patchwatch.processing.fingerprint import fingerprint_item
from patchwatch.processing.parsers import build_parsers
from patchwatch.processing.pipeline import run_poll
from patchwatch.processing.scheduler import SourceScheduler, current_epoch_minute
from patchwatch.storage import SourceRepository, create_store
from patchwatch.utils.exceptions import PatchWatchError
from patchwatch.utils.logging import configure_application_logging

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(settings, debug: bool = False) -> None:
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
    )


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """PatchWatch - poll feeds and pages, notify about new items."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate environment configuration without contacting any service."""
    console.print("[bold blue]🔧 Checking PatchWatch Configuration[/bold blue]")

    try:
        settings = get_settings()
    except PatchWatchError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Required Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Status")

    for name, present in settings.required_settings().items():
        table.add_row(name, "✅ Set" if present else "❌ Missing")
    console.print(table)

    polling = settings.polling
    console.print(
        f"Store backend: [cyan]{settings.store.backend.value}[/cyan]  "
        f"Budget: {polling.time_budget_seconds}s / {polling.max_sources_per_run} sources / "
        f"{polling.max_new_items_per_run} items"
    )

    missing = settings.missing_settings()
    if missing:
        console.print(f"[bold red]❌ Missing: {', '.join(missing)}[/bold red]")
        sys.exit(1)
    console.print("[bold green]✅ All configuration checks passed![/bold green]")


@cli.command()
def init_db():
    """Create the local SQLite store schema."""
    settings = get_settings()
    db_path = settings.store.sqlite_path
    console.print(f"[bold blue]🗄️ Initializing database at {db_path}[/bold blue]")

    schema = DatabaseSchema(db_path)
    schema.create_tables()
    if not schema.verify_schema():
        console.print("[bold red]❌ Database schema verification failed[/bold red]")
        sys.exit(1)

    if settings.store.backend != StoreBackend.SQLITE:
        console.print(
            "[yellow]Note: the configured backend is 'rest'; set "
            "PATCHWATCH_STORE__BACKEND=sqlite to poll from this database[/yellow]"
        )
    console.print("[bold green]✅ Database initialized successfully![/bold green]")


@cli.command()
@click.argument('name')
@click.argument('url')
@click.option('--type', 'source_type', type=click.Choice([t.value for t in SourceType]),
              default=SourceType.FEED.value, help='How the source is parsed')
@click.option('--disabled', is_flag=True, help='Register the source without polling it')
def add_source(name, url, source_type, disabled):
    """Register a new source in the configured store."""

    async def run_add():
        store = create_store(get_settings().store)
        try:
            repo = SourceRepository(store, get_settings().store.sources_resource)
            return await repo.create_source(name, url, source_type, enabled=not disabled)
        finally:
            await store.close()

    try:
        source = asyncio.run(run_add())
    except PatchWatchError as e:
        console.print(f"[bold red]❌ Could not add source: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Added {source.name} (id {source.id}, {source.type.value})[/bold green]")


@cli.command()
@click.option('--epoch', type=int, default=None, help='Rotation epoch (defaults to the current minute)')
def list_sources(epoch):
    """Show all sources and mark the ones the next run would poll."""
    settings = get_settings()

    async def run_list():
        store = create_store(settings.store)
        try:
            repo = SourceRepository(store, settings.store.sources_resource)
            return await repo.get_all_sources()
        finally:
            await store.close()

    try:
        sources = asyncio.run(run_list())
    except PatchWatchError as e:
        console.print(f"[bold red]❌ Error listing sources: {e}[/bold red]")
        sys.exit(1)

    if not sources:
        console.print("[yellow]⚠️ No sources configured[/yellow]")
        return

    scheduler = SourceScheduler.from_settings(settings.polling)
    epoch = current_epoch_minute() if epoch is None else epoch
    window = {s.id for s in scheduler.select(sources, epoch)}
    pollable = {s.id for s in scheduler.eligible(sources)}

    table = Table(title=f"Sources (epoch {epoch})")
    table.add_column("Next", style="green")
    table.add_column("ID")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("URL", style="blue")
    table.add_column("Status")

    for source in sources:
        url = source.url or ""
        if len(url) > 50:
            url = url[:47] + "..."
        status = "🟢 pollable" if source.id in pollable else "⚪ skipped"
        table.add_row(
            "▶" if source.id in window else "",
            str(source.id),
            source.name,
            source.type.value,
            url,
            status,
        )

    console.print(table)


@cli.command()
@click.argument('url')
@click.option('--type', 'source_type', type=click.Choice([t.value for t in SourceType]),
              default=SourceType.FEED.value, help='How the source is parsed')
@click.option('--name', default='Manual fetch', help='Source name used for page-scrape titles')
@click.pass_context
def fetch_source(ctx, url, source_type, name):
    """Fetch one URL and show the candidates it yields, without storing them."""
    settings = get_settings()
    _configure_logging(settings, ctx.obj.get('debug'))
    console.print(f"[bold blue]📡 Fetching {url}[/bold blue]")

    source = Source(id=0, name=name, url=url, type=source_type)
    fetcher = SourceFetcher.from_settings(settings.polling)

    async def run_fetch():
        async with fetcher.get_session() as session:
            return await fetcher.fetch(url, session)

    result = asyncio.run(run_fetch())
    if not result.success:
        console.print(f"[bold red]❌ Fetch failed: {result.error}[/bold red]")
        sys.exit(1)

    candidates = build_parsers(settings.polling)[source.type].extract(result.content, source)
    if not candidates:
        console.print("[yellow]⚠️ No candidates extracted[/yellow]")
        return

    table = Table(title=f"{len(candidates)} candidates")
    table.add_column("Title", style="cyan")
    table.add_column("Link", style="blue")
    table.add_column("Published")
    table.add_column("Fingerprint", style="dim")
    for item in candidates:
        table.add_row(item.title[:50], item.link, item.published_at or "-", fingerprint_item(item)[:12])
    console.print(table)


@cli.command()
@click.option('--epoch', type=int, default=None, help='Rotation epoch (defaults to the current minute)')
@click.pass_context
def poll(ctx, epoch):
    """Run one poll and print its JSON summary."""
    try:
        settings = get_settings()
    except PatchWatchError as e:
        click.echo(json.dumps({"ok": False, "error": e.user_message}))
        sys.exit(1)

    _configure_logging(settings, ctx.obj.get('debug'))
    result = asyncio.run(run_poll(settings, epoch=epoch))
    click.echo(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    if not result.ok:
        sys.exit(1)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 PatchWatch interrupted by user[/yellow]")
        sys.exit(130)
