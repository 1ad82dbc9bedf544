"""Command line interface for docsync cache inspection and maintenance."""

import json
import sys
from datetime import datetime
from typing import Optional

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from . import __version__
from .cache import CacheStore, DurableCache
from .cache.integrity import json_serializer, verify
from .config import Config, config_manager
from .errors import ConfigError
from .utils.log import configure_logging


def format_epoch_ms(value: Optional[int]) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def format_bytes(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size} B"


def open_store(config: Config) -> CacheStore:
    """Build a CacheStore over the configured durable cache."""
    durable = DurableCache(config.cache.db_path) if config.cache.enabled else None
    return CacheStore(
        durable=durable,
        default_ttl_ms=config.cache.ttl_ms,
        max_bytes=config.cache.max_bytes,
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool):
    """docsync - inspect and maintain the document cache."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = Console()

    try:
        if config:
            config_manager.config_path = config
            config_manager.reload()
        ctx.obj["config"] = config_manager.config
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    log_config = ctx.obj["config"].logging
    configure_logging("DEBUG" if verbose else log_config.level, log_config.file)


def _store(ctx: click.Context) -> CacheStore:
    if "store" not in ctx.obj:
        ctx.obj["store"] = open_store(ctx.obj["config"])
        ctx.call_on_close(ctx.obj["store"].close)
    return ctx.obj["store"]


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
@click.pass_context
def stats(ctx: click.Context, as_json: bool):
    """Show cache statistics."""
    console: Console = ctx.obj["console"]
    store = _store(ctx)
    data = store.stats()

    if as_json:
        click.echo(json.dumps(data, indent=2, default=json_serializer))
        return

    table = Table(title="Cache statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    durable = data["durable"]
    if durable:
        table.add_row("Entries", str(durable["entries"]))
        table.add_row("Expired", str(durable["expired"]))
        table.add_row("Payload size", format_bytes(durable["payload_bytes"]))
        table.add_row("Soft cap", format_bytes(data["max_bytes"]))
        table.add_row("Oldest entry", format_epoch_ms(durable["oldest_stored_at"]))
        table.add_row("Database", durable["db_path"])
        table.add_row("Database size", format_bytes(durable["db_size_bytes"]))
    else:
        table.add_row("Durable cache", "disabled")

    console.print(table)


@cli.command()
@click.pass_context
def keys(ctx: click.Context):
    """List cache entries with their freshness."""
    console: Console = ctx.obj["console"]
    store = _store(ctx)
    now = store.now()

    table = Table(title="Cache entries")
    table.add_column("Key", style="cyan")
    table.add_column("Stored", justify="right")
    table.add_column("TTL (s)", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("State")

    for key in store.keys():
        entry = store.entry(key)
        if entry is None:
            continue
        if not verify(entry.payload, entry.integrity_hash):
            state = "[red]corrupt[/red]"
        elif entry.is_expired(now):
            state = "[yellow]stale[/yellow]"
        else:
            state = "[green]fresh[/green]"
        table.add_row(
            key,
            format_epoch_ms(entry.stored_at),
            f"{entry.ttl_ms / 1000:.0f}",
            format_bytes(entry.size_bytes),
            state,
        )

    console.print(table)


@cli.command()
@click.argument("key")
@click.option("--stale", is_flag=True, help="Show the entry even if expired")
@click.pass_context
def show(ctx: click.Context, key: str, stale: bool):
    """Print the payload cached under KEY."""
    store = _store(ctx)
    payload = store.get_stale(key) if stale else store.get(key)

    if payload is None:
        click.echo(f"No servable entry for {key}", err=True)
        sys.exit(1)

    click.echo(json.dumps(payload, indent=2, default=json_serializer))


@cli.command()
@click.pass_context
def sweep(ctx: click.Context):
    """Remove expired entries."""
    store = _store(ctx)
    removed = store.sweep()
    click.echo(f"Removed {removed} expired entries")


@cli.command()
@click.argument("key")
@click.pass_context
def invalidate(ctx: click.Context, key: str):
    """Remove the entry cached under KEY."""
    store = _store(ctx)
    store.invalidate(key)
    click.echo(f"Invalidated {key}")


@cli.command()
@click.confirmation_option(prompt="Clear the whole cache?")
@click.pass_context
def clear(ctx: click.Context):
    """Remove every cache entry."""
    store = _store(ctx)
    store.clear()
    logger.info("Cache cleared")
    click.echo("Cache cleared")


@cli.command()
@click.pass_context
def vacuum(ctx: click.Context):
    """Sweep expired entries and compact the cache database."""
    store = _store(ctx)
    if store.durable is None:
        click.echo("Durable cache disabled, nothing to vacuum")
        return

    removed = store.sweep()
    store.durable.vacuum()
    logger.info("Cache database vacuumed")
    click.echo(f"Removed {removed} expired entries and compacted {store.durable.location}")


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context):
    """Print the effective configuration."""
    config: Config = ctx.obj["config"]
    click.echo(f"# {config_manager.config_path}")
    click.echo(config.model_dump_json(indent=2))


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
