"""
Command-line interface for News Clipper.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from newsclipper import __version__
from newsclipper.common import setup_logging
from newsclipper.config import ClipperConfig, HandlerKind
from newsclipper.errors import (
    CacheCorruptionError,
    ExecutionTimeoutError,
    HandlerResolutionError,
    NewsClipperError,
)
from newsclipper.gate import SeatLimitGate
from newsclipper.interpreter import format_messages
from newsclipper.loader import HandlerLoader
from newsclipper.runner import Clipper, run_all
from newsclipper.schedule import due_instant, parse_update_times

console = Console()

TIMEOUT_EXIT_CODE = 2


def print_banner():
    """Print application banner."""
    console.print(Panel.fit(
        f"[bold blue]News Clipper[/bold blue] v{__version__}\n"
        "[dim]Dynamic content for static documents[/dim]",
        border_style="blue",
    ))


def load_config(ctx, check_for_updates: bool = False, auto_download_all: bool = False) -> ClipperConfig:
    """Build the run configuration from the config file, environment and flags."""
    config_file = ctx.obj.get("config_file")
    config = ClipperConfig.from_env(Path(config_file) if config_file else None)
    if check_for_updates:
        config.check_for_updates = True
    if auto_download_all:
        config.auto_download_all = True
    if config.log_file or ctx.obj.get("verbose"):
        level = logging.DEBUG if ctx.obj.get("verbose") else logging.INFO
        setup_logging(level=level, log_file=config.log_file)
    return config


def create_clipper(config: ClipperConfig, max_handlers: Optional[int]) -> Clipper:
    gate = None
    if max_handlers is not None:
        loader = HandlerLoader(config.handler_locations)
        gate = SeatLimitGate(max_handlers, lambda: loader.installed(HandlerKind.ACQUISITION))
    return Clipper.create(config, gate=gate)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--config", "-c", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="Configuration file (KEY=\"value\" lines)")
@click.pass_context
def main(ctx, verbose: bool, quiet: bool, config_file: Optional[str]):
    """
    News Clipper.

    Replaces <!--newsclipper ...--> tags in documents with content
    gathered by handlers, downloading and updating handlers as needed.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_file"] = config_file

    if not quiet:
        print_banner()


@main.command()
@click.option("--input", "-i", "inputs", multiple=True, required=True,
              type=click.Path(exists=True, dir_okay=False), help="Input document")
@click.option("--output", "-o", "outputs", multiple=True, required=True,
              type=click.Path(dir_okay=False), help="Output document")
@click.option("--check-for-updates", "-n", is_flag=True,
              help="Check for functional and bugfix handler updates")
@click.option("--auto-download-all", "-a", is_flag=True,
              help="Download all handler updates without asking")
@click.option("--max-handlers", type=int, help="Limit the number of acquisition handlers")
@click.pass_context
def run(
    ctx,
    inputs: Tuple[str, ...],
    outputs: Tuple[str, ...],
    check_for_updates: bool,
    auto_download_all: bool,
    max_handlers: Optional[int],
):
    """
    Process documents.

    Examples:

        # One document
        newsclipper run -i page.tmpl -o page.html

        # Two documents, checking for handler updates
        newsclipper run -n -i a.tmpl -o a.html -i b.tmpl -o b.html
    """
    if len(inputs) != len(outputs):
        console.print("[red]Error: every --input needs a matching --output[/red]")
        sys.exit(1)

    try:
        config = load_config(ctx, check_for_updates, auto_download_all)
        clipper = create_clipper(config, max_handlers)
        documents = [(Path(i), Path(o)) for i, o in zip(inputs, outputs)]
        written = run_all(documents, clipper, generator=f"News Clipper {__version__}")
    except ExecutionTimeoutError as e:
        console.print(f"[red]Timeout: {e}[/red]")
        sys.exit(TIMEOUT_EXIT_CODE)
    except (NewsClipperError, OSError) as e:
        console.print(f"[red]Error: {e}[/red]")
        if ctx.obj.get("verbose"):
            console.print_exception()
        sys.exit(1)

    for path in written:
        console.print(f"[green]Wrote {path}[/green]")


@main.command()
@click.argument("name")
@click.option("--check-for-updates", "-n", is_flag=True,
              help="Check for functional and bugfix handler updates")
@click.option("--auto-download-all", "-a", is_flag=True,
              help="Download all handler updates without asking")
@click.pass_context
def resolve(ctx, name: str, check_for_updates: bool, auto_download_all: bool):
    """
    Install, update and load one handler.
    """
    try:
        config = load_config(ctx, check_for_updates, auto_download_all)
        clipper = Clipper.create(config)
        handler = clipper.factory.resolve(name)
    except HandlerResolutionError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    except NewsClipperError as e:
        console.print(f"[red]Error: {e}[/red]")
        if ctx.obj.get("verbose"):
            console.print_exception()
        sys.exit(1)

    descriptor = clipper.loader.describe(name)
    console.print(f"\n[bold]Handler {handler.handler_name}[/bold]\n")
    console.print(f"  Kind:         [cyan]{handler.kind.value}[/cyan]")
    if descriptor is not None:
        console.print(f"  Version:      [cyan]{descriptor.local_code_version or 'unknown'}[/cyan]")
        console.print(f"  Location:     {descriptor.install_path}")
    console.print(f"  Capabilities: {', '.join(sorted(handler.capabilities)) or 'none'}")

    messages = clipper.context.messages_for(name)
    if messages:
        console.print(f"\n[yellow]{format_messages(messages)}[/yellow]")


@main.command()
@click.argument("times", nargs=-1, required=True)
@click.option("--now", help="Evaluate at this ISO 8601 time instead of the current time")
def due(times: Tuple[str, ...], now: Optional[str]):
    """
    Show when content with the given update times was last due.

    Examples:

        newsclipper due "2,5,8,11,14,17,20,23"

        newsclipper due "fri 14 EST" --now 2024-03-01T12:00:00+00:00
    """
    try:
        spec = parse_update_times(list(times))
        if now:
            when = datetime.fromisoformat(now)
            if when.tzinfo is None:
                when = when.replace(tzinfo=timezone.utc)
        else:
            when = datetime.now(timezone.utc)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if spec.always:
        console.print("[yellow]Always refreshed; cached content is never used[/yellow]")
        return

    instant = due_instant(spec, when)
    console.print(f"Last due: [cyan]{instant.isoformat() if instant else 'never'}[/cyan]")


@main.command()
@click.option("--clear", is_flag=True, help="Remove everything from the cache")
@click.pass_context
def cache(ctx, clear: bool):
    """
    Show or clear the content cache.
    """
    try:
        config = load_config(ctx)
        clipper = Clipper.create(config)
    except NewsClipperError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if clear:
        removed = clipper.cache.clear()
        console.print(f"[green]Removed {removed} cache entries[/green]")
        return

    try:
        entries = clipper.cache.entries()
    except CacheCorruptionError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Run with --clear to empty the cache.")
        sys.exit(1)

    table = Table(title="Content Cache", show_header=True, header_style="bold")
    table.add_column("URL", style="cyan")
    table.add_column("File", style="white")
    table.add_column("Size", justify="right")
    table.add_column("Fetched", style="yellow")
    for entry in sorted(entries, key=lambda e: e.fetched_at, reverse=True):
        table.add_row(
            entry.source_url,
            entry.storage_key,
            str(entry.byte_size),
            datetime.fromtimestamp(entry.fetched_at, timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        )
    console.print(table)

    total = sum(entry.byte_size for entry in entries)
    console.print(f"\n{len(entries)} entries, {total} of {config.max_cache_size} bytes used")


if __name__ == "__main__":
    main()
