#!/usr/bin/env python3
"""
RRK Scraper CLI
===============

Command-line interface for the registry notice scraper.

Usage:
    python scraper_cli.py run --length 2 --workers 4
    python scraper_cli.py search "آب" --force
    python scraper_cli.py consolidate
    python scraper_cli.py enrich-notices files/آب/extracted_data.csv
    python scraper_cli.py status "آب"
"""

import asyncio
import functools
import sys
from typing import Optional

import click
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table

from combinations import combination_count, generate_combinations
from config_schemas import PortalConfig
from csv_export import consolidate as consolidate_csv
from csv_export import enrich_notices as enrich_notices_csv
from log_utils import setup_logging
from pagination import CheckpointManager
from rrk_config import load_config
from rrk_scraper import run_workers, search_once

console = Console()

# Above this length the combination count explodes (33 ** length)
CONFIRM_LENGTH = 3


def async_command(f):
    """Run an async click command in its own event loop"""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


# ─────────────────────────────────────────────────────────────────────────────
# CLI COMMANDS
# ─────────────────────────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="1.0.0")
@click.option('--env-file', type=click.Path(dir_okay=False), help='.env file with RRK_* settings')
@click.option('--output-dir', help='Folder for per-query output and credentials')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), default='INFO')
@click.pass_context
def cli(ctx, env_file: Optional[str], output_dir: Optional[str], log_level: str):
    """
    🔍 RRK Registry Notice Scraper

    Searches rrk.ir for companies and notices and exports them to CSV.
    """
    try:
        config = load_config(env_file, output_dir=output_dir)
    except ValueError as e:
        console.print(f"[bold red]❌ Invalid configuration:[/bold red] {e}")
        sys.exit(1)
    setup_logging(config.output_dir, log_level)
    ctx.obj = config


@cli.command()
@click.option('--length', type=click.IntRange(min=1), prompt='Combination length', help='Letters per query string')
@click.option('--workers', type=click.IntRange(min=1), prompt='Number of workers', help='Concurrent workers')
@click.option('--yes', '-y', is_flag=True, help='Skip the confirmation for long runs')
@click.option('--notices/--no-notices', default=None, help='Fetch notice detail pages')
@click.pass_obj
@async_command
async def run(config: PortalConfig, length: int, workers: int, yes: bool, notices: Optional[bool]):
    """
    🚀 Search every letter combination of the given length
    """
    total = combination_count(length)
    if length > CONFIRM_LENGTH and not yes:
        console.print(f"[bold yellow]⚠️ Length {length} generates {total:,} combinations.[/bold yellow]")
        if not click.confirm("Do you want to continue?", default=False):
            console.print("Aborted.")
            return

    if notices is not None:
        config = config.model_copy(update={"scrape_notices": notices})

    combinations = generate_combinations(length)
    console.print(f"\n[bold blue]🔍 Searching {len(combinations):,} combinations with {workers} workers[/bold blue]")

    summaries = await run_workers(combinations, workers, config)

    table = Table(title="Worker Summary")
    table.add_column("Worker", style="cyan")
    table.add_column("Assigned", justify="right")
    table.add_column("Completed", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right", style="red")
    for summary in summaries:
        table.add_row(
            summary.worker_id,
            str(summary.assigned),
            str(summary.completed),
            str(summary.skipped),
            str(len(summary.failed)),
        )
    console.print(table)

    failed = [query for summary in summaries for query in summary.failed]
    if failed:
        console.print(f"\n[bold red]❌ Failed combinations:[/bold red] {', '.join(failed)}")


@cli.command()
@click.argument('query')
@click.option('--force', is_flag=True, help='Discard the checkpoint and earlier output first')
@click.option('--notices/--no-notices', default=None, help='Fetch notice detail pages')
@click.pass_obj
@async_command
async def search(config: PortalConfig, query: str, force: bool, notices: Optional[bool]):
    """
    🔎 Search a single query string
    """
    if notices is not None:
        config = config.model_copy(update={"scrape_notices": notices})

    if not force and CheckpointManager(config.output_dir).is_completed(query):
        console.print(f"[yellow]⏭️ {query} is already completed, use --force to search again[/yellow]")
        return

    try:
        result = await search_once(query, config, force=force)
    except Exception as e:
        console.print(f"\n[bold red]❌ Search failed:[/bold red] {e}")
        sys.exit(1)

    table = Table(title=f"Search Results: {query}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Companies", str(result.total_companies))
    table.add_row("Notices", str(result.total_notices))
    table.add_row("Notice errors", str(result.notice_errors))
    table.add_row("Resumed from row", str(result.resumed_from_row or "-"))
    table.add_row("Execution time", f"{result.execution_time:.1f}s")
    console.print(table)


@cli.command()
@click.option('--filename', default=None, help='Per-query CSV to merge (default: company CSV)')
@click.option('--target', default='all_company_data.csv', help='Merged file name')
@click.pass_obj
def consolidate(config: PortalConfig, filename: Optional[str], target: str):
    """
    📊 Merge the per-query CSV files into one
    """
    path = consolidate_csv(config.output_dir, filename or config.company_csv, target)
    if path is None:
        console.print(f"[bold red]❌ No output directory at {config.output_dir}[/bold red]")
        sys.exit(1)
    console.print(f"[bold green]💾 Consolidated data saved to:[/bold green] {path}")


@cli.command('enrich-notices')
@click.argument('csv_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', help='Output CSV (default: <name>_enriched.csv)')
def enrich_notices(csv_file: str, output: Optional[str]):
    """
    📝 Add legal-note fields parsed from the notice text
    """
    path = enrich_notices_csv(csv_file, output)
    console.print(f"[bold green]💾 Enriched notices saved to:[/bold green] {path}")


@cli.command()
@click.argument('query')
@click.pass_obj
def status(config: PortalConfig, query: str):
    """
    📋 Show the checkpoint of a query
    """
    checkpoint = CheckpointManager(config.output_dir).load_status(query)
    if checkpoint is None:
        console.print(f"[yellow]No checkpoint for {query}[/yellow]")
        return
    console.print(Panel(JSON.from_data(checkpoint.to_json_dict()), title=f"Status: {query}"))


if __name__ == '__main__':
    cli()
