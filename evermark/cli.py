"""
CLI for the Evermark resolution core
====================================

Commands:
    evermark records [--page N] [--page-size N]   List records (fast store, ledger fallback)
    evermark record <id>                          Fetch one record from the ledger
    evermark leaderboard [--cycle N] [--limit N]  Ranked leaderboard for a cycle
    evermark resolve <ipfs://...>                 Resolve content-address metadata
    evermark sync                                 Copy missing ledger records to the fast store
    evermark health                               Ledger supply vs fast store count
"""

import asyncio
import dataclasses
import json
import sys
from typing import Any, Awaitable, Callable, Optional

import click

from evermark import __version__, config
from evermark.errors import EvermarkError, NotFound
from evermark.models import PageParams
from evermark.service import EvermarkService, build_service
from evermark.utils.log import configure_logging


def _run(action: Callable[[EvermarkService], Awaitable[Any]]) -> Any:
    async def runner():
        service = build_service()
        try:
            return await action(service)
        finally:
            await service.aclose()

    return asyncio.run(runner())


def _echo_json(value: Any) -> None:
    if dataclasses.is_dataclass(value):
        value = dataclasses.asdict(value)
    click.echo(json.dumps(value, indent=2, default=str))


def _fail(message: str, error: Exception) -> None:
    code = getattr(error, "error_code", type(error).__name__)
    click.echo(f"❌ {message}: [{code}] {error}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
@click.option("--json-logs/--console-logs", default=None, help="Override JSON_LOGS")
def main(log_level: Optional[str], json_logs: Optional[bool]):
    """
    Evermark CLI - content resolution and leaderboard aggregation

    Examples:
        evermark records --page 2
        evermark leaderboard --cycle 12 --format json
        evermark resolve ipfs://Qm...
    """
    configure_logging(
        level=log_level or config.LOG_LEVEL,
        json_logs=config.JSON_LOGS if json_logs is None else json_logs,
    )


@main.command()
@click.option("--page", default=1, type=int, show_default=True)
@click.option("--page-size", default=12, type=int, show_default=True)
@click.option("--sort-order", type=click.Choice(["asc", "desc"]), default="desc", show_default=True)
@click.option("--search", default=None, help="Match title, author or description")
@click.option("--author", default=None)
@click.option("--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table")
def records(page: int, page_size: int, sort_order: str, search: Optional[str], author: Optional[str], fmt: str):
    """List records, newest first by default."""
    try:
        params = PageParams(page=page, page_size=page_size, sort_order=sort_order, search=search, author=author)
        result = _run(lambda service: service.orchestrator.list_records(params))
    except (EvermarkError, ValueError) as e:
        _fail("Error listing records", e)
        return

    if fmt == "json":
        _echo_json(result)
        return

    click.echo(
        f"📚 Page {result.page}/{result.total_pages} "
        f"({result.total_count} total, source: {result.source})"
    )
    click.echo("-" * 70)
    for record in result.records:
        click.echo(f"#{record.id:<6} {record.title[:40]:<40} {record.author[:20]}")


@main.command()
@click.argument("record_id")
def record(record_id: str):
    """Fetch one record straight from the ledger."""
    try:
        result = _run(lambda service: service.record_fetcher.fetch_record(record_id))
    except (EvermarkError, ValueError) as e:
        _fail(f"Error fetching record {record_id}", e)
        return

    if result is None:
        _fail("Record unavailable", NotFound(record_id))
        return
    _echo_json(result)


@main.command()
@click.option("--cycle", "cycle_id", default=None, type=int, help="Defaults to the current cycle")
@click.option("--limit", default=None, type=int, help="Defaults to LEADERBOARD_DEFAULT_LIMIT")
@click.option("--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table")
def leaderboard(cycle_id: Optional[int], limit: Optional[int], fmt: str):
    """Show the ranked leaderboard for a voting cycle."""
    try:
        result = _run(lambda service: service.leaderboard.build_leaderboard(cycle_id, limit))
    except (EvermarkError, ValueError) as e:
        _fail("Error building leaderboard", e)
        return

    if fmt == "json":
        _echo_json(result)
        return

    status = "finalized" if result.finalized else "live"
    click.echo(f"🏆 Cycle {result.cycle_id} ({status}, source: {result.source})")
    click.echo("-" * 70)
    if not result.entries:
        click.echo("No votes yet")
    for entry in result.entries:
        click.echo(f"{entry.rank:>3}. #{entry.record.id:<6} {entry.votes:>12}  {entry.record.title[:40]}")


@main.command()
@click.argument("content_address")
def resolve(content_address: str):
    """Resolve an ipfs:// content-address to normalized metadata."""
    try:
        result = _run(lambda service: service.resolver.resolve(content_address, strict=True))
    except EvermarkError as e:
        _fail("Error resolving metadata", e)
        return
    _echo_json(result)


@main.command()
def sync():
    """Copy ledger records missing from the fast store (one batch)."""
    try:
        stats = _run(lambda service: service.sync.run_once())
    except EvermarkError as e:
        _fail("Sync failed", e)
        return

    click.echo(
        f"✅ Synced {stats.synced} record(s), skipped {stats.skipped}, "
        f"{len(stats.errors)} error(s) (supply {stats.total_supply})"
    )
    for error in stats.errors:
        click.echo(f"   ❌ {error}", err=True)


@main.command()
def health():
    """Compare ledger supply with the fast store."""
    try:
        report = _run(lambda service: service.sync.health())
    except EvermarkError as e:
        _fail("Health check failed", e)
        return

    _echo_json(report)
    if not report["healthy"]:
        sys.exit(2)


if __name__ == "__main__":
    main()
