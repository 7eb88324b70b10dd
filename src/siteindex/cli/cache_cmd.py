"""CLI commands for operating the count cache.

Usage:
    siteindex cache stats
    siteindex cache warm --force
    siteindex cache invalidate --counts
    siteindex cache invalidate --pattern "cache:count:*"
    siteindex cache invalidate cache:dashboard:stats
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from siteindex.cache import CacheRuntime, RedisKeyValueStore, close_redis, get_redis
from siteindex.cache.invalidation import InvalidationError, InvalidationResult
from siteindex.cache.keys import CacheKeys, KeyFamily
from siteindex.config import settings
from siteindex.persistence.db import close_db, get_session_factory
from siteindex.persistence.repositories import SqlItemCounter

app = typer.Typer(help="Inspect, warm and invalidate the count cache", no_args_is_help=True)

console = Console()


@asynccontextmanager
async def open_runtime() -> AsyncIterator[CacheRuntime]:
    """A cache runtime on the configured Redis and database, without timers."""
    store = RedisKeyValueStore(await get_redis())
    runtime = CacheRuntime.from_settings(store, SqlItemCounter(get_session_factory()), settings)
    try:
        yield runtime
    finally:
        await close_redis()
        await close_db()


def _print_result(result: InvalidationResult) -> None:
    for key in result.deleted:
        console.print(f"[green]evicted[/green] {key}")
    for key in result.failed:
        console.print(f"[red]failed[/red]  {key}")
    console.print(f"{len(result.deleted)} evicted, {len(result.failed)} failed")


@app.command("stats")
def stats() -> None:
    """Show which key families are cached and the daily hit rate."""

    async def run() -> None:
        async with open_runtime() as runtime:
            presence = await runtime.dashboard.get_cache_stats()
            hit_stats = await runtime.query_cache.get_hit_stats()

        table = Table(title="Count cache")
        table.add_column("Family")
        table.add_column("Key")
        table.add_column("Cached")
        for family, cached in presence.items():
            table.add_row(
                family,
                CacheKeys.for_family(KeyFamily(family)),
                "[green]yes[/green]" if cached else "[yellow]no[/yellow]",
            )
        console.print(table)

        days = sorted(set(hit_stats.hits) | set(hit_stats.misses))
        if days:
            daily = Table(title="Read-through hits")
            daily.add_column("Day")
            daily.add_column("Hits", justify="right")
            daily.add_column("Misses", justify="right")
            for day in days:
                daily.add_row(day, str(hit_stats.hits.get(day, 0)), str(hit_stats.misses.get(day, 0)))
            console.print(daily)
        console.print(f"Hit rate: {hit_stats.hit_rate:.1%}")

    asyncio.run(run())


@app.command("warm")
def warm(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Evict count families before warming",
    ),
) -> None:
    """Populate the total, per-campus and recent count families."""

    async def run() -> bool:
        async with open_runtime() as runtime:
            return await runtime.warmer.warm_up_caches(force=force)

    if not asyncio.run(run()):
        console.print("[red]Cache warm-up failed[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Count cache warmed[/green]")


@app.command("invalidate")
def invalidate(
    keys: Optional[list[str]] = typer.Argument(
        None,
        help="Cache keys to evict",
    ),
    pattern: Optional[str] = typer.Option(
        None,
        "--pattern",
        "-p",
        help="Glob pattern inside the cache: namespace",
    ),
    counts: bool = typer.Option(
        False,
        "--counts",
        "-c",
        help="Evict every count-derived family",
    ),
) -> None:
    """Evict keys, a namespaced pattern, or all count families."""
    chosen = sum([bool(keys), pattern is not None, counts])
    if chosen != 1:
        console.print("[red]Specify exactly one of KEYS, --pattern or --counts[/red]")
        raise typer.Exit(code=2)

    malformed = [k for k in keys or [] if CacheKeys.parse_key(k) is None]
    if malformed:
        console.print(f"[red]Keys must look like '{CacheKeys.FORMAT}':[/red] {', '.join(malformed)}")
        raise typer.Exit(code=2)

    async def run() -> InvalidationResult:
        async with open_runtime() as runtime:
            if counts:
                return await runtime.invalidator.invalidate_count_caches()
            if pattern is not None:
                return await runtime.invalidator.invalidate_pattern(pattern)
            return await runtime.invalidator.invalidate_keys(keys or [])

    try:
        result = asyncio.run(run())
    except InvalidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from e

    _print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)
