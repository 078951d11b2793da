"""CLI commands for cache maintenance.

Usage:
    bahngate cache stats
    bahngate cache stats --format json
    bahngate cache invalidate "bahngate:journeys:*"
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import orjson
import typer
from rich.console import Console

from bahngate.cache.keys import CacheKeys
from bahngate.cache.maintenance import CacheStats, Maintenance
from bahngate.observability.logging import LogContext
from bahngate.store.connection import StoreConfig, StoreConnection

T = TypeVar("T")

app = typer.Typer(help="Inspect and invalidate the response cache", no_args_is_help=True)


async def _with_maintenance(
    command: str,
    operation: Callable[[Maintenance], Awaitable[T]],
) -> T:
    store = StoreConnection(StoreConfig.from_settings())
    with LogContext(request_id=f"cli-{command}"):
        try:
            return await operation(Maintenance(store))
        finally:
            await store.close()


def _print_stats(console: Console, stats: CacheStats) -> None:
    status = "[green]connected[/green]" if stats.connected else "[red]disconnected[/red]"
    console.print(f"[bold]Store:[/bold] {status}")
    console.print(f"[bold]Keys in {CacheKeys.namespace_pattern()}:[/bold] {stats.key_count}")
    if stats.memory_usage is not None:
        console.print(f"[bold]Memory usage:[/bold] {stats.memory_usage}")
    console.print(f"[bold]Key hash:[/bold] {stats.hash_function_id}")


@app.command("stats")
def stats(
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Show key count and memory usage of the cache namespace."""
    result = asyncio.run(_with_maintenance("cache-stats", lambda m: m.get_stats()))

    if output_format == "json":
        typer.echo(orjson.dumps(result.to_dict()).decode())
    else:
        _print_stats(Console(), result)

    if not result.connected:
        raise typer.Exit(code=1)


@app.command("invalidate")
def invalidate(
    pattern: str = typer.Argument(..., help="Key pattern, e.g. 'bahngate:journeys:*'"),
    force: bool = typer.Option(
        False,
        "--force",
        help="Allow patterns outside the cache namespace",
    ),
) -> None:
    """Delete every key matching PATTERN."""
    console = Console()
    if not force and not CacheKeys.in_namespace(pattern):
        console.print(
            f"[red]Pattern must start with '{CacheKeys.PREFIX}:'[/red] (use --force to override)"
        )
        raise typer.Exit(code=2)

    deleted = asyncio.run(_with_maintenance("cache-invalidate", lambda m: m.invalidate(pattern)))
    console.print(f"Deleted [bold]{deleted}[/bold] keys matching {pattern}")
