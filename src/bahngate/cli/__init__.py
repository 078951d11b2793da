"""CLI commands for bahngate.

Provides command-line interface using Typer:
- bahngate serve: Run the API server
- bahngate cache stats: Show cache namespace statistics
- bahngate cache invalidate: Delete cache entries matching a pattern

Usage:
    bahngate --help
    bahngate serve --port 3000
    bahngate cache invalidate "bahngate:journeys:*"
"""

import typer

from bahngate.cli.cache_cmd import app as cache_app
from bahngate.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="bahngate",
    help="bahngate: caching and rate limiting for the journey-search gateway",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(cache_app, name="cache")


@app.callback()
def callback() -> None:
    """bahngate: caching and rate limiting for the journey-search gateway."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
