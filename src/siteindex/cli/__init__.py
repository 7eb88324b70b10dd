"""CLI commands for the site index.

Provides command-line interface using Typer:
- siteindex serve: Run the API server
- siteindex cache: Inspect, warm and invalidate the count cache

Usage:
    siteindex --help
    siteindex serve --port 8080
    siteindex cache stats
"""

import typer

from siteindex.cli.cache_cmd import app as cache_app
from siteindex.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="siteindex",
    help="Site index: campus A-Z directory with cached counts",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(cache_app, name="cache")


@app.callback()
def callback() -> None:
    """Site index: campus A-Z directory with cached counts."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
