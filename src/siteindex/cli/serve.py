"""``siteindex serve``: run the API under uvicorn.

Each worker process has its own request coalescer and warm-up timer; the
key-value store is the only state they share.
"""

from __future__ import annotations

import typer

from siteindex.config import settings

app = typer.Typer(help="Run the site index API server")


def describe_startup(host: str, port: int, workers: int) -> list[str]:
    """Summary lines printed before the server starts."""
    return [
        f"Listening on {host}:{port} with {workers} worker(s)",
        f"Campuses: {', '.join(settings.campuses) or '(none configured)'}",
        f"Cache warm-up: {'on' if settings.warm_up_enabled else 'off'}",
    ]


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(settings.host, "--host", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
    workers: int = typer.Option(1, "--workers", "-w", help="Worker processes"),
    log_level: str = typer.Option("info", "--log-level", "-l", help="uvicorn log level"),
) -> None:
    """Run the site index API server."""
    import uvicorn

    workers = 1 if reload else workers
    for line in describe_startup(host, port, workers):
        typer.echo(line)

    uvicorn.run(
        "siteindex.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level.lower(),
    )
