"""Serve mode: run the HTTP API with uvicorn."""

import sys

import typer
import uvicorn

from conversation_engine.api.server import create_app
from conversation_engine.config import API_PORT

from .shared import console, logger


def serve(
    port: int = typer.Option(API_PORT, "--port", "-p", help="Port for the API server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
) -> None:
    """Start the HTTP API."""
    logger.bind(command="serve", port=port).info("serve.start")
    app = create_app()
    console.print(f"[green]Starting API on http://{host}:{port}[/green]")
    console.print("[dim]Endpoints: POST /emails, GET /threads, GET /health[/dim]")
    try:
        uvicorn.run(app, host=host, port=port, log_level="info", timeout_graceful_shutdown=15)
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
