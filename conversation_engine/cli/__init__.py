"""CLI commands: ingest, thread inspection, API server, prompt validation."""

from typer import Typer

from conversation_engine.cli import ingest_mode, serve_mode, threads_mode, validate_prompts as validate_prompts_module
from conversation_engine.utils.tracing import init_tracing

init_tracing()

app = Typer(help="Email Conversation Engine")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(ingest_mode.ingest)
    app.command()(threads_mode.threads)
    app.command()(threads_mode.show)
    app.command()(serve_mode.serve)
    app.command(name="validate-prompts")(validate_prompts_module.validate_prompts)


register_commands()
