"""Thread inspection commands: list threads, show one thread with its analytics."""

import typer

from conversation_engine.errors import ThreadNotFound

from .shared import build_orchestrator, console, logger, print_thread_detail, print_threads


def threads(
    include_closed: bool = typer.Option(False, "--all", "-a", help="Include completed threads"),
) -> None:
    """List conversation threads, most recent first."""
    details = build_orchestrator().list_threads(include_closed=include_closed)
    if not details:
        console.print("[dim]No threads yet.[/dim]")
        return
    print_threads(details)


def show(thread_id: str = typer.Argument(..., help="Thread ID")) -> None:
    """Show a thread's log, drafts, derived state and analytics."""
    orchestrator = build_orchestrator()
    try:
        detail = orchestrator.get_thread(thread_id)
    except ThreadNotFound as e:
        console.print(f"[red]{e}[/red]")
        logger.warning("show.thread_not_found", thread_id=thread_id)
        raise typer.Exit(1) from e
    print_thread_detail(detail)
    summary = orchestrator.analyze_thread(thread_id)
    console.print("\n[bold]Analytics[/bold]")
    console.print(f"  Tone: {summary.conversation_tone}")
    console.print(f"  Urgency: {summary.urgency.value}")
    console.print(f"  Suggested response: {summary.suggested_response_type.value}")
