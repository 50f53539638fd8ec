"""Ingest mode: feed a JSON file of emails through the engine and print the resulting threads."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from conversation_engine.config import INBOX_PATH, SENT_ITEMS_PATH
from conversation_engine.errors import NoProviderConfigured
from conversation_engine.models.conversation import IngestOutcome
from conversation_engine.models.email import Email
from conversation_engine.orchestrator import ConversationOrchestrator
from conversation_engine.utils.logger import log_context

from .shared import build_orchestrator, console, load_emails, logger, print_threads


async def _ingest_all(orchestrator: ConversationOrchestrator, emails: list[Email]) -> list[IngestOutcome]:
    outcomes: list[IngestOutcome] = []
    for email in sorted(emails, key=lambda e: e.date):
        with log_context(command="ingest", email_id=email.id):
            outcomes.append(await orchestrator.handle_incoming_email(email))
    return outcomes


def ingest(
    inbox: Path = typer.Option(INBOX_PATH, "--inbox", "-i", help="Path to a JSON list of emails"),
    sent: Path = typer.Option(SENT_ITEMS_PATH, "--sent", help="Where replies are recorded"),
    freshness_window: Optional[int] = typer.Option(
        None,
        "--freshness-window",
        help="Skip emails older than this many seconds (default from FRESHNESS_WINDOW_SECONDS)",
    ),
) -> None:
    """Process every email in the inbox file, oldest first."""
    log = logger.bind(command="ingest", inbox=str(inbox))
    log.info("ingest.start")
    if not inbox.exists():
        console.print(f"[red]Inbox not found: {inbox}[/red]")
        raise typer.Exit(1)
    emails = load_emails(inbox)
    if not emails:
        console.print("[red]No emails in inbox.[/red]")
        raise typer.Exit(1)

    overrides = {"freshness_window_seconds": freshness_window} if freshness_window is not None else {}
    orchestrator = build_orchestrator(sent_path=sent, **overrides)
    try:
        outcomes = asyncio.run(_ingest_all(orchestrator, emails))
    except NoProviderConfigured as e:
        console.print(f"[red]{e}. Set OPENAI_API_KEY or ANTHROPIC_API_KEY.[/red]")
        log.error("ingest.no_provider")
        raise typer.Exit(1) from e

    table = Table(title="Ingest results")
    table.add_column("Email ID", style="cyan")
    table.add_column("Status")
    table.add_column("Thread")
    table.add_column("State", style="green")
    for o in outcomes:
        status = o.status if o.processed else f"skipped ({o.skip_reason})"
        if o.degraded:
            status += " [yellow]degraded[/yellow]"
        table.add_row(o.email_id, status, o.thread_id or "", o.state.value if o.state else "")
    console.print(table)
    print_threads(orchestrator.list_threads())
    processed = sum(1 for o in outcomes if o.processed)
    console.print(f"\n[bold]Processed {processed} of {len(outcomes)} emails.[/bold]")
    log.info("ingest.complete", processed=processed, total=len(outcomes))
