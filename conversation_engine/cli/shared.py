"""Shared CLI helpers: orchestrator wiring, inbox loading and thread rendering."""

import json
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from conversation_engine.config import SENT_ITEMS_PATH, load_engine_config
from conversation_engine.db import init_db
from conversation_engine.models.conversation import ThreadDetail
from conversation_engine.models.email import Email
from conversation_engine.orchestrator import ConversationOrchestrator
from conversation_engine.outbound import JsonOutboxSender
from conversation_engine.utils.logger import get_logger

console = Console()
logger = get_logger("conversation_engine.cli")


def build_orchestrator(sent_path: Path | None = None, **config_overrides) -> ConversationOrchestrator:
    """Orchestrator over the configured database, replying into sent_items.json."""
    init_db()
    return ConversationOrchestrator.from_config(
        load_engine_config(**config_overrides),
        sender=JsonOutboxSender(sent_path or SENT_ITEMS_PATH),
    )


def load_emails(path: Path) -> list[Email]:
    """Read a JSON list of emails (or {"value": [...]}/{"emails": [...]}). Invalid entries are skipped."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    items = data if isinstance(data, list) else data.get("value", data.get("emails", []))
    emails: list[Email] = []
    for i, item in enumerate(items):
        try:
            emails.append(Email.model_validate(item))
        except ValidationError as e:
            logger.warning("cli.inbox_invalid_email", index=i, error=str(e))
    logger.info("cli.inbox_loaded", path=str(path), email_count=len(emails), skipped=len(items) - len(emails))
    return emails


def print_threads(details: list[ThreadDetail]) -> None:
    table = Table(title="Conversation threads")
    table.add_column("Thread ID", style="cyan")
    table.add_column("Sender")
    table.add_column("Subject")
    table.add_column("Emails", justify="right")
    table.add_column("Last email")
    table.add_column("State", style="green")
    for d in details:
        t = d.thread
        table.add_row(
            t.thread_id,
            t.sender,
            t.subject,
            str(t.total_emails),
            t.last_email_date.strftime("%Y-%m-%d %H:%M"),
            d.state.value,
        )
    console.print(table)


def print_thread_detail(detail: ThreadDetail) -> None:
    t = detail.thread
    console.print(f"\n[bold]{t.subject}[/bold]  [dim]{t.thread_id}[/dim]")
    console.print(f"  Sender: {t.sender}")
    console.print(f"  Emails: {t.total_emails}  State: [green]{detail.state.value}[/green]")
    for m in detail.messages:
        console.print(f"\n[bold cyan]{m.author_kind.value}[/bold cyan] [dim]{m.created_at.isoformat()}[/dim]")
        console.print(m.content)
    if detail.drafts:
        console.print("\n[bold]Drafts[/bold]")
        for d in detail.drafts:
            label = f" ({d.context_label})" if d.context_label else ""
            console.print(f"  [cyan]{d.id}[/cyan]{label} [{d.status.value}]")
