"""Draft repository: insert, edit, discard, and the send transition (sent + supersede)."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select

from conversation_engine.db import get_session
from conversation_engine.db.models.conversation import DraftRow
from conversation_engine.db.repositories.message_repo import message_to_row
from conversation_engine.errors import DraftNotEditable, DraftNotFound
from conversation_engine.models.conversation import ConversationMessage, Draft, DraftStatus


def draft_to_model(row: DraftRow) -> Draft:
    return Draft(
        id=row.id,
        thread_id=row.thread_id,
        content=row.content,
        generated_at=row.generated_at,
        context_label=row.context_label,
        source_email_id=row.source_email_id,
        status=DraftStatus(row.status),
        sent_at=row.sent_at,
    )


def _get_row(session, draft_id: str) -> DraftRow:
    row = session.scalars(select(DraftRow).where(DraftRow.id == draft_id)).first()
    if row is None:
        raise DraftNotFound(draft_id)
    return row


def insert(draft: Draft, message: Optional[ConversationMessage] = None) -> Draft:
    """Store a new draft, optionally with the ai-draft log entry announcing it."""
    with get_session() as session:
        session.add(
            DraftRow(
                id=draft.id,
                thread_id=draft.thread_id,
                content=draft.content,
                context_label=draft.context_label,
                source_email_id=draft.source_email_id,
                generated_at=draft.generated_at,
                status=draft.status.value,
                sent_at=draft.sent_at,
            )
        )
        if message is not None:
            session.add(message_to_row(message))
        return draft


def get(draft_id: str) -> Optional[Draft]:
    with get_session() as session:
        row = session.scalars(select(DraftRow).where(DraftRow.id == draft_id)).first()
        return draft_to_model(row) if row is not None else None


def list_for_thread(thread_id: str) -> list[Draft]:
    with get_session() as session:
        q = select(DraftRow).where(DraftRow.thread_id == thread_id).order_by(DraftRow.seq)
        return [draft_to_model(r) for r in session.scalars(q).all()]


def update_content(draft_id: str, content: str) -> Draft:
    with get_session() as session:
        row = _get_row(session, draft_id)
        if row.status != DraftStatus.EDITABLE.value:
            raise DraftNotEditable(draft_id, row.status)
        row.content = content
        session.flush()
        return draft_to_model(row)


def discard(draft_id: str) -> Draft:
    with get_session() as session:
        row = _get_row(session, draft_id)
        if row.status != DraftStatus.EDITABLE.value:
            raise DraftNotEditable(draft_id, row.status)
        row.status = DraftStatus.DISCARDED.value
        session.flush()
        return draft_to_model(row)


def record_send(
    thread_id: str,
    message: ConversationMessage,
    sent_at: datetime,
    draft_id: Optional[str] = None,
    sent_content: Optional[str] = None,
) -> None:
    """Append the user reply, mark the chosen draft sent and supersede the thread's other editable drafts."""
    with get_session() as session:
        if draft_id is not None:
            row = _get_row(session, draft_id)
            if row.status != DraftStatus.EDITABLE.value:
                raise DraftNotEditable(draft_id, row.status)
            row.status = DraftStatus.SENT.value
            row.sent_at = sent_at
            if sent_content is not None:
                row.content = sent_content
        others = session.scalars(
            select(DraftRow)
            .where(DraftRow.thread_id == thread_id)
            .where(DraftRow.status == DraftStatus.EDITABLE.value)
        ).all()
        for other in others:
            if other.id != draft_id:
                other.status = DraftStatus.SUPERSEDED.value
        session.add(message_to_row(message))
