"""Conversation thread repository: lookup by sender, atomic inbound recording, closure."""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conversation_engine.db import get_session
from conversation_engine.db.models.conversation import ConversationMessageRow, ConversationThreadRow
from conversation_engine.db.repositories.message_repo import message_to_row
from conversation_engine.errors import DuplicateEmail, PersistenceFailed, ThreadNotFound
from conversation_engine.models.conversation import ConversationMessage, ConversationThread


def thread_to_model(row: ConversationThreadRow) -> ConversationThread:
    return ConversationThread(
        thread_id=row.thread_id,
        sender=row.sender,
        sender_key=row.sender_key,
        subject=row.subject,
        created_at=row.created_at,
        last_email_date=row.last_email_date,
        total_emails=row.total_emails,
        closed_at=row.closed_at,
    )


def _source_email_recorded(session, email_id: str) -> bool:
    q = select(ConversationMessageRow.seq).where(ConversationMessageRow.source_email_id == email_id)
    return session.scalars(q).first() is not None


def get(thread_id: str) -> Optional[ConversationThread]:
    with get_session() as session:
        row = session.scalars(
            select(ConversationThreadRow).where(ConversationThreadRow.thread_id == thread_id)
        ).first()
        return thread_to_model(row) if row is not None else None


def find_active_by_sender(sender_key: str) -> Optional[ConversationThread]:
    """Return the open thread for this normalized sender address, or None."""
    with get_session() as session:
        row = session.scalars(
            select(ConversationThreadRow)
            .where(ConversationThreadRow.sender_key == sender_key)
            .where(ConversationThreadRow.closed_at.is_(None))
            .order_by(ConversationThreadRow.id.desc())
        ).first()
        return thread_to_model(row) if row is not None else None


def thread_id_exists(thread_id: str) -> bool:
    with get_session() as session:
        q = select(ConversationThreadRow.id).where(ConversationThreadRow.thread_id == thread_id)
        return session.scalars(q).first() is not None


def record_inbound(
    thread: ConversationThread,
    message: ConversationMessage,
    email_date: datetime,
    is_new: bool,
) -> ConversationThread:
    """Insert the thread (when new) and its inbound message, bump counters. One transaction.

    Raises DuplicateEmail when message.source_email_id is already stored.
    """
    with get_session() as session:
        if is_new:
            row = ConversationThreadRow(
                thread_id=thread.thread_id,
                sender=thread.sender,
                sender_key=thread.sender_key,
                subject=thread.subject,
                created_at=thread.created_at,
                last_email_date=email_date,
                total_emails=0,
            )
            session.add(row)
        else:
            row = session.scalars(
                select(ConversationThreadRow).where(ConversationThreadRow.thread_id == thread.thread_id)
            ).first()
            if row is None:
                raise ThreadNotFound(thread.thread_id)
        row.total_emails = (row.total_emails or 0) + 1
        if row.last_email_date is None or email_date > row.last_email_date:
            row.last_email_date = email_date
        session.add(message_to_row(message))
        try:
            session.flush()
        except IntegrityError as e:
            session.rollback()
            if message.source_email_id and _source_email_recorded(session, message.source_email_id):
                raise DuplicateEmail(message.source_email_id) from e
            raise PersistenceFailed(f"Could not record inbound email {message.source_email_id}: {e.orig}") from e
        session.refresh(row)
        return thread_to_model(row)


def close(thread_id: str, closed_at: datetime) -> ConversationThread:
    """Mark the thread completed; it stops being the active thread for its sender."""
    with get_session() as session:
        row = session.scalars(
            select(ConversationThreadRow).where(ConversationThreadRow.thread_id == thread_id)
        ).first()
        if row is None:
            raise ThreadNotFound(thread_id)
        if row.closed_at is None:
            row.closed_at = closed_at
        session.flush()
        return thread_to_model(row)


def list_threads(include_closed: bool = False, limit: int = 100, offset: int = 0) -> list[ConversationThread]:
    """Threads ordered by most recent email first."""
    with get_session() as session:
        q = select(ConversationThreadRow)
        if not include_closed:
            q = q.where(ConversationThreadRow.closed_at.is_(None))
        q = q.order_by(ConversationThreadRow.last_email_date.desc()).limit(limit).offset(offset)
        return [thread_to_model(r) for r in session.scalars(q).all()]
