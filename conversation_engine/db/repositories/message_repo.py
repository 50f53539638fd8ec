"""Conversation message repository: append, dedup lookup, per-thread and per-sender listing."""

import json
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conversation_engine.db import get_session
from conversation_engine.db.models.conversation import ConversationMessageRow
from conversation_engine.errors import DuplicateEmail
from conversation_engine.models.conversation import AuthorKind, ConversationMessage


def message_to_row(message: ConversationMessage) -> ConversationMessageRow:
    return ConversationMessageRow(
        id=message.id,
        thread_id=message.thread_id,
        author_kind=message.author_kind.value,
        content=message.content,
        created_at=message.created_at,
        source_email_id=message.source_email_id,
        sender_key=message.metadata.get("sender_key"),
        metadata_json=json.dumps(message.metadata, default=str) if message.metadata else None,
    )


def message_to_model(row: ConversationMessageRow) -> ConversationMessage:
    return ConversationMessage(
        id=row.id,
        thread_id=row.thread_id,
        author_kind=AuthorKind(row.author_kind),
        content=row.content,
        created_at=row.created_at,
        source_email_id=row.source_email_id,
        metadata=json.loads(row.metadata_json) if row.metadata_json else {},
    )


def append(message: ConversationMessage) -> ConversationMessage:
    """Insert a message. Raises DuplicateEmail if its source_email_id is already stored."""
    with get_session() as session:
        session.add(message_to_row(message))
        try:
            session.flush()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateEmail(message.source_email_id or "") from e
        return message


def find_by_source_email_id(email_id: str) -> Optional[ConversationMessage]:
    with get_session() as session:
        row = session.scalars(
            select(ConversationMessageRow).where(ConversationMessageRow.source_email_id == email_id)
        ).first()
        return message_to_model(row) if row is not None else None


def list_for_thread(thread_id: str) -> list[ConversationMessage]:
    """All messages of a thread in insertion order."""
    with get_session() as session:
        q = (
            select(ConversationMessageRow)
            .where(ConversationMessageRow.thread_id == thread_id)
            .order_by(ConversationMessageRow.seq)
        )
        return [message_to_model(r) for r in session.scalars(q).all()]


def latest_inbound_for_thread(thread_id: str) -> Optional[ConversationMessage]:
    with get_session() as session:
        row = session.scalars(
            select(ConversationMessageRow)
            .where(ConversationMessageRow.thread_id == thread_id)
            .where(ConversationMessageRow.author_kind == AuthorKind.INBOUND_EMAIL.value)
            .order_by(ConversationMessageRow.created_at.desc(), ConversationMessageRow.seq.desc())
        ).first()
        return message_to_model(row) if row is not None else None


def recent_inbound_for_sender(sender_key: str, limit: int = 10) -> list[ConversationMessage]:
    """Most recent inbound-email messages from this sender across threads, newest first."""
    with get_session() as session:
        q = (
            select(ConversationMessageRow)
            .where(ConversationMessageRow.sender_key == sender_key)
            .where(ConversationMessageRow.author_kind == AuthorKind.INBOUND_EMAIL.value)
            .order_by(ConversationMessageRow.created_at.desc(), ConversationMessageRow.seq.desc())
            .limit(limit)
        )
        return [message_to_model(r) for r in session.scalars(q).all()]
