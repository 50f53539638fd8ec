"""ORM models for conversation threads, their message log and reply drafts."""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from conversation_engine.db.base import Base, TimestampMixin, UTCDateTime


class ConversationThreadRow(Base, TimestampMixin):
    """One row per thread. At most one open (closed_at IS NULL) row per sender_key."""

    __tablename__ = "conversation_threads"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    thread_id: Mapped[str] = mapped_column(String(512), unique=True, nullable=False, index=True)
    sender: Mapped[str] = mapped_column(String(512), nullable=False)
    sender_key: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    last_email_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    total_emails: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)

    messages: Mapped[list["ConversationMessageRow"]] = relationship(
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="ConversationMessageRow.seq",
    )
    drafts: Mapped[list["DraftRow"]] = relationship(
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="DraftRow.seq",
    )


class ConversationMessageRow(Base):
    """Visible log entry. source_email_id is unique: the dedup backstop."""

    __tablename__ = "conversation_messages"

    seq: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    thread_id: Mapped[str] = mapped_column(
        ForeignKey("conversation_threads.thread_id"), nullable=False, index=True
    )
    author_kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    source_email_id: Mapped[Optional[str]] = mapped_column(String(512), unique=True, nullable=True)
    sender_key: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    thread: Mapped[ConversationThreadRow] = relationship(back_populates="messages")


class DraftRow(Base):
    """Reply candidate generated for a thread."""

    __tablename__ = "drafts"

    seq: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    thread_id: Mapped[str] = mapped_column(
        ForeignKey("conversation_threads.thread_id"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    context_label: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    source_email_id: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    generated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    thread: Mapped[ConversationThreadRow] = relationship(back_populates="drafts")
