"""Conversation thread, message, draft and workflow models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class AuthorKind(str, Enum):
    INBOUND_EMAIL = "inbound-email"
    USER = "user"
    AI_SUGGESTION = "ai-suggestion"
    AI_DRAFT = "ai-draft"


class DraftStatus(str, Enum):
    EDITABLE = "editable"
    DISCARDED = "discarded"
    SUPERSEDED = "superseded"
    SENT = "sent"


class WorkflowState(str, Enum):
    INITIAL = "Initial"
    CONTEXT_GATHERED = "ContextGathered"
    DRAFT_GENERATED = "DraftGenerated"
    AWAITING_APPROVAL = "AwaitingApproval"
    SENT = "Sent"
    COMPLETED = "Completed"


class ConversationThread(BaseModel):
    """One ongoing exchange with a single counterpart."""

    model_config = ConfigDict(from_attributes=True)

    thread_id: str
    sender: str
    sender_key: str
    subject: str
    created_at: datetime
    last_email_date: datetime
    total_emails: int = 0
    closed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None


class ConversationMessage(BaseModel):
    """Entry in a thread's visible log."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    thread_id: str
    author_kind: AuthorKind
    content: str
    created_at: datetime
    source_email_id: Optional[str] = None
    metadata: dict[str, Any] = {}


class Draft(BaseModel):
    """AI-generated reply candidate. Not authoritative until a human sends it."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    thread_id: Optional[str] = None
    content: str
    generated_at: datetime
    context_label: str = ""
    source_email_id: Optional[str] = None
    status: DraftStatus = DraftStatus.EDITABLE
    sent_at: Optional[datetime] = None

    @property
    def is_editable(self) -> bool:
        return self.status == DraftStatus.EDITABLE


class ThreadUpdated(BaseModel):
    """Notification emitted after every mutation of a thread."""

    thread_id: str
    state: WorkflowState
    email_id: Optional[str] = None
    reason: str = "inbound_email"


class ThreadDetail(BaseModel):
    """Query view: thread plus its log, drafts and derived state."""

    thread: ConversationThread
    state: WorkflowState
    messages: list[ConversationMessage] = []
    drafts: list[Draft] = []


class IngestOutcome(BaseModel):
    """Result of handing one email to the engine. Skips are outcomes, not errors."""

    email_id: str
    status: str  # "processed" | "skipped"
    skip_reason: Optional[str] = None
    thread_id: Optional[str] = None
    is_new_thread: bool = False
    state: Optional[WorkflowState] = None
    degraded: bool = False

    @property
    def processed(self) -> bool:
        return self.status == "processed"
