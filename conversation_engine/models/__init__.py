"""Pydantic models for the conversation engine."""

from conversation_engine.models.analysis import (
    AnalysisResult,
    EmailCategory,
    ResponseType,
    ThreadSummary,
    Urgency,
)
from conversation_engine.models.conversation import (
    AuthorKind,
    ConversationMessage,
    ConversationThread,
    Draft,
    DraftStatus,
    IngestOutcome,
    ThreadDetail,
    ThreadUpdated,
    WorkflowState,
)
from conversation_engine.models.email import Email, EmailDirection

__all__ = [
    "AnalysisResult",
    "EmailCategory",
    "ResponseType",
    "ThreadSummary",
    "Urgency",
    "AuthorKind",
    "ConversationMessage",
    "ConversationThread",
    "Draft",
    "DraftStatus",
    "IngestOutcome",
    "ThreadDetail",
    "ThreadUpdated",
    "WorkflowState",
    "Email",
    "EmailDirection",
]
