"""ORM models."""

from conversation_engine.db.models.conversation import (
    ConversationMessageRow,
    ConversationThreadRow,
    DraftRow,
)

__all__ = [
    "ConversationMessageRow",
    "ConversationThreadRow",
    "DraftRow",
]
