"""DB repositories: sync functions returning pydantic domain models."""

from conversation_engine.db.repositories import draft_repo, message_repo, thread_repo

__all__ = [
    "draft_repo",
    "message_repo",
    "thread_repo",
]
