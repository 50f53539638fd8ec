"""Exception taxonomy for the conversation engine.

AI-layer failures are normalized into the ``ProviderError`` family at the
gateway boundary and are absorbed by the orchestrator. ``NoProviderConfigured``
and ``PersistenceFailed`` are hard stops surfaced to the caller.
"""

from enum import Enum


class ConversationEngineError(Exception):
    """Base class for every error raised by the engine."""

    kind = "engine_error"


class ProviderError(ConversationEngineError):
    """A configured AI provider failed. Never aborts an orchestration."""

    kind = "provider_error"

    def __init__(self, message: str = "", provider: str | None = None):
        super().__init__(message or self.kind)
        self.provider = provider


class ProviderUnavailable(ProviderError):
    """Timeout, connection failure or server-side error."""

    kind = "provider_unavailable"


class ProviderAuthFailed(ProviderError):
    """Credentials missing or rejected."""

    kind = "provider_auth_failed"


class ProviderRateLimited(ProviderError):
    kind = "provider_rate_limited"


class ProviderBadResponse(ProviderError):
    """The provider answered, but the answer is unusable (empty, malformed)."""

    kind = "provider_bad_response"


class NoProviderConfigured(ConversationEngineError):
    """No AI provider has credentials. Hard stop."""

    kind = "no_provider_configured"

    def __init__(self, message: str = "No AI provider configured"):
        super().__init__(message)


class PersistenceFailed(ConversationEngineError):
    """The conversation store rejected a write or read."""

    kind = "persistence_failed"


class ThreadNotFound(ConversationEngineError):
    kind = "thread_not_found"

    def __init__(self, thread_id: str):
        super().__init__(f"Thread not found: {thread_id}")
        self.thread_id = thread_id


class DraftNotFound(ConversationEngineError):
    kind = "draft_not_found"

    def __init__(self, draft_id: str):
        super().__init__(f"Draft not found: {draft_id}")
        self.draft_id = draft_id


class DraftNotEditable(ConversationEngineError):
    kind = "draft_not_editable"

    def __init__(self, draft_id: str, status: str):
        super().__init__(f"Draft {draft_id} is {status}, not editable")
        self.draft_id = draft_id
        self.status = status


class SendFailed(ConversationEngineError):
    """The outbound sender could not deliver a reply."""

    kind = "send_failed"


class SkipReason(str, Enum):
    """Why the resolver rejected an email. Expected filtering, not failure."""

    NOT_RECEIVED = "not_received"
    STALE = "stale"
    DUPLICATE = "duplicate"


class DuplicateEmail(ConversationEngineError):
    """Raised inside the store when a source email id is already recorded."""

    kind = "duplicate_email"
    reason = SkipReason.DUPLICATE

    def __init__(self, email_id: str):
        super().__init__(f"Email already processed: {email_id}")
        self.email_id = email_id


class StaleEmail(ConversationEngineError):
    """The email is older than the freshness window."""

    kind = "stale_email"
    reason = SkipReason.STALE

    def __init__(self, email_id: str, age_seconds: float):
        super().__init__(f"Email {email_id} is {age_seconds:.0f}s old")
        self.email_id = email_id
        self.age_seconds = age_seconds
