"""AI analysis value objects."""

from enum import Enum

from pydantic import BaseModel


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"


class EmailCategory(str, Enum):
    WORK = "work"
    PERSONAL = "personal"
    COMMERCIAL = "commercial"
    TECHNICAL = "technical"
    SOCIAL = "social"
    SPAM = "spam"
    OTHER = "other"


class ResponseType(str, Enum):
    YES = "yes"
    NO = "no"
    CUSTOM = "custom"


class AnalysisResult(BaseModel):
    """Best-effort reading of an email. Advisory; persisted only inside an ai-suggestion message."""

    tone: str = "neutral"
    sentiment: str = "neutral"
    urgency: Urgency = Urgency.NORMAL
    category: EmailCategory = EmailCategory.OTHER
    complexity: str = "medium"
    summary: str = ""

    def suggested_response(self) -> ResponseType:
        """Quick reply for urgent mail, a tailored one for medium, decline otherwise."""
        if self.urgency == Urgency.HIGH:
            return ResponseType.YES
        if self.urgency == Urgency.MEDIUM:
            return ResponseType.CUSTOM
        return ResponseType.NO


class ThreadSummary(BaseModel):
    """Conversation-level digest of the recent emails from a thread's sender."""

    thread_id: str
    sender: str
    total_emails: int
    conversation_tone: str
    urgency: Urgency
    suggested_response_type: ResponseType
    context_digest: str
