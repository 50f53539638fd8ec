"""Thread analytics: keyword heuristics over the sender's recent emails."""

import re
from datetime import datetime
from typing import Iterable

from conversation_engine.config import EngineConfig
from conversation_engine.db.repositories import message_repo
from conversation_engine.models.analysis import ResponseType, ThreadSummary, Urgency
from conversation_engine.models.conversation import ConversationMessage, ConversationThread
from conversation_engine.utils.logger import get_logger

logger = get_logger("conversation_engine.analytics")


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern | None:
    words = [re.escape(k.strip().lower()) for k in keywords if k and k.strip()]
    if not words:
        return None
    # whole words only: "hi" must not match "this"
    return re.compile(r"(?<!\w)(" + "|".join(words) + r")(?!\w)")


def _email_fields(message: ConversationMessage) -> dict:
    email = message.metadata.get("email") or {}
    return {
        "subject": email.get("subject", ""),
        "body": email.get("body", message.content),
        "date": email.get("date") or message.created_at.isoformat(),
    }


def _format_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return str(value)


class ThreadAnalytics:
    """``analyze_thread(thread) -> ThreadSummary``. Read-only; no AI calls, no locks."""

    def __init__(self, config: EngineConfig):
        self.recent_limit = config.analytics_recent_limit
        self.digest_size = config.analytics_digest_size
        self._tone_patterns = [
            ("urgent", _keyword_pattern(config.urgent_keywords)),
            ("formal", _keyword_pattern(config.formal_keywords)),
            ("informal", _keyword_pattern(config.informal_keywords)),
        ]
        self._urgent = _keyword_pattern(config.urgent_keywords)
        self._urgency = _keyword_pattern(config.urgency_keywords)

    def conversation_tone(self, text: str) -> str:
        lowered = text.lower()
        for tone, pattern in self._tone_patterns:
            if pattern is not None and pattern.search(lowered):
                return tone
        return "neutral"

    def urgency(self, text: str, email_count: int) -> Urgency:
        if self._urgency is not None and self._urgency.search(text.lower()):
            return Urgency.HIGH
        if email_count > 5:
            return Urgency.MEDIUM
        return Urgency.NORMAL

    def suggested_response_type(self, email_count: int, latest_subject: str) -> ResponseType:
        if email_count > 3:
            return ResponseType.YES
        if self._urgent is not None and self._urgent.search(latest_subject.lower()):
            return ResponseType.YES
        return ResponseType.NO

    def context_digest(self, emails: list[dict]) -> str:
        """The most recent emails as "**date - subject**" headers followed by the body."""
        blocks = [
            f"**{_format_date(e['date'])} - {e['subject']}**\n{e['body'].strip()}"
            for e in emails[: self.digest_size]
        ]
        return "\n\n".join(blocks)

    def analyze_thread(self, thread: ConversationThread) -> ThreadSummary:
        recent = message_repo.recent_inbound_for_sender(thread.sender_key, limit=self.recent_limit)
        emails = [_email_fields(m) for m in recent]
        text = "\n".join(f"{e['subject']}\n{e['body']}" for e in emails)
        count = len(emails)
        summary = ThreadSummary(
            thread_id=thread.thread_id,
            sender=thread.sender,
            total_emails=thread.total_emails,
            conversation_tone=self.conversation_tone(text),
            urgency=self.urgency(text, count),
            suggested_response_type=self.suggested_response_type(count, emails[0]["subject"] if emails else ""),
            context_digest=self.context_digest(emails),
        )
        logger.debug(
            "analytics.thread_analyzed",
            thread_id=thread.thread_id,
            recent_emails=count,
            tone=summary.conversation_tone,
            urgency=summary.urgency.value,
        )
        return summary
