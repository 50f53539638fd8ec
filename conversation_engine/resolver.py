"""Thread resolver and deduplicator: maps inbound emails to threads, at most once per email id."""

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

from conversation_engine.config import EngineConfig
from conversation_engine.db.repositories import message_repo, thread_repo
from conversation_engine.errors import SkipReason, StaleEmail
from conversation_engine.models.conversation import ConversationThread
from conversation_engine.models.email import Email, EmailDirection
from conversation_engine.utils.logger import get_logger

logger = get_logger("conversation_engine.resolver")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize(value: str) -> str:
    return _NON_ALNUM.sub("_", (value or "").strip().lower()).strip("_")


def make_thread_id(sender: str, subject: str) -> str:
    """Deterministic id: normalize(sender) + "_" + normalize(subject).

    Subjects are taken as-is, so "Re: Invoice" and "Invoice" give different ids.
    Threads are matched by sender first; the id only names a new thread.
    """
    return f"{normalize(sender) or 'unknown'}_{normalize(subject) or 'no_subject'}"


@dataclass
class Resolution:
    thread: Optional[ConversationThread]
    is_new: bool = False
    should_skip: bool = False
    skip_reason: Optional[SkipReason] = None

    @classmethod
    def skip(cls, reason: SkipReason) -> "Resolution":
        return cls(thread=None, should_skip=True, skip_reason=reason)


class SenderLocks:
    """Key-striped asyncio locks; an entry lives only while someone holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ThreadResolver:
    """``resolve(email) -> Resolution(thread, is_new, should_skip)``.

    Checks run cheapest first: direction, freshness, duplicate id. Only then is
    the sender's thread looked up (or synthesized), under the sender lock.
    A synthesized thread is not persisted here; the caller stores it together
    with the first message while still holding the lock (see ``resolving``).
    """

    def __init__(
        self,
        config: EngineConfig,
        locks: SenderLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.freshness_window = timedelta(seconds=config.freshness_window_seconds)
        self.locks = locks or SenderLocks()
        self._clock = clock

    def check_fresh(self, email: Email) -> None:
        """Raise StaleEmail when the email is older than the freshness window."""
        age = self._clock() - email.date
        if age > self.freshness_window:
            raise StaleEmail(email.id, age.total_seconds())

    def precheck(self, email: Email) -> Optional[SkipReason]:
        """Side-effect-free rejections. None means the email qualifies."""
        if email.direction != EmailDirection.RECEIVED:
            return SkipReason.NOT_RECEIVED
        try:
            self.check_fresh(email)
        except StaleEmail as e:
            logger.debug("resolver.stale", email_id=email.id, age_seconds=round(e.age_seconds))
            return e.reason
        if message_repo.find_by_source_email_id(email.id) is not None:
            return SkipReason.DUPLICATE
        return None

    def _unique_thread_id(self, base: str) -> str:
        candidate, n = base, 1
        while thread_repo.thread_id_exists(candidate):
            n += 1
            candidate = f"{base}_{n}"
        return candidate

    def _resolve_locked(self, email: Email) -> Resolution:
        # a concurrent delivery of the same id may have committed while we waited
        if message_repo.find_by_source_email_id(email.id) is not None:
            return Resolution.skip(SkipReason.DUPLICATE)
        sender_key = email.sender_address
        existing = thread_repo.find_active_by_sender(sender_key)
        if existing is not None:
            return Resolution(thread=existing, is_new=False)
        now = self._clock()
        thread = ConversationThread(
            thread_id=self._unique_thread_id(make_thread_id(sender_key, email.subject)),
            sender=email.from_,
            sender_key=sender_key,
            subject=email.subject,
            created_at=now,
            last_email_date=email.date,
            total_emails=0,
        )
        return Resolution(thread=thread, is_new=True)

    @asynccontextmanager
    async def resolving(self, email: Email) -> AsyncIterator[Resolution]:
        """Yield the resolution while holding the sender lock (not taken for skipped emails)."""
        reason = self.precheck(email)
        if reason is not None:
            logger.debug("resolver.skip", email_id=email.id, reason=reason.value)
            yield Resolution.skip(reason)
            return
        async with self.locks.hold(email.sender_address):
            resolution = self._resolve_locked(email)
            if resolution.should_skip:
                logger.debug("resolver.skip", email_id=email.id, reason=resolution.skip_reason.value)
            yield resolution

    async def resolve(self, email: Email) -> Resolution:
        async with self.resolving(email) as resolution:
            return resolution
