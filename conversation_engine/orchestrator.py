"""Conversation orchestrator: inbound email -> thread -> analysis -> derived state -> event.

Also drives the human-in-the-loop half of the workflow: draft requests, edits,
approval and send, and thread completion.
"""

import inspect
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from opentelemetry.trace import Status, StatusCode

from conversation_engine.ai.analysis import EmailAnalysisService
from conversation_engine.ai.gateway import AIGateway
from conversation_engine.ai.prompts import PromptTemplateEngine
from conversation_engine.analytics import ThreadAnalytics
from conversation_engine.config import EngineConfig
from conversation_engine.db.repositories import draft_repo, message_repo, thread_repo
from conversation_engine.errors import (
    DraftNotEditable,
    DraftNotFound,
    DuplicateEmail,
    NoProviderConfigured,
    ProviderError,
    SendFailed,
    SkipReason,
    ThreadNotFound,
)
from conversation_engine.models.analysis import AnalysisResult, ResponseType, ThreadSummary
from conversation_engine.models.conversation import (
    AuthorKind,
    ConversationMessage,
    ConversationThread,
    Draft,
    IngestOutcome,
    ThreadDetail,
    ThreadUpdated,
    WorkflowState,
)
from conversation_engine.models.email import Email
from conversation_engine.outbound.protocol import OutboundSender
from conversation_engine.resolver import ThreadResolver
from conversation_engine.utils.logger import get_logger
from conversation_engine.utils.tracing import get_tracer
from conversation_engine.workflow.events import ThreadEventBus
from conversation_engine.workflow.state import derive_workflow_state

logger = get_logger("conversation_engine.orchestrator")

T = TypeVar("T")

DEGRADED_SUGGESTION = "Analysis unavailable, respond manually."
_REPLY_PREFIX = re.compile(r"^\s*(re|r)\s*:", re.IGNORECASE)


async def _maybe_await(value: Union[T, Awaitable[T]]) -> T:
    """Await any awaitable result; a sync sender's value is returned as-is."""
    if inspect.isawaitable(value):
        return await value
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def render_inbound(email: Email) -> str:
    return (
        "New email received\n"
        f"From: {email.from_}\n"
        f"Subject: {email.subject}\n"
        f"Date: {email.date.strftime('%Y-%m-%d %H:%M UTC')}\n\n"
        f"{email.body.strip()}"
    )


def render_suggestion(result: AnalysisResult) -> str:
    lines = [
        "AI analysis",
        f"Category: {result.category.value}",
        f"Urgency: {result.urgency.value}",
        f"Tone: {result.tone}",
    ]
    if result.summary:
        lines.append(f"Summary: {result.summary}")
    lines.append(f"Suggested response: {result.suggested_response().value}")
    return "\n".join(lines)


def reply_subject(subject: str) -> str:
    return subject if _REPLY_PREFIX.match(subject or "") else f"Re: {subject}"


class ConversationOrchestrator:
    """Top-level driver. All writes to the conversation store go through here.

    ``handle_incoming_email`` never fails because of the AI backend: provider
    errors become a degraded ai-suggestion message. Persistence errors and
    ``NoProviderConfigured`` are surfaced to the caller.
    """

    def __init__(
        self,
        config: EngineConfig,
        resolver: ThreadResolver,
        analysis: EmailAnalysisService,
        events: ThreadEventBus | None = None,
        sender: OutboundSender | None = None,
        analytics: ThreadAnalytics | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.resolver = resolver
        self.analysis = analysis
        self.events = events or ThreadEventBus()
        self.sender = sender
        self.analytics = analytics or ThreadAnalytics(config)
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        sender: OutboundSender | None = None,
        templates: PromptTemplateEngine | None = None,
        events: ThreadEventBus | None = None,
    ) -> "ConversationOrchestrator":
        """Wire the default components: real providers, YAML templates, keyword parser."""
        templates = templates or PromptTemplateEngine.from_files()
        gateway = AIGateway.from_config(config, system_prompt=templates.system_prompt)
        return cls(
            config,
            resolver=ThreadResolver(config),
            analysis=EmailAnalysisService(gateway, templates),
            events=events,
            sender=sender,
        )

    def _now_after(self, moment: Optional[datetime]) -> datetime:
        # log entries written in response to an email never sort before it
        now = self._clock()
        return max(now, moment) if moment is not None else now

    # -- inbound path -------------------------------------------------------

    async def handle_incoming_email(self, email: Email) -> IngestOutcome:
        tracer = get_tracer()
        log = logger.bind(email_id=email.id, sender=email.sender_address)
        with tracer.start_as_current_span(
            "handle_incoming_email",
            attributes={"email.id": email.id, "email.sender": email.sender_address},
        ) as root_span:
            try:
                thread, is_new, skip_reason = await self._resolve_and_append(email, tracer)
                if skip_reason is not None:
                    root_span.set_attribute("email.skip_reason", skip_reason.value)
                    log.info("orchestrator.handle_email.skipped", reason=skip_reason.value)
                    return IngestOutcome(email_id=email.id, status="skipped", skip_reason=skip_reason.value)

                log = log.bind(thread_id=thread.thread_id)
                root_span.set_attribute("thread.id", thread.thread_id)
                log.info("orchestrator.handle_email.appended", is_new_thread=is_new, total_emails=thread.total_emails)

                with tracer.start_as_current_span("analyze_email", attributes={"thread.id": thread.thread_id}) as span:
                    suggestion, hard_stop = await self._analyze(email, thread)
                    if suggestion.metadata.get("degraded"):
                        span.set_status(Status(StatusCode.ERROR, "analysis_degraded"))
                message_repo.append(suggestion)

                with tracer.start_as_current_span("derive_state"):
                    state = self.derive_state(thread)
                root_span.set_attribute("thread.state", state.value)
                await self.events.publish(ThreadUpdated(thread_id=thread.thread_id, state=state, email_id=email.id))
                log.info("orchestrator.handle_email.complete", state=state.value)
            except Exception as e:
                root_span.set_status(Status(StatusCode.ERROR, str(e)))
                root_span.record_exception(e)
                raise

        if hard_stop is not None:
            raise hard_stop
        return IngestOutcome(
            email_id=email.id,
            status="processed",
            thread_id=thread.thread_id,
            is_new_thread=is_new,
            state=state,
            degraded=bool(suggestion.metadata.get("degraded")),
        )

    async def _resolve_and_append(
        self, email: Email, tracer
    ) -> tuple[Optional[ConversationThread], bool, Optional[SkipReason]]:
        """Resolver steps and the inbound append, both under the sender lock."""
        with tracer.start_as_current_span("resolve_thread"):
            async with self.resolver.resolving(email) as resolution:
                if resolution.should_skip:
                    return None, False, resolution.skip_reason
                message = ConversationMessage(
                    id=_new_id(),
                    thread_id=resolution.thread.thread_id,
                    author_kind=AuthorKind.INBOUND_EMAIL,
                    content=render_inbound(email),
                    created_at=email.date,
                    source_email_id=email.id,
                    metadata={
                        "sender_key": email.sender_address,
                        "email": email.model_dump(mode="json", by_alias=True),
                    },
                )
                with tracer.start_as_current_span("append_inbound", attributes={"thread.is_new": resolution.is_new}):
                    try:
                        thread = thread_repo.record_inbound(
                            resolution.thread, message, email.date, is_new=resolution.is_new
                        )
                    except DuplicateEmail as e:
                        return None, False, e.reason
                return thread, resolution.is_new, None

    async def _analyze(
        self, email: Email, thread: ConversationThread
    ) -> tuple[ConversationMessage, Optional[NoProviderConfigured]]:
        """Build the ai-suggestion message. Returns the hard-stop error to raise after it is stored."""
        hard_stop: Optional[NoProviderConfigured] = None
        try:
            result = await self.analysis.analyze(email)
            content = render_suggestion(result)
            metadata: dict[str, Any] = {
                "degraded": False,
                "analysis": result.model_dump(mode="json"),
                "suggested_response": result.suggested_response().value,
            }
        except (ProviderError, NoProviderConfigured) as e:
            logger.warning(
                "orchestrator.analysis_degraded",
                email_id=email.id,
                thread_id=thread.thread_id,
                error_kind=e.kind,
                error=str(e),
            )
            if isinstance(e, NoProviderConfigured):
                hard_stop = e
            content = f"{DEGRADED_SUGGESTION}\nSuggested response: {ResponseType.CUSTOM.value}"
            metadata = {
                "degraded": True,
                "error_kind": e.kind,
                "suggested_response": ResponseType.CUSTOM.value,
            }
        message = ConversationMessage(
            id=_new_id(),
            thread_id=thread.thread_id,
            author_kind=AuthorKind.AI_SUGGESTION,
            content=content,
            created_at=self._now_after(email.date),
            source_email_id=None,
            metadata=metadata,
        )
        return message, hard_stop

    # -- queries ------------------------------------------------------------

    def _require_thread(self, thread_id: str) -> ConversationThread:
        thread = thread_repo.get(thread_id)
        if thread is None:
            raise ThreadNotFound(thread_id)
        return thread

    def derive_state(self, thread: ConversationThread) -> WorkflowState:
        return derive_workflow_state(
            thread,
            message_repo.list_for_thread(thread.thread_id),
            draft_repo.list_for_thread(thread.thread_id),
        )

    def get_thread(self, thread_id: str) -> ThreadDetail:
        thread = self._require_thread(thread_id)
        messages = message_repo.list_for_thread(thread_id)
        drafts = draft_repo.list_for_thread(thread_id)
        return ThreadDetail(
            thread=thread,
            state=derive_workflow_state(thread, messages, drafts),
            messages=messages,
            drafts=drafts,
        )

    def list_threads(self, include_closed: bool = False) -> list[ThreadDetail]:
        """Active threads, most recent email first."""
        return [self.get_thread(t.thread_id) for t in thread_repo.list_threads(include_closed=include_closed)]

    def list_drafts_for_thread(self, thread_id: str) -> list[Draft]:
        self._require_thread(thread_id)
        return draft_repo.list_for_thread(thread_id)

    def analyze_thread(self, thread_id: str) -> ThreadSummary:
        return self.analytics.analyze_thread(self._require_thread(thread_id))

    # -- drafts -------------------------------------------------------------

    def _latest_email(self, thread_id: str) -> Email:
        self._require_thread(thread_id)
        message = message_repo.latest_inbound_for_thread(thread_id)
        if message is None or "email" not in message.metadata:
            raise ThreadNotFound(thread_id)
        return Email.model_validate(message.metadata["email"])

    async def _publish(self, thread_id: str, reason: str, email_id: Optional[str] = None) -> WorkflowState:
        state = self.derive_state(self._require_thread(thread_id))
        await self.events.publish(ThreadUpdated(thread_id=thread_id, state=state, email_id=email_id, reason=reason))
        return state

    def _store_draft(self, draft: Draft) -> Draft:
        label = f" ({draft.context_label})" if draft.context_label else ""
        message = ConversationMessage(
            id=_new_id(),
            thread_id=draft.thread_id,
            author_kind=AuthorKind.AI_DRAFT,
            content=f"Draft{label}:\n{draft.content}",
            created_at=draft.generated_at,
            metadata={"draft_id": draft.id, "context_label": draft.context_label},
        )
        return draft_repo.insert(draft, message=message)

    async def request_draft(self, thread_id: str, context_hint: str = "") -> Optional[Draft]:
        """One draft for the latest inbound email. None when the provider fails."""
        email = self._latest_email(thread_id)
        try:
            draft = await self.analysis.generate_draft(email, context_hint=context_hint, thread_id=thread_id)
        except ProviderError as e:
            logger.warning("orchestrator.draft_failed", thread_id=thread_id, error_kind=e.kind)
            return None
        self._store_draft(draft)
        await self._publish(thread_id, "draft_generated", email.id)
        return draft

    async def request_variants(self, thread_id: str, n: Optional[int] = None) -> list[Draft]:
        email = self._latest_email(thread_id)
        count = n if n is not None else self.config.default_variant_count
        drafts = await self.analysis.generate_variants(email, n=count, thread_id=thread_id)
        for draft in drafts:
            self._store_draft(draft)
        if drafts:
            await self._publish(thread_id, "draft_generated", email.id)
        return drafts

    async def request_custom_draft(
        self, thread_id: str, instructions: str, base_draft_id: Optional[str] = None
    ) -> Optional[Draft]:
        email = self._latest_email(thread_id)
        base = None
        if base_draft_id is not None:
            base = draft_repo.get(base_draft_id)
            if base is None or base.thread_id != thread_id:
                raise DraftNotFound(base_draft_id)
        try:
            draft = await self.analysis.generate_custom_draft(
                email, instructions, base_draft=base, thread_id=thread_id
            )
        except ProviderError as e:
            logger.warning("orchestrator.custom_draft_failed", thread_id=thread_id, error_kind=e.kind)
            return None
        self._store_draft(draft)
        await self._publish(thread_id, "draft_generated", email.id)
        return draft

    async def update_draft(self, draft_id: str, content: str) -> Draft:
        draft = draft_repo.update_content(draft_id, content)
        await self._publish(draft.thread_id, "draft_updated")
        return draft

    async def discard_draft(self, draft_id: str) -> Draft:
        draft = draft_repo.discard(draft_id)
        await self._publish(draft.thread_id, "draft_discarded")
        return draft

    # -- send and completion ------------------------------------------------

    async def _send(self, thread: ConversationThread, body: str) -> None:
        if self.sender is None:
            raise SendFailed("No outbound sender configured")
        subject = reply_subject(thread.subject)
        try:
            await _maybe_await(self.sender.send(thread.sender_key, subject, body))
        except Exception as e:
            logger.warning("orchestrator.send_failed", thread_id=thread.thread_id, error=str(e))
            raise SendFailed(f"Could not send reply for {thread.thread_id}: {e}") from e

    def _user_message(self, thread: ConversationThread, body: str, draft_id: Optional[str]) -> ConversationMessage:
        return ConversationMessage(
            id=_new_id(),
            thread_id=thread.thread_id,
            author_kind=AuthorKind.USER,
            content=body,
            created_at=self._now_after(thread.last_email_date),
            metadata={"draft_id": draft_id} if draft_id else {},
        )

    async def approve_and_send(self, thread_id: str, draft_id: str, content: Optional[str] = None) -> ThreadDetail:
        """Send the chosen draft (optionally with edited text). Nothing changes if sending fails.

        The sender lock is held from the editable check until the send is recorded,
        so a draft is transmitted at most once.
        """
        thread = self._require_thread(thread_id)
        async with self.resolver.locks.hold(thread.sender_key):
            draft = draft_repo.get(draft_id)
            if draft is None or draft.thread_id != thread_id:
                raise DraftNotFound(draft_id)
            if not draft.is_editable:
                raise DraftNotEditable(draft_id, draft.status.value)
            body = content if content is not None else draft.content
            await self._send(thread, body)
            message = self._user_message(thread, body, draft_id)
            draft_repo.record_send(thread_id, message, message.created_at, draft_id=draft_id, sent_content=body)
        logger.info("orchestrator.reply_sent", thread_id=thread_id, draft_id=draft_id)
        await self._publish(thread_id, "reply_sent")
        return self.get_thread(thread_id)

    async def send_custom_reply(self, thread_id: str, content: str) -> ThreadDetail:
        thread = self._require_thread(thread_id)
        async with self.resolver.locks.hold(thread.sender_key):
            await self._send(thread, content)
            message = self._user_message(thread, content, None)
            draft_repo.record_send(thread_id, message, message.created_at)
        logger.info("orchestrator.reply_sent", thread_id=thread_id, draft_id=None)
        await self._publish(thread_id, "reply_sent")
        return self.get_thread(thread_id)

    async def complete_thread(self, thread_id: str) -> ThreadDetail:
        """Archive the thread. The sender's next email opens a new one."""
        self._require_thread(thread_id)
        thread_repo.close(thread_id, self._clock())
        logger.info("orchestrator.thread_completed", thread_id=thread_id)
        await self._publish(thread_id, "completed")
        return self.get_thread(thread_id)
