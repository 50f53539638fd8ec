"""Email analysis service: analysis, categorization, urgency, summaries and reply drafts."""

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from conversation_engine.ai.gateway import AIGateway
from conversation_engine.ai.parser import KeywordResponseParser, ResponseParser, parse_category, parse_urgency
from conversation_engine.ai.prompts import PromptTemplateEngine
from conversation_engine.errors import NoProviderConfigured, ProviderError
from conversation_engine.models.analysis import AnalysisResult, EmailCategory, Urgency
from conversation_engine.models.conversation import Draft
from conversation_engine.models.email import Email
from conversation_engine.utils.logger import get_logger, log_ai_call

logger = get_logger("conversation_engine.ai.analysis")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def email_placeholders(email: Email) -> dict[str, str]:
    return {
        "sender": email.from_,
        "subject": email.subject,
        "date": email.date.strftime("%Y-%m-%d %H:%M UTC"),
        "body": email.body,
    }


class EmailAnalysisService:
    """Wraps each AI operation as: render template -> gateway -> (parse).

    ``analyze``, ``summarize`` and the draft generators let ``ProviderError`` and
    ``NoProviderConfigured`` propagate so callers can degrade. ``categorize`` and
    ``assess_urgency`` always return a value. ``generate_variants`` returns the
    drafts that succeeded.
    """

    def __init__(
        self,
        gateway: AIGateway,
        templates: PromptTemplateEngine,
        parser: ResponseParser | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.gateway = gateway
        self.templates = templates
        self.parser = parser or KeywordResponseParser()
        self._clock = clock
        # drafts generated during this service's lifetime, oldest first
        self.generated_drafts: list[Draft] = []

    async def _ask(self, operation: str, email: Email, template: str, **extra: str) -> str:
        prompt = self.templates.render(template, **email_placeholders(email), **extra)
        try:
            text = await self.gateway.generate(prompt)
        except (ProviderError, NoProviderConfigured) as e:
            log_ai_call(operation, email.id, "failed", error_kind=e.kind, error=str(e))
            raise
        log_ai_call(operation, email.id, "ok", response_chars=len(text))
        return text

    async def analyze(self, email: Email) -> AnalysisResult:
        """Tone, sentiment, urgency, category, complexity and a one-line summary."""
        text = await self._ask("analyze", email, "analysis")
        return self.parser.parse(text)

    async def summarize(self, email: Email) -> str:
        return (await self._ask("summarize", email, "summary")).strip()

    async def categorize(self, email: Email) -> EmailCategory:
        try:
            return parse_category(await self._ask("categorize", email, "categorization"))
        except (ProviderError, NoProviderConfigured):
            return EmailCategory.OTHER

    async def assess_urgency(self, email: Email) -> Urgency:
        """Urgency for display; any failure means normal."""
        try:
            return parse_urgency(await self._ask("assess_urgency", email, "urgency"))
        except (ProviderError, NoProviderConfigured):
            return Urgency.NORMAL

    def _make_draft(self, email: Email, content: str, context_label: str, thread_id: Optional[str]) -> Draft:
        draft = Draft(
            id=uuid.uuid4().hex,
            thread_id=thread_id,
            content=content.strip(),
            generated_at=self._clock(),
            context_label=context_label,
            source_email_id=email.id,
        )
        self.generated_drafts.append(draft)
        return draft

    async def generate_draft(self, email: Email, context_hint: str = "", thread_id: Optional[str] = None) -> Draft:
        context = f"Reply intent: {context_hint}" if context_hint else ""
        text = await self._ask("generate_draft", email, "draft", context=context)
        return self._make_draft(email, text, context_hint, thread_id)

    async def generate_variants(self, email: Email, n: int = 3, thread_id: Optional[str] = None) -> list[Draft]:
        """Issue ``n`` independent draft requests labelled "Variant 1".."Variant n".

        Failed variants are dropped. NoProviderConfigured still propagates.
        """
        drafts: list[Draft] = []
        for i in range(1, n + 1):
            label = f"Variant {i}"
            try:
                drafts.append(await self.generate_draft(email, context_hint=label, thread_id=thread_id))
            except ProviderError as e:
                logger.warning(
                    "analysis.variant_failed",
                    email_id=email.id,
                    variant=i,
                    error_kind=e.kind,
                )
        logger.info("analysis.variants_generated", email_id=email.id, requested=n, generated=len(drafts))
        return drafts

    async def generate_custom_draft(
        self,
        email: Email,
        instructions: str,
        base_draft: Optional[Draft] = None,
        thread_id: Optional[str] = None,
    ) -> Draft:
        """Draft following the user's instructions, optionally revising an earlier draft."""
        base = f"Revise this earlier draft:\n{base_draft.content}" if base_draft is not None else ""
        text = await self._ask(
            "generate_custom_draft",
            email,
            "custom_draft",
            instructions=instructions,
            base_draft=base,
        )
        return self._make_draft(email, text, f"custom: {instructions}", thread_id)
