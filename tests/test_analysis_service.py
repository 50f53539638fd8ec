"""Tests for the email analysis service."""

import asyncio
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conversation_engine.ai.analysis import EmailAnalysisService
from conversation_engine.ai.gateway import AIGateway
from conversation_engine.errors import NoProviderConfigured, ProviderBadResponse, ProviderUnavailable
from conversation_engine.models.analysis import EmailCategory, Urgency
from tests.fakes import FakeProvider, load_templates, make_email


def _service(provider) -> EmailAnalysisService:
    providers = [provider] if provider is not None else []
    return EmailAnalysisService(AIGateway(providers, cooldown_seconds=0), load_templates())


class TestEmailAnalysisService(unittest.TestCase):
    def test_analyze_parses_response(self):
        provider = FakeProvider()
        result = asyncio.run(_service(provider).analyze(make_email(subject="Invoice 42")))
        self.assertEqual(result.urgency, Urgency.HIGH)
        self.assertEqual(result.category, EmailCategory.WORK)
        self.assertEqual(result.summary, "Asks to confirm the invoice.")
        self.assertIn("Subject: Invoice 42", provider.prompts[0])

    def test_analyze_propagates_provider_errors(self):
        with self.assertRaises(ProviderUnavailable):
            asyncio.run(_service(FakeProvider(fail_always=True)).analyze(make_email()))

    def test_summarize(self):
        summary = asyncio.run(_service(FakeProvider(text="  Short summary. \n")).summarize(make_email()))
        self.assertEqual(summary, "Short summary.")

    def test_urgency_defaults_to_normal_on_failure(self):
        self.assertEqual(asyncio.run(_service(FakeProvider(fail_always=True)).assess_urgency(make_email())), Urgency.NORMAL)
        self.assertEqual(asyncio.run(_service(None).assess_urgency(make_email())), Urgency.NORMAL)
        self.assertEqual(asyncio.run(_service(FakeProvider(text="High")).assess_urgency(make_email())), Urgency.HIGH)

    def test_categorize(self):
        self.assertEqual(asyncio.run(_service(FakeProvider(text="commercial")).categorize(make_email())), EmailCategory.COMMERCIAL)
        self.assertEqual(asyncio.run(_service(FakeProvider(fail_always=True)).categorize(make_email())), EmailCategory.OTHER)

    def test_generate_draft(self):
        provider = FakeProvider(text="  Thanks, received.  ")
        service = _service(provider)
        draft = asyncio.run(service.generate_draft(make_email(id="e1"), context_hint="affirmative", thread_id="t1"))
        self.assertEqual(draft.content, "Thanks, received.")
        self.assertEqual(draft.context_label, "affirmative")
        self.assertEqual(draft.thread_id, "t1")
        self.assertEqual(draft.source_email_id, "e1")
        self.assertTrue(draft.is_editable)
        self.assertIn("Reply intent: affirmative", provider.prompts[0])
        self.assertEqual(service.generated_drafts, [draft])

    def test_variants_with_second_call_failing(self):
        provider = FakeProvider(text="Reply", fail_on={2})
        service = _service(provider)
        drafts = asyncio.run(service.generate_variants(make_email(), 3))
        self.assertEqual(len(drafts), 2)
        self.assertEqual([d.context_label for d in drafts], ["Variant 1", "Variant 3"])
        self.assertEqual(provider.calls, 3)

    def test_variants_all_failing_is_empty(self):
        provider = FakeProvider(error=ProviderBadResponse("empty"), fail_always=True)
        self.assertEqual(asyncio.run(_service(provider).generate_variants(make_email(), 2)), [])

    def test_variants_without_provider_raise(self):
        with self.assertRaises(NoProviderConfigured):
            asyncio.run(_service(None).generate_variants(make_email(), 2))

    def test_custom_draft(self):
        provider = FakeProvider(text="Short reply")
        service = _service(provider)
        draft = asyncio.run(service.generate_custom_draft(make_email(), "decline politely"))
        self.assertEqual(draft.context_label, "custom: decline politely")
        self.assertIn("decline politely", provider.prompts[0])
        self.assertNotIn("Revise this earlier draft", provider.prompts[0])


if __name__ == "__main__":
    unittest.main()
