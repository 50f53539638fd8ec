"""Tests for the conversation orchestrator inbound path."""

import asyncio
import os
import sys
import unittest
from pathlib import Path

# Set in-memory DB before any db import
os.environ["DATABASE_URL"] = "sqlite://"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conversation_engine.db import reset_db
from conversation_engine.db.repositories import message_repo, thread_repo
from conversation_engine.errors import NoProviderConfigured
from conversation_engine.models.conversation import AuthorKind, WorkflowState
from conversation_engine.models.email import EmailDirection
from conversation_engine.workflow.events import ThreadEventBus
from tests.fakes import FakeProvider, build_orchestrator, make_email


def _inbound(thread_id):
    return [m for m in message_repo.list_for_thread(thread_id) if m.author_kind == AuthorKind.INBOUND_EMAIL]


class TestHandleIncomingEmail(unittest.TestCase):
    def setUp(self):
        reset_db("sqlite://")

    def test_new_thread_with_analysis(self):
        orchestrator = build_orchestrator()
        outcome = asyncio.run(orchestrator.handle_incoming_email(make_email()))
        self.assertTrue(outcome.processed)
        self.assertTrue(outcome.is_new_thread)
        self.assertFalse(outcome.degraded)
        self.assertEqual(outcome.state, WorkflowState.CONTEXT_GATHERED)

        detail = orchestrator.get_thread(outcome.thread_id)
        self.assertEqual(detail.thread.total_emails, 1)
        kinds = [m.author_kind for m in detail.messages]
        self.assertEqual(kinds, [AuthorKind.INBOUND_EMAIL, AuthorKind.AI_SUGGESTION])
        suggestion = detail.messages[1]
        self.assertIn("Urgency: high", suggestion.content)
        self.assertEqual(suggestion.metadata["suggested_response"], "yes")

    def test_duplicate_delivery_is_idempotent(self):
        orchestrator = build_orchestrator()
        email = make_email(id="dup-1")

        async def run():
            first = await orchestrator.handle_incoming_email(email)
            second = await orchestrator.handle_incoming_email(email)
            return first, second

        first, second = asyncio.run(run())
        self.assertTrue(first.processed)
        self.assertFalse(second.processed)
        self.assertEqual(second.skip_reason, "duplicate")
        inbound = _inbound(first.thread_id)
        self.assertEqual(len(inbound), 1)
        self.assertEqual(inbound[0].source_email_id, "dup-1")
        self.assertEqual(thread_repo.get(first.thread_id).total_emails, 1)

    def test_concurrent_duplicates_store_one_message(self):
        orchestrator = build_orchestrator()
        email = make_email(id="dup-2")

        async def run():
            return await asyncio.gather(*(orchestrator.handle_incoming_email(email) for _ in range(4)))

        outcomes = asyncio.run(run())
        self.assertEqual(sum(1 for o in outcomes if o.processed), 1)
        thread_id = next(o.thread_id for o in outcomes if o.processed)
        self.assertEqual(len(_inbound(thread_id)), 1)

    def test_stale_email_is_skipped_without_mutation(self):
        orchestrator = build_orchestrator()
        outcome = asyncio.run(orchestrator.handle_incoming_email(make_email(minutes_ago=61)))
        self.assertFalse(outcome.processed)
        self.assertEqual(outcome.skip_reason, "stale")
        self.assertEqual(thread_repo.list_threads(include_closed=True), [])

    def test_freshness_window_is_configurable(self):
        orchestrator = build_orchestrator(freshness_window_seconds=24 * 3600)
        outcome = asyncio.run(orchestrator.handle_incoming_email(make_email(minutes_ago=120)))
        self.assertTrue(outcome.processed)

    def test_sent_email_is_skipped(self):
        orchestrator = build_orchestrator()
        email = make_email(direction=EmailDirection.SENT)
        outcome = asyncio.run(orchestrator.handle_incoming_email(email))
        self.assertEqual(outcome.skip_reason, "not_received")
        self.assertEqual(thread_repo.list_threads(include_closed=True), [])

    def test_provider_outage_degrades(self):
        provider = FakeProvider(fail_always=True)
        orchestrator = build_orchestrator(providers=[provider])
        outcome = asyncio.run(orchestrator.handle_incoming_email(make_email()))
        self.assertTrue(outcome.processed)
        self.assertTrue(outcome.degraded)
        self.assertEqual(outcome.state, WorkflowState.INITIAL)

        messages = message_repo.list_for_thread(outcome.thread_id)
        suggestion = messages[-1]
        self.assertEqual(suggestion.author_kind, AuthorKind.AI_SUGGESTION)
        self.assertIn("Analysis unavailable", suggestion.content)
        self.assertTrue(suggestion.metadata["degraded"])
        self.assertEqual(suggestion.metadata["suggested_response"], "custom")
        self.assertEqual(suggestion.metadata["error_kind"], "provider_unavailable")

    def test_no_provider_configured_is_surfaced_after_recording(self):
        orchestrator = build_orchestrator(providers=[])
        events = []
        orchestrator.events.subscribe(events.append)
        with self.assertRaises(NoProviderConfigured):
            asyncio.run(orchestrator.handle_incoming_email(make_email(id="np-1")))
        # the email itself is recorded and will not be processed twice
        self.assertIsNotNone(message_repo.find_by_source_email_id("np-1"))
        self.assertEqual(len(events), 1)

    def test_invoice_scenario(self):
        orchestrator = build_orchestrator()
        e1 = make_email(id="1", sender="a@x.com", subject="Invoice", minutes_ago=10)
        e2 = make_email(id="2", sender="a@x.com", subject="Invoice", minutes_ago=9)

        async def run():
            o1 = await orchestrator.handle_incoming_email(e1)
            again = await orchestrator.handle_incoming_email(e1)
            t_after_dup = thread_repo.get(o1.thread_id)
            o2 = await orchestrator.handle_incoming_email(e2)
            return o1, again, t_after_dup, o2

        o1, again, t_after_dup, o2 = asyncio.run(run())
        self.assertEqual(o1.thread_id, "a_x_com_invoice")
        self.assertEqual(o1.state, WorkflowState.CONTEXT_GATHERED)
        self.assertFalse(again.processed)
        self.assertEqual(t_after_dup.total_emails, 1)

        self.assertEqual(o2.thread_id, o1.thread_id)
        self.assertFalse(o2.is_new_thread)
        thread = thread_repo.get(o1.thread_id)
        self.assertEqual(thread.total_emails, 2)
        self.assertEqual(thread.last_email_date, e2.date)
        self.assertEqual(len(thread_repo.list_threads(include_closed=True)), 1)

    def test_same_sender_different_subject_shares_thread(self):
        orchestrator = build_orchestrator()

        async def run():
            a = await orchestrator.handle_incoming_email(make_email(id="1", subject="Invoice"))
            b = await orchestrator.handle_incoming_email(
                make_email(id="2", sender="Ann <A@X.com>", subject="Lunch?")
            )
            return a, b

        a, b = asyncio.run(run())
        self.assertEqual(a.thread_id, b.thread_id)

    def test_concurrent_emails_from_one_sender_create_one_thread(self):
        orchestrator = build_orchestrator()
        emails = [make_email(id=f"c-{i}", subject=f"Topic {i}") for i in range(5)]

        async def run():
            return await asyncio.gather(*(orchestrator.handle_incoming_email(e) for e in emails))

        outcomes = asyncio.run(run())
        self.assertEqual(len({o.thread_id for o in outcomes}), 1)
        self.assertEqual(sum(1 for o in outcomes if o.is_new_thread), 1)
        threads = thread_repo.list_threads(include_closed=True)
        self.assertEqual(len(threads), 1)
        self.assertEqual(threads[0].total_emails, 5)

    def test_event_emitted_with_state(self):
        events = ThreadEventBus()
        received = []

        async def on_update(event):
            received.append(event)

        events.subscribe(on_update)
        orchestrator = build_orchestrator(events=events)
        outcome = asyncio.run(orchestrator.handle_incoming_email(make_email(id="ev-1")))
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].thread_id, outcome.thread_id)
        self.assertEqual(received[0].email_id, "ev-1")
        self.assertEqual(received[0].state, WorkflowState.CONTEXT_GATHERED)

    def test_completed_thread_is_archived(self):
        orchestrator = build_orchestrator()

        async def run():
            first = await orchestrator.handle_incoming_email(make_email(id="1"))
            detail = await orchestrator.complete_thread(first.thread_id)
            second = await orchestrator.handle_incoming_email(make_email(id="2"))
            return first, detail, second

        first, detail, second = asyncio.run(run())
        self.assertEqual(detail.state, WorkflowState.COMPLETED)
        self.assertTrue(second.is_new_thread)
        self.assertEqual(second.thread_id, f"{first.thread_id}_2")
        self.assertEqual([d.thread.thread_id for d in orchestrator.list_threads()], [second.thread_id])
        self.assertEqual(len(orchestrator.list_threads(include_closed=True)), 2)


if __name__ == "__main__":
    unittest.main()
