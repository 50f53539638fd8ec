"""Tests for the draft lifecycle: request, edit, discard, approve and send, custom replies."""

import asyncio
import os
import sys
import unittest
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite://"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conversation_engine.db import reset_db
from conversation_engine.db.repositories import draft_repo
from conversation_engine.errors import DraftNotEditable, DraftNotFound, SendFailed, ThreadNotFound
from conversation_engine.models.conversation import AuthorKind, DraftStatus, WorkflowState
from tests.fakes import (
    AsyncRecordingSender,
    FakeProvider,
    FutureSender,
    RecordingSender,
    build_orchestrator,
    make_email,
)


class TestDraftLifecycle(unittest.TestCase):
    def setUp(self):
        reset_db("sqlite://")
        self.provider = FakeProvider()
        self.sender = RecordingSender()
        self.orchestrator = build_orchestrator(providers=[self.provider], sender=self.sender)
        outcome = asyncio.run(self.orchestrator.handle_incoming_email(make_email(id="1", sender="Ann <a@x.com>")))
        self.thread_id = outcome.thread_id
        # later calls return reply text
        self.provider.text = "Dear Ann,\nYes, we received it.\nBest regards"

    def test_request_draft_awaits_approval(self):
        draft = asyncio.run(self.orchestrator.request_draft(self.thread_id, context_hint="affirmative"))
        self.assertIsNotNone(draft)
        self.assertEqual(draft.context_label, "affirmative")
        self.assertEqual(draft.source_email_id, "1")
        self.assertIn("Reply intent: affirmative", self.provider.prompts[-1])

        detail = self.orchestrator.get_thread(self.thread_id)
        self.assertEqual(detail.state, WorkflowState.AWAITING_APPROVAL)
        self.assertEqual([d.id for d in detail.drafts], [draft.id])
        self.assertEqual(detail.messages[-1].author_kind, AuthorKind.AI_DRAFT)
        self.assertEqual(detail.messages[-1].metadata["draft_id"], draft.id)

    def test_request_draft_failure_yields_no_draft(self):
        self.provider.fail_always = True
        draft = asyncio.run(self.orchestrator.request_draft(self.thread_id))
        self.assertIsNone(draft)
        self.assertEqual(self.orchestrator.list_drafts_for_thread(self.thread_id), [])
        self.assertEqual(self.orchestrator.get_thread(self.thread_id).state, WorkflowState.CONTEXT_GATHERED)

    def test_request_variants(self):
        drafts = asyncio.run(self.orchestrator.request_variants(self.thread_id, n=3))
        self.assertEqual([d.context_label for d in drafts], ["Variant 1", "Variant 2", "Variant 3"])
        self.assertEqual(len(self.orchestrator.list_drafts_for_thread(self.thread_id)), 3)

    def test_custom_draft_revises_base(self):
        async def run():
            base = await self.orchestrator.request_draft(self.thread_id)
            custom = await self.orchestrator.request_custom_draft(
                self.thread_id, "make it shorter", base_draft_id=base.id
            )
            return base, custom

        base, custom = asyncio.run(run())
        self.assertEqual(custom.context_label, "custom: make it shorter")
        prompt = self.provider.prompts[-1]
        self.assertIn("make it shorter", prompt)
        self.assertIn(base.content, prompt)

    def test_custom_draft_unknown_base(self):
        with self.assertRaises(DraftNotFound):
            asyncio.run(self.orchestrator.request_custom_draft(self.thread_id, "shorter", base_draft_id="nope"))

    def test_update_and_discard(self):
        async def run():
            draft = await self.orchestrator.request_draft(self.thread_id)
            edited = await self.orchestrator.update_draft(draft.id, "Edited text")
            discarded = await self.orchestrator.discard_draft(draft.id)
            return edited, discarded

        edited, discarded = asyncio.run(run())
        self.assertEqual(edited.content, "Edited text")
        self.assertEqual(discarded.status, DraftStatus.DISCARDED)
        self.assertEqual(self.orchestrator.get_thread(self.thread_id).state, WorkflowState.DRAFT_GENERATED)
        with self.assertRaises(DraftNotEditable):
            asyncio.run(self.orchestrator.update_draft(discarded.id, "again"))

    def test_approve_and_send(self):
        async def run():
            first = await self.orchestrator.request_draft(self.thread_id)
            second = await self.orchestrator.request_draft(self.thread_id)
            detail = await self.orchestrator.approve_and_send(self.thread_id, first.id, content="Final text")
            return first, second, detail

        first, second, detail = asyncio.run(run())
        self.assertEqual(self.sender.sent, [("a@x.com", "Re: Invoice", "Final text")])
        self.assertEqual(detail.state, WorkflowState.SENT)
        statuses = {d.id: d.status for d in detail.drafts}
        self.assertEqual(statuses[first.id], DraftStatus.SENT)
        self.assertEqual(statuses[second.id], DraftStatus.SUPERSEDED)
        self.assertEqual(draft_repo.get(first.id).content, "Final text")
        self.assertEqual(detail.messages[-1].author_kind, AuthorKind.USER)
        self.assertEqual(detail.messages[-1].content, "Final text")

        with self.assertRaises(DraftNotEditable):
            asyncio.run(self.orchestrator.approve_and_send(self.thread_id, first.id))

    def test_send_failure_changes_nothing(self):
        self.orchestrator.sender = RecordingSender(fail=True)
        draft = asyncio.run(self.orchestrator.request_draft(self.thread_id))
        with self.assertRaises(SendFailed):
            asyncio.run(self.orchestrator.approve_and_send(self.thread_id, draft.id))
        detail = self.orchestrator.get_thread(self.thread_id)
        self.assertEqual(detail.state, WorkflowState.AWAITING_APPROVAL)
        self.assertEqual(detail.drafts[0].status, DraftStatus.EDITABLE)
        self.assertNotIn(AuthorKind.USER, [m.author_kind for m in detail.messages])

    def test_concurrent_approvals_send_once(self):
        sender = AsyncRecordingSender()
        self.orchestrator.sender = sender

        async def run():
            draft = await self.orchestrator.request_draft(self.thread_id)
            return await asyncio.gather(
                self.orchestrator.approve_and_send(self.thread_id, draft.id),
                self.orchestrator.approve_and_send(self.thread_id, draft.id),
                return_exceptions=True,
            )

        results = asyncio.run(run())
        self.assertEqual(len(sender.sent), 1)
        self.assertEqual(sum(1 for r in results if isinstance(r, DraftNotEditable)), 1)
        user_messages = [
            m for m in self.orchestrator.get_thread(self.thread_id).messages if m.author_kind == AuthorKind.USER
        ]
        self.assertEqual(len(user_messages), 1)

    def test_concurrent_custom_replies_are_serialized(self):
        sender = AsyncRecordingSender()
        self.orchestrator.sender = sender

        async def run():
            return await asyncio.gather(
                self.orchestrator.send_custom_reply(self.thread_id, "First"),
                self.orchestrator.send_custom_reply(self.thread_id, "Second"),
            )

        asyncio.run(run())
        self.assertEqual([s[2] for s in sender.sent], ["First", "Second"])
        contents = [
            m.content for m in self.orchestrator.get_thread(self.thread_id).messages if m.author_kind == AuthorKind.USER
        ]
        self.assertEqual(sorted(contents), ["First", "Second"])

    def test_sender_returning_future_is_awaited(self):
        sender = FutureSender()
        self.orchestrator.sender = sender
        detail = asyncio.run(self.orchestrator.send_custom_reply(self.thread_id, "Via future"))
        self.assertEqual(sender.sent, [("a@x.com", "Re: Invoice", "Via future")])
        self.assertEqual(detail.state, WorkflowState.SENT)

    def test_send_custom_reply(self):
        detail = asyncio.run(self.orchestrator.send_custom_reply(self.thread_id, "Thanks, will do."))
        self.assertEqual(detail.state, WorkflowState.SENT)
        self.assertEqual(self.sender.sent[0][2], "Thanks, will do.")

    def test_new_email_after_send_reopens_workflow(self):
        async def run():
            await self.orchestrator.send_custom_reply(self.thread_id, "Received.")
            self.provider.text = "urgency: low\nsummary: Thanks."
            return await self.orchestrator.handle_incoming_email(make_email(id="2", minutes_ago=0))

        outcome = asyncio.run(run())
        self.assertEqual(outcome.thread_id, self.thread_id)
        self.assertEqual(outcome.state, WorkflowState.CONTEXT_GATHERED)

    def test_unknown_thread(self):
        with self.assertRaises(ThreadNotFound):
            asyncio.run(self.orchestrator.request_draft("missing"))
        with self.assertRaises(ThreadNotFound):
            self.orchestrator.get_thread("missing")


if __name__ == "__main__":
    unittest.main()
