"""Tests for workflow state derivation and the thread event bus."""

import asyncio
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conversation_engine.models.conversation import (
    AuthorKind,
    ConversationMessage,
    ConversationThread,
    Draft,
    DraftStatus,
    ThreadUpdated,
    WorkflowState,
)
from conversation_engine.workflow.events import ThreadEventBus
from conversation_engine.workflow.state import derive_workflow_state

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _thread(closed=False) -> ConversationThread:
    return ConversationThread(
        thread_id="a_x_com_invoice",
        sender="a@x.com",
        sender_key="a@x.com",
        subject="Invoice",
        created_at=T0,
        last_email_date=T0,
        total_emails=1,
        closed_at=T0 + timedelta(hours=1) if closed else None,
    )


def _msg(kind: AuthorKind, minutes: int, **metadata) -> ConversationMessage:
    return ConversationMessage(
        id=f"{kind.value}-{minutes}",
        thread_id="a_x_com_invoice",
        author_kind=kind,
        content="",
        created_at=T0 + timedelta(minutes=minutes),
        metadata=metadata,
    )


def _draft(minutes: int, status=DraftStatus.EDITABLE) -> Draft:
    return Draft(
        id=f"d-{minutes}",
        thread_id="a_x_com_invoice",
        content="Sure.",
        generated_at=T0 + timedelta(minutes=minutes),
        status=status,
    )


class TestDeriveWorkflowState(unittest.TestCase):
    def test_initial(self):
        self.assertEqual(derive_workflow_state(_thread(), [_msg(AuthorKind.INBOUND_EMAIL, 0)], []), WorkflowState.INITIAL)

    def test_degraded_analysis_stays_initial(self):
        messages = [_msg(AuthorKind.INBOUND_EMAIL, 0), _msg(AuthorKind.AI_SUGGESTION, 1, degraded=True)]
        self.assertEqual(derive_workflow_state(_thread(), messages, []), WorkflowState.INITIAL)

    def test_context_gathered_with_zero_drafts(self):
        messages = [_msg(AuthorKind.INBOUND_EMAIL, 0), _msg(AuthorKind.AI_SUGGESTION, 1, degraded=False)]
        self.assertEqual(derive_workflow_state(_thread(), messages, []), WorkflowState.CONTEXT_GATHERED)

    def test_editable_draft_awaits_approval(self):
        messages = [_msg(AuthorKind.INBOUND_EMAIL, 0), _msg(AuthorKind.AI_SUGGESTION, 1)]
        state = derive_workflow_state(_thread(), messages, [_draft(2)])
        self.assertEqual(state, WorkflowState.AWAITING_APPROVAL)

    def test_discarded_drafts_are_draft_generated(self):
        messages = [_msg(AuthorKind.INBOUND_EMAIL, 0)]
        state = derive_workflow_state(_thread(), messages, [_draft(2, DraftStatus.DISCARDED)])
        self.assertEqual(state, WorkflowState.DRAFT_GENERATED)

    def test_sent(self):
        messages = [_msg(AuthorKind.INBOUND_EMAIL, 0), _msg(AuthorKind.USER, 5)]
        state = derive_workflow_state(_thread(), messages, [_draft(2, DraftStatus.SENT)])
        self.assertEqual(state, WorkflowState.SENT)

    def test_new_inbound_after_send(self):
        messages = [
            _msg(AuthorKind.INBOUND_EMAIL, 0),
            _msg(AuthorKind.USER, 5),
            _msg(AuthorKind.INBOUND_EMAIL, 10),
        ]
        state = derive_workflow_state(_thread(), messages, [_draft(2, DraftStatus.SENT)])
        self.assertEqual(state, WorkflowState.INITIAL)

    def test_completed_wins(self):
        messages = [_msg(AuthorKind.INBOUND_EMAIL, 0)]
        self.assertEqual(derive_workflow_state(_thread(closed=True), messages, [_draft(1)]), WorkflowState.COMPLETED)


class TestThreadEventBus(unittest.TestCase):
    def test_sync_and_async_subscribers(self):
        bus = ThreadEventBus()
        seen = []

        async def async_cb(event):
            seen.append(("async", event.thread_id))

        bus.subscribe(lambda e: seen.append(("sync", e.thread_id)))
        bus.subscribe(async_cb)
        asyncio.run(bus.publish(ThreadUpdated(thread_id="t1", state=WorkflowState.INITIAL)))
        self.assertEqual(seen, [("sync", "t1"), ("async", "t1")])

    def test_failing_subscriber_is_isolated(self):
        bus = ThreadEventBus()
        seen = []

        def boom(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(boom)
        unsubscribe = bus.subscribe(seen.append)
        asyncio.run(bus.publish(ThreadUpdated(thread_id="t1", state=WorkflowState.SENT)))
        self.assertEqual(len(seen), 1)
        unsubscribe()
        asyncio.run(bus.publish(ThreadUpdated(thread_id="t1", state=WorkflowState.SENT)))
        self.assertEqual(len(seen), 1)


if __name__ == "__main__":
    unittest.main()
