"""Workflow state derivation.

The state of a thread is never stored. It is computed from the thread's
closure flag, message log and drafts every time it is needed.
"""

from datetime import datetime
from typing import Iterable, Optional

from conversation_engine.models.conversation import (
    AuthorKind,
    ConversationMessage,
    ConversationThread,
    Draft,
    DraftStatus,
    WorkflowState,
)


def _latest(times: Iterable[datetime]) -> Optional[datetime]:
    return max(times, default=None)


def derive_workflow_state(
    thread: ConversationThread,
    messages: list[ConversationMessage],
    drafts: list[Draft],
) -> WorkflowState:
    """Completed > Sent > AwaitingApproval > DraftGenerated > ContextGathered > Initial.

    - Completed: the user closed the thread.
    - Sent: a reply went out after the latest inbound email.
    - AwaitingApproval: some draft is still editable.
    - DraftGenerated: drafts exist for the latest inbound email but none is editable.
    - ContextGathered: a successful (non-degraded) analysis follows the latest inbound email.
    - Initial: only the email itself, or a degraded analysis.
    """
    if thread.closed_at is not None:
        return WorkflowState.COMPLETED

    last_inbound = _latest(
        m.created_at for m in messages if m.author_kind == AuthorKind.INBOUND_EMAIL
    )
    last_sent = _latest(m.created_at for m in messages if m.author_kind == AuthorKind.USER)
    if last_sent is not None and (last_inbound is None or last_sent >= last_inbound):
        return WorkflowState.SENT

    if any(d.status == DraftStatus.EDITABLE for d in drafts):
        return WorkflowState.AWAITING_APPROVAL

    if any(last_inbound is None or d.generated_at >= last_inbound for d in drafts):
        return WorkflowState.DRAFT_GENERATED

    for m in messages:
        if m.author_kind != AuthorKind.AI_SUGGESTION or m.metadata.get("degraded"):
            continue
        if last_inbound is None or m.created_at >= last_inbound:
            return WorkflowState.CONTEXT_GATHERED

    return WorkflowState.INITIAL
