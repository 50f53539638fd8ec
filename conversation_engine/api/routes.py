"""Thread API: ingest emails, query threads, drive drafts and replies."""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from conversation_engine.models.analysis import ThreadSummary
from conversation_engine.models.conversation import Draft, IngestOutcome, ThreadDetail
from conversation_engine.models.email import Email
from conversation_engine.orchestrator import ConversationOrchestrator

router = APIRouter(tags=["threads"])


class DraftRequest(BaseModel):
    context_hint: str = ""


class VariantsRequest(BaseModel):
    n: Optional[int] = Field(default=None, ge=1, le=10)


class CustomDraftRequest(BaseModel):
    instructions: str
    base_draft_id: Optional[str] = None


class DraftUpdate(BaseModel):
    content: str


class SendRequest(BaseModel):
    """Send an existing draft (``draft_id``, optional edited ``content``) or a custom reply (``content`` only)."""

    draft_id: Optional[str] = None
    content: Optional[str] = None


def _orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


@router.post("/emails")
async def ingest_email(email: Email, request: Request) -> IngestOutcome:
    """Hand one inbound email to the engine. Skipped emails return 200 with a reason."""
    return await _orchestrator(request).handle_incoming_email(email)


@router.get("/threads")
async def list_threads(
    request: Request,
    include_closed: bool = Query(False, description="Include completed threads"),
) -> dict[str, Any]:
    details = _orchestrator(request).list_threads(include_closed=include_closed)
    return {
        "threads": [
            {**d.thread.model_dump(mode="json"), "state": d.state.value, "draft_count": len(d.drafts)}
            for d in details
        ]
    }


@router.get("/threads/{thread_id}")
async def get_thread(thread_id: str, request: Request) -> ThreadDetail:
    return _orchestrator(request).get_thread(thread_id)


@router.get("/threads/{thread_id}/drafts")
async def list_drafts(thread_id: str, request: Request) -> dict[str, list[Draft]]:
    return {"drafts": _orchestrator(request).list_drafts_for_thread(thread_id)}


@router.get("/threads/{thread_id}/analytics")
async def thread_analytics(thread_id: str, request: Request) -> ThreadSummary:
    return _orchestrator(request).analyze_thread(thread_id)


@router.post("/threads/{thread_id}/drafts")
async def request_draft(thread_id: str, request: Request, body: DraftRequest | None = None) -> dict[str, list[Draft]]:
    """Generate one draft. An AI failure returns an empty list."""
    hint = body.context_hint if body is not None else ""
    draft = await _orchestrator(request).request_draft(thread_id, context_hint=hint)
    return {"drafts": [draft] if draft is not None else []}


@router.post("/threads/{thread_id}/drafts/variants")
async def request_variants(
    thread_id: str, request: Request, body: VariantsRequest | None = None
) -> dict[str, list[Draft]]:
    n = body.n if body is not None else None
    return {"drafts": await _orchestrator(request).request_variants(thread_id, n=n)}


@router.post("/threads/{thread_id}/drafts/custom")
async def request_custom_draft(thread_id: str, body: CustomDraftRequest, request: Request) -> dict[str, list[Draft]]:
    draft = await _orchestrator(request).request_custom_draft(
        thread_id, body.instructions, base_draft_id=body.base_draft_id
    )
    return {"drafts": [draft] if draft is not None else []}


@router.put("/drafts/{draft_id}")
async def update_draft(draft_id: str, body: DraftUpdate, request: Request) -> Draft:
    return await _orchestrator(request).update_draft(draft_id, body.content)


@router.delete("/drafts/{draft_id}")
async def discard_draft(draft_id: str, request: Request) -> Draft:
    return await _orchestrator(request).discard_draft(draft_id)


@router.post("/threads/{thread_id}/send")
async def send_reply(thread_id: str, body: SendRequest, request: Request) -> ThreadDetail:
    orchestrator = _orchestrator(request)
    if body.draft_id is not None:
        return await orchestrator.approve_and_send(thread_id, body.draft_id, content=body.content)
    if not (body.content or "").strip():
        raise HTTPException(status_code=400, detail="Provide draft_id or a non-empty content")
    return await orchestrator.send_custom_reply(thread_id, body.content)


@router.post("/threads/{thread_id}/complete")
async def complete_thread(thread_id: str, request: Request) -> ThreadDetail:
    return await _orchestrator(request).complete_thread(thread_id)
