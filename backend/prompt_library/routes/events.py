"""Prompt audit log API."""
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from prompt_library.dependencies import get_store
from prompt_library.schemas.event import EventListResponse
from prompt_library.services.prompt_store import SqlPromptStore

router = APIRouter(prefix="/api/prompts/{prompt_id}/events", tags=["events"])


@router.get("", response_model=EventListResponse)
async def list_events(
    prompt_id: UUID,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    store: SqlPromptStore = Depends(get_store),
):
    """Audit events for a prompt, newest first."""
    events, total = await store.list_events(prompt_id, limit=limit, offset=offset)
    return {
        "events": events,
        "total": total,
        "has_more": offset + len(events) < total,
    }
