"""Prompts API routes."""
from typing import Optional, Union
from uuid import UUID
from fastapi import APIRouter, Body, Depends, Query, Response

from prompt_library.dependencies import get_lifecycle, get_store
from prompt_library.models import Prompt, PromptVersion
from prompt_library.schemas.common import DeleteResponse
from prompt_library.schemas.prompt import (
    PromptCreate,
    PromptDetailResponse,
    PromptListResponse,
    PromptResponse,
    PromptSearch,
    PromptUpdate,
    StatusChange,
)
from prompt_library.schemas.version import VersionCreate, VersionResponse
from prompt_library.security import require_admin_key
from prompt_library.services.lifecycle import PromptLifecycle
from prompt_library.services.prompt_store import SqlPromptStore
from prompt_library.validation import validate_request

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


@router.get("", response_model=PromptListResponse)
async def list_prompts(
    search: Optional[str] = Query(None),
    tags: Optional[list[str]] = Query(None),
    purpose: Optional[str] = Query(None),
    status: Optional[list[str]] = Query(None),
    models: Optional[list[str]] = Query(None),
    sort: str = Query("updated_at"),
    order: str = Query("desc"),
    limit: int = Query(50),
    offset: int = Query(0),
    store: SqlPromptStore = Depends(get_store),
):
    """Search prompts. Filters combine with AND; list filters match on overlap."""
    raw = {
        "search": search,
        "tags": tags,
        "purpose": purpose,
        "status": status,
        "models": models,
        "sort": sort,
        "order": order,
        "limit": limit,
        "offset": offset,
    }
    params = validate_request(PromptSearch, {k: v for k, v in raw.items() if v is not None})
    return await store.search_prompts(params)


@router.post("", response_model=PromptDetailResponse, status_code=201)
async def create_prompt(
    body: PromptCreate,
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    """Create a prompt in draft with its initial 1.0.0 version. Public."""
    created = await lifecycle.create_prompt(body)
    return _to_detail(created.prompt, created.current_version, created.version_count)


@router.get("/{prompt_id}", response_model=PromptDetailResponse)
async def get_prompt(
    prompt_id: UUID,
    store: SqlPromptStore = Depends(get_store),
):
    """Get a prompt with its current version and version count."""
    prompt, current = await store.get_prompt_with_current_version(prompt_id)
    version_count = await store.count_versions(prompt_id)
    return _to_detail(prompt, current, version_count)


@router.put(
    "/{prompt_id}",
    response_model=Union[VersionResponse, PromptResponse],
    dependencies=[Depends(require_admin_key)],
)
async def update_prompt(
    prompt_id: UUID,
    response: Response,
    body: dict = Body(...),
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    """Update metadata, or publish a new version when the body carries content/bump_type."""
    if "content" in body or "bump_type" in body:
        data = validate_request(VersionCreate, body)
        version = await lifecycle.create_version(prompt_id, data)
        response.status_code = 201
        return VersionResponse.model_validate(version)

    data = validate_request(PromptUpdate, body)
    prompt = await lifecycle.update_metadata(prompt_id, data)
    return PromptResponse.model_validate(prompt)


@router.delete(
    "/{prompt_id}",
    response_model=DeleteResponse,
    dependencies=[Depends(require_admin_key)],
)
async def delete_prompt(
    prompt_id: UUID,
    hard: bool = Query(True),
    author: Optional[str] = Query(None),
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    """Delete a prompt. hard=false archives it instead and keeps its history."""
    await lifecycle.delete_prompt(prompt_id, hard=hard, author=author)
    return {"deleted": True, "id": str(prompt_id), "hard": hard}


@router.post(
    "/{prompt_id}/status",
    response_model=PromptResponse,
    dependencies=[Depends(require_admin_key)],
)
async def change_status(
    prompt_id: UUID,
    body: StatusChange,
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    """Move a prompt to another status. A comment is required."""
    return await lifecycle.change_status(prompt_id, body)


def _to_detail(prompt: Prompt, current: Optional[PromptVersion], version_count: int) -> PromptDetailResponse:
    detail = PromptDetailResponse.model_validate(prompt)
    detail.current_version = VersionResponse.model_validate(current) if current else None
    detail.version_count = version_count
    return detail
