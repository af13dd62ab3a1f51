"""Prompt versions API - history, point lookups and rollback."""
from uuid import UUID
from fastapi import APIRouter, Depends

from prompt_library.dependencies import get_lifecycle, get_store
from prompt_library.schemas.version import RollbackRequest, VersionResponse
from prompt_library.security import require_admin_key
from prompt_library.services.lifecycle import PromptLifecycle
from prompt_library.services.prompt_store import SqlPromptStore

router = APIRouter(prefix="/api/prompts/{prompt_id}/versions", tags=["versions"])


@router.get("", response_model=list[VersionResponse])
async def list_versions(
    prompt_id: UUID,
    store: SqlPromptStore = Depends(get_store),
):
    """All versions of a prompt, newest first."""
    return await store.list_versions(prompt_id)


@router.get("/{version}", response_model=VersionResponse)
async def get_version(
    prompt_id: UUID,
    version: str,
    store: SqlPromptStore = Depends(get_store),
):
    """Get one version by its number, e.g. 1.2.0."""
    await store.get_prompt(prompt_id)
    return await store.get_version_by_number(prompt_id, version)


@router.post(
    "/{version}/rollback",
    response_model=VersionResponse,
    status_code=201,
    dependencies=[Depends(require_admin_key)],
)
async def rollback_version(
    prompt_id: UUID,
    version: str,
    body: RollbackRequest,
    lifecycle: PromptLifecycle = Depends(get_lifecycle),
):
    """Publish a copy of an older version as the new current version."""
    return await lifecycle.rollback(prompt_id, version, body)
