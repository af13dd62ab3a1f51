"""Tag and purpose catalog routes, used for filter dropdowns and autocomplete."""
from fastapi import APIRouter, Depends

from prompt_library.dependencies import get_store
from prompt_library.schemas.prompt import CatalogEntry
from prompt_library.services.prompt_store import SqlPromptStore

router = APIRouter(prefix="/api/tags", tags=["tags"])
purposes_router = APIRouter(prefix="/api/purposes", tags=["purposes"])


@router.get("", response_model=list[CatalogEntry])
async def get_tags(store: SqlPromptStore = Depends(get_store)):
    """Distinct tags with usage counts, most used first."""
    return await store.list_tags()


@purposes_router.get("", response_model=list[CatalogEntry])
async def get_purposes(store: SqlPromptStore = Depends(get_store)):
    """Distinct purposes with usage counts, most used first."""
    return await store.list_purposes()
