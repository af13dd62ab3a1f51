"""FastAPI dependencies wiring the store and lifecycle engine to a request's session."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.database import get_db
from prompt_library.services.lifecycle import PromptLifecycle
from prompt_library.services.prompt_store import SqlPromptStore


def get_store(db: AsyncSession = Depends(get_db)) -> SqlPromptStore:
    return SqlPromptStore(db)


def get_lifecycle(store: SqlPromptStore = Depends(get_store)) -> PromptLifecycle:
    return PromptLifecycle(store)
