"""Shared fixtures: an in-memory SQLite database per test, the store/lifecycle
pair bound to one session, and an HTTP client wired to the same database."""
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from prompt_library.config import settings
from prompt_library.database import get_db
from prompt_library.main import app
from prompt_library.models import Base
from prompt_library.schemas.prompt import PromptCreate
from prompt_library.services.lifecycle import PromptLifecycle
from prompt_library.services.prompt_store import SqlPromptStore

ADMIN_KEY = "test-admin-key"


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session):
    return SqlPromptStore(session)


@pytest.fixture
def lifecycle(store):
    return PromptLifecycle(store)


@pytest.fixture
def make_prompt(lifecycle):
    """Create a prompt through the lifecycle engine with sensible defaults."""
    async def _make(**overrides):
        data = {
            "name": "Code Reviewer",
            "purpose": "code-review",
            "content": "Review this code for bugs.",
            "tags": ["engineering"],
            "models": ["gpt-4"],
            "author": "alice",
        }
        data.update(overrides)
        return await lifecycle.create_prompt(PromptCreate(**data))

    return _make


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
async def client(session_factory, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_KEY", ADMIN_KEY)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
