import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from prompt_library.errors import ConflictError, NotFoundError
from prompt_library.models import Base, Prompt, PromptEvent, PromptTag, PromptVersion
from prompt_library.schemas.prompt import PromptCreate, PromptUpdate, StatusChange
from prompt_library.schemas.version import RollbackRequest, VersionCreate
from prompt_library.services.lifecycle import PromptLifecycle
from prompt_library.services.prompt_store import SqlPromptStore


async def count(session, column, *where):
    return (await session.execute(select(func.count(column)).where(*where))).scalar()


async def current_version_id(session, prompt_id):
    return (await session.execute(
        select(Prompt.current_version_id).where(Prompt.id == prompt_id)
    )).scalar_one()


def new_version(bump_type="minor", **overrides):
    data = {
        "content": f"Updated content ({bump_type})",
        "change_description": f"A {bump_type} change",
        "bump_type": bump_type,
        "author": "bob",
    }
    data.update(overrides)
    return VersionCreate(**data)


# ── Creation ─────────────────────────────────────────────────────────


async def test_create_starts_draft_at_1_0_0(make_prompt, store):
    created = await make_prompt(description="Reviews pull requests", system_prompt="Be strict.")

    prompt, version = created.prompt, created.current_version
    assert prompt.status == "draft"
    assert prompt.tags == ["engineering"]
    assert version.version_number == "1.0.0"
    assert version.previous_version_id is None
    assert version.change_description == "Initial version"
    assert version.system_prompt == "Be strict."
    assert prompt.current_version_id == version.id
    assert created.version_count == 1

    events, total = await store.list_events(prompt.id)
    assert total == 1
    assert events[0].event_type == "created"
    assert events[0].event_metadata == {"initial_version": "1.0.0"}
    assert events[0].created_by == "alice"


async def test_create_is_atomic(make_prompt, store, session, monkeypatch):
    monkeypatch.setattr(store, "append_event", AsyncMock(side_effect=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        await make_prompt()

    assert await count(session, Prompt.id) == 0
    assert await count(session, PromptVersion.id) == 0
    assert await count(session, PromptTag.id) == 0


async def test_create_stores_search_text(make_prompt):
    created = await make_prompt(description="Finds BUGS", tags=["Python", "review"])
    text = created.prompt.search_text
    assert "code reviewer" in text
    assert "finds bugs" in text
    assert "python review" in text
    assert "review this code" in text


# ── Versions ─────────────────────────────────────────────────────────


async def test_version_history_moves_forward(make_prompt, lifecycle, store):
    created = await make_prompt()
    pid = created.prompt.id

    v110 = await lifecycle.create_version(pid, new_version("minor"))
    v111 = await lifecycle.create_version(pid, new_version("patch"))
    v200 = await lifecycle.create_version(pid, new_version("major"))

    assert [v.version_number for v in (v110, v111, v200)] == ["1.1.0", "1.1.1", "2.0.0"]
    assert v110.previous_version_id == created.current_version.id
    assert v111.previous_version_id == v110.id
    assert v200.previous_version_id == v111.id

    prompt, current = await store.get_prompt_with_current_version(pid)
    assert current.id == v200.id
    assert await store.count_versions(pid) == 4

    history = await store.list_versions(pid)
    assert [v.version_number for v in history] == ["2.0.0", "1.1.1", "1.1.0", "1.0.0"]

    # The original content is untouched
    first = await store.get_version_by_number(pid, "1.0.0")
    assert first.content == "Review this code for bugs."


async def test_version_event_metadata(make_prompt, lifecycle, store):
    created = await make_prompt()
    await lifecycle.create_version(created.prompt.id, new_version("minor"))

    events, _ = await store.list_events(created.prompt.id)
    assert [e.event_type for e in events] == ["version_created", "created"]
    assert events[0].event_metadata == {"version": "1.1.0", "previous_version": "1.0.0", "type": "minor"}
    assert events[0].created_by == "bob"


async def test_version_inherits_models_and_config(make_prompt, lifecycle):
    created = await make_prompt(models=["gpt-4", "claude-3"], model_config={"temperature": 0.2})
    pid = created.prompt.id

    inherited = await lifecycle.create_version(pid, new_version("patch"))
    assert inherited.models == ["gpt-4", "claude-3"]
    assert inherited.model_config == {"temperature": 0.2}

    replaced = await lifecycle.create_version(
        pid, new_version("patch", models=["llama-3"], model_config={"temperature": 0.9})
    )
    assert replaced.models == ["llama-3"]
    assert replaced.model_config == {"temperature": 0.9}


async def test_version_refreshes_search_text(make_prompt, lifecycle, store):
    created = await make_prompt()
    await lifecycle.create_version(created.prompt.id, new_version("minor", content="Explain QUANTUM tunnelling"))

    prompt = await store.get_prompt(created.prompt.id)
    assert "quantum tunnelling" in prompt.search_text


async def test_version_for_missing_prompt(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.create_version(uuid.uuid4(), new_version())


# ── Concurrency ──────────────────────────────────────────────────────


async def test_stale_writer_loses_pointer_race(make_prompt, lifecycle, store, session, monkeypatch):
    created = await make_prompt()
    pid = created.prompt.id
    stale = await store.get_prompt_with_current_version(pid)

    winner_id = (await lifecycle.create_version(pid, new_version("patch"))).id

    # Second writer read the pointer before the first one committed
    monkeypatch.setattr(store, "get_prompt_with_current_version", AsyncMock(return_value=stale))
    with pytest.raises(ConflictError):
        await lifecycle.create_version(pid, new_version("minor"))

    assert await count(session, PromptVersion.id, PromptVersion.prompt_id == pid) == 2
    assert await current_version_id(session, pid) == winner_id
    assert await count(session, PromptEvent.id, PromptEvent.event_type == "version_created") == 1


async def test_stale_writer_same_number_conflicts(make_prompt, lifecycle, store, session, monkeypatch):
    created = await make_prompt()
    pid = created.prompt.id
    stale = await store.get_prompt_with_current_version(pid)

    winner_id = (await lifecycle.create_version(pid, new_version("patch"))).id

    monkeypatch.setattr(store, "get_prompt_with_current_version", AsyncMock(return_value=stale))
    with pytest.raises(ConflictError):
        await lifecycle.create_version(pid, new_version("patch"))

    assert await count(session, PromptVersion.id, PromptVersion.prompt_id == pid) == 2
    assert await current_version_id(session, pid) == winner_id


@pytest.fixture
async def file_session_factory(tmp_path):
    """Separate connections to one on-disk database, as concurrent requests would have."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class ReadBarrier:
    """Holds each writer after it reads the current version until every writer has read it."""

    def __init__(self, parties):
        self.parties = parties
        self.arrived = 0
        self.released = asyncio.Event()

    def wrap(self, store):
        read = store.get_prompt_with_current_version

        async def read_then_wait(prompt_id):
            result = await read(prompt_id)
            self.arrived += 1
            if self.arrived == self.parties:
                self.released.set()
            await self.released.wait()
            return result

        store.get_prompt_with_current_version = read_then_wait


async def test_concurrent_writers_on_separate_sessions(file_session_factory):
    async with file_session_factory() as session:
        created = await PromptLifecycle(SqlPromptStore(session)).create_prompt(
            PromptCreate(name="Shared", purpose="race", content="v1")
        )
        pid = created.prompt.id

    barrier = ReadBarrier(2)

    async def publish(content):
        async with file_session_factory() as session:
            store = SqlPromptStore(session)
            barrier.wrap(store)
            version = await PromptLifecycle(store).create_version(pid, new_version("minor", content=content))
            return version.version_number

    results = await asyncio.gather(publish("writer one"), publish("writer two"), return_exceptions=True)

    assert [r for r in results if isinstance(r, str)] == ["1.1.0"]
    assert len([r for r in results if isinstance(r, ConflictError)]) == 1

    async with file_session_factory() as session:
        store = SqlPromptStore(session)
        assert [v.version_number for v in await store.list_versions(pid)] == ["1.1.0", "1.0.0"]
        _, current = await store.get_prompt_with_current_version(pid)
        assert current.version_number == "1.1.0"
        _, total = await store.list_events(pid)
        assert total == 2



# ── Rollback ─────────────────────────────────────────────────────────


async def test_rollback_appends_copy(make_prompt, lifecycle, store):
    created = await make_prompt(model_config={"temperature": 0.1})
    pid = created.prompt.id
    await lifecycle.create_version(pid, new_version("minor", content="v1.1 text", model_config={"temperature": 0.7}))

    restored = await lifecycle.rollback(pid, "1.0.0", RollbackRequest(comment="1.1 regressed", author="carol"))

    assert restored.version_number == "1.1.1"
    assert restored.content == "Review this code for bugs."
    assert restored.model_config == {"temperature": 0.1}
    assert restored.change_description == "Rollback to version 1.0.0: 1.1 regressed"
    assert await store.count_versions(pid) == 3

    _, current = await store.get_prompt_with_current_version(pid)
    assert current.id == restored.id

    events, _ = await store.list_events(pid)
    assert events[0].event_type == "rollback"
    assert events[0].comment == "1.1 regressed"
    assert events[0].created_by == "carol"
    assert events[0].event_metadata == {"from_version": "1.1.0", "to_version": "1.0.0", "new_version": "1.1.1"}


async def test_rollback_to_unknown_version(make_prompt, lifecycle, store):
    created = await make_prompt()
    pid = created.prompt.id

    with pytest.raises(NotFoundError, match="Version 9.9.9 not found"):
        await lifecycle.rollback(pid, "9.9.9", RollbackRequest(comment="oops"))

    assert await store.count_versions(pid) == 1


async def test_rollback_ignores_other_prompts_versions(make_prompt, lifecycle, store):
    a = await make_prompt(name="Prompt A")
    b = await make_prompt(name="Prompt B")
    a_id, b_id = a.prompt.id, b.prompt.id
    await lifecycle.create_version(b_id, new_version("major"))
    assert (await store.get_version_by_number(b_id, "2.0.0")).version_number == "2.0.0"

    with pytest.raises(NotFoundError, match="Version 2.0.0 not found"):
        await lifecycle.rollback(a_id, "2.0.0", RollbackRequest(comment="wrong prompt"))

    assert await store.count_versions(a_id) == 1
    _, current = await store.get_prompt_with_current_version(a_id)
    assert current.version_number == "1.0.0"


# ── Status ───────────────────────────────────────────────────────────


async def test_status_moves_freely(make_prompt, lifecycle, store):
    created = await make_prompt()
    pid = created.prompt.id

    for status in ("active", "archived", "draft", "testing"):
        prompt = await lifecycle.change_status(pid, StatusChange(status=status, comment=f"to {status}"))
        assert prompt.status == status

    events, total = await store.list_events(pid)
    assert total == 5
    assert events[0].event_metadata == {"from": "draft", "to": "testing"}
    assert events[0].comment == "to testing"
    assert events[1].event_metadata == {"from": "archived", "to": "draft"}


async def test_status_change_keeps_versions(make_prompt, lifecycle, store):
    created = await make_prompt()
    await lifecycle.change_status(created.prompt.id, StatusChange(status="active", comment="ship it"))

    _, current = await store.get_prompt_with_current_version(created.prompt.id)
    assert current.id == created.current_version.id
    assert await store.count_versions(created.prompt.id) == 1


# ── Metadata ─────────────────────────────────────────────────────────


async def test_update_metadata_records_fields(make_prompt, lifecycle, store):
    created = await make_prompt(tags=["a", "b"])
    pid = created.prompt.id

    prompt = await lifecycle.update_metadata(
        pid, PromptUpdate(tags=["b", "c"], name="Reviewer v2", author="dave")
    )

    assert prompt.name == "Reviewer v2"
    assert prompt.tags == ["b", "c"]
    assert "reviewer v2" in prompt.search_text

    events, _ = await store.list_events(pid)
    assert events[0].event_type == "metadata_updated"
    assert events[0].event_metadata == {"fields": ["name", "tags"]}
    assert events[0].created_by == "dave"


async def test_update_metadata_leaves_versions_alone(make_prompt, lifecycle, store):
    created = await make_prompt()
    await lifecycle.update_metadata(created.prompt.id, PromptUpdate(description="New description"))

    assert await store.count_versions(created.prompt.id) == 1
    _, current = await store.get_prompt_with_current_version(created.prompt.id)
    assert current.version_number == "1.0.0"


async def test_empty_update_writes_no_event(make_prompt, lifecycle, store):
    created = await make_prompt()
    await lifecycle.update_metadata(created.prompt.id, PromptUpdate(author="dave"))

    _, total = await store.list_events(created.prompt.id)
    assert total == 1


# ── Delete ───────────────────────────────────────────────────────────


async def test_hard_delete_removes_everything(make_prompt, lifecycle, session):
    doomed = await make_prompt(name="Doomed", tags=["x", "y"])
    survivor = await make_prompt(name="Survivor")
    pid = doomed.prompt.id
    await lifecycle.create_version(pid, new_version("minor"))

    await lifecycle.delete_prompt(pid)

    assert await count(session, Prompt.id, Prompt.id == pid) == 0
    assert await count(session, PromptVersion.id, PromptVersion.prompt_id == pid) == 0
    assert await count(session, PromptEvent.id, PromptEvent.prompt_id == pid) == 0
    assert await count(session, PromptTag.id, PromptTag.prompt_id == pid) == 0

    sid = survivor.prompt.id
    assert await count(session, PromptVersion.id, PromptVersion.prompt_id == sid) == 1
    assert await count(session, PromptEvent.id, PromptEvent.prompt_id == sid) == 1


async def test_hard_delete_missing_prompt(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.delete_prompt(uuid.uuid4())


async def test_soft_delete_archives(make_prompt, lifecycle, store):
    created = await make_prompt()
    pid = created.prompt.id
    await lifecycle.change_status(pid, StatusChange(status="active", comment="live"))

    await lifecycle.delete_prompt(pid, hard=False, author="erin")

    prompt = await store.get_prompt(pid)
    assert prompt.status == "archived"
    assert await store.count_versions(pid) == 1

    events, _ = await store.list_events(pid)
    assert events[0].event_type == "status_changed"
    assert events[0].event_metadata == {"from": "active", "to": "archived", "reason": "deleted"}
    assert events[0].comment == "Prompt deleted"
    assert events[0].created_by == "erin"


async def test_code_reviewer_walkthrough(make_prompt, lifecycle, store):
    created = await make_prompt(name="Code Reviewer", content="Review this code")
    pid = created.prompt.id
    first = created.current_version

    minor = await lifecycle.create_version(pid, new_version("minor", content="Review this code carefully"))
    assert minor.version_number == "1.1.0"
    assert minor.previous_version_id == first.id

    restored = await lifecycle.rollback(pid, "1.0.0", RollbackRequest(comment="too verbose"))
    assert restored.version_number == "1.1.1"
    assert restored.content == "Review this code"
    assert restored.previous_version_id == minor.id

    events, total = await store.list_events(pid)
    assert total == 3
    assert [e.event_type for e in events] == ["rollback", "version_created", "created"]
