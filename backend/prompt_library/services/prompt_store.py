"""Prompt store: the persistence contract the lifecycle engine is written against.

``PromptStore`` states what the lifecycle and the read side need from a
backing engine: multi-entity transactions, a compare-and-swap on the
current-version pointer, and prompt search. ``SqlPromptStore`` implements
it on an AsyncSession.

Store methods never commit. Callers group them with ``transaction()``, which
commits on success and rolls everything back on any failure, so a state
change and the event describing it land together or not at all. A backend
without cross-entity transactions would have to undo a half-written creation
with a compensating delete; no such backend is implemented.
"""
import abc
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.errors import ConflictError, InvalidStateError, NotFoundError, StoreError
from prompt_library.models import Prompt, PromptEvent, PromptTag, PromptVersion
from prompt_library.models.base import utcnow
from prompt_library.models.event import EventType
from prompt_library.schemas.prompt import CatalogEntry, PromptListResponse, PromptSearch
from prompt_library.services import query, semver

logger = logging.getLogger(__name__)

SEARCH_CONTENT_CHARS = 500


def build_search_text(
    name: str,
    description: Optional[str],
    purpose: str,
    tags: list[str],
    content: Optional[str],
) -> str:
    """Denormalized blob the free-text search matches against."""
    parts = [name, description, purpose, " ".join(tags), (content or "")[:SEARCH_CONTENT_CHARS]]
    return " ".join(p for p in parts if p).lower()


# SQLSTATE for unique_violation (asyncpg exposes it as ``sqlstate``, psycopg as ``pgcode``)
PG_UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE_ERRORS = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")


def _is_unique_violation(error: IntegrityError) -> bool:
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == PG_UNIQUE_VIOLATION
    name = getattr(orig, "sqlite_errorname", None)
    if name is not None:
        return name in SQLITE_UNIQUE_ERRORS
    # sqlite3 before 3.11 carries no error name
    return str(orig).startswith("UNIQUE constraint failed")


class PromptStore(abc.ABC):
    """Atomic operations over prompts, their versions and their events."""

    @abc.abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Unit of work: commit on clean exit, roll back on any exception."""

    @abc.abstractmethod
    async def insert_prompt_and_initial_version(
        self, prompt_fields: dict, version_fields: dict
    ) -> tuple[Prompt, PromptVersion]:
        ...

    @abc.abstractmethod
    async def get_prompt(self, prompt_id: uuid.UUID) -> Prompt:
        ...

    @abc.abstractmethod
    async def get_prompt_with_current_version(
        self, prompt_id: uuid.UUID
    ) -> tuple[Prompt, Optional[PromptVersion]]:
        ...

    @abc.abstractmethod
    async def count_versions(self, prompt_id: uuid.UUID) -> int:
        ...

    @abc.abstractmethod
    async def list_versions(self, prompt_id: uuid.UUID) -> list[PromptVersion]:
        """All versions of a prompt, newest first."""

    @abc.abstractmethod
    async def get_version_by_number(self, prompt_id: uuid.UUID, version_number: str) -> PromptVersion:
        ...

    @abc.abstractmethod
    async def append_version(
        self,
        prompt_id: uuid.UUID,
        version_fields: dict,
        expected_previous_version_id: uuid.UUID,
    ) -> PromptVersion:
        """Insert a version and move the prompt's pointer to it.

        Raises ConflictError if the pointer no longer equals
        ``expected_previous_version_id``.
        """

    @abc.abstractmethod
    async def update_prompt_metadata(self, prompt_id: uuid.UUID, fields: dict) -> Prompt:
        ...

    @abc.abstractmethod
    async def update_prompt_status(self, prompt_id: uuid.UUID, status: str) -> tuple[str, str]:
        """Returns (previous_status, new_status)."""

    @abc.abstractmethod
    async def delete_prompt(self, prompt_id: uuid.UUID, hard: bool) -> None:
        ...

    @abc.abstractmethod
    async def append_event(
        self,
        prompt_id: uuid.UUID,
        event_type: EventType,
        metadata: Optional[dict] = None,
        comment: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> PromptEvent:
        ...

    @abc.abstractmethod
    async def list_events(
        self, prompt_id: uuid.UUID, limit: int = 50, offset: int = 0
    ) -> tuple[list[PromptEvent], int]:
        """A page of events, newest first, and the total count."""

    @abc.abstractmethod
    async def search_prompts(self, params: PromptSearch) -> PromptListResponse:
        """Filtered, sorted page of prompts with the total match count."""

    @abc.abstractmethod
    async def list_tags(self) -> list[CatalogEntry]:
        ...

    @abc.abstractmethod
    async def list_purposes(self) -> list[CatalogEntry]:
        ...


class SqlPromptStore(PromptStore):
    """PromptStore backed by SQLAlchemy (PostgreSQL in production, SQLite in tests)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if not _is_unique_violation(e):
                logger.exception("Integrity violation, transaction rolled back")
                raise StoreError() from e
            # Two writers computed the same next version number
            logger.warning(f"Unique violation, transaction rolled back: {e.orig}")
            raise ConflictError("Prompt was modified concurrently; reload and retry") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception("Store operation failed, transaction rolled back")
            raise StoreError() from e
        except BaseException:
            await self.session.rollback()
            raise

    # ── Prompts ──────────────────────────────────────────────────────

    async def insert_prompt_and_initial_version(self, prompt_fields, version_fields):
        fields = dict(prompt_fields)
        tags = fields.pop("tags", [])
        now = utcnow()

        prompt = Prompt(
            **fields,
            status="draft",
            created_at=now,
            updated_at=now,
            tag_links=[PromptTag(tag=t) for t in tags],
            search_text=build_search_text(
                fields["name"], fields.get("description"), fields["purpose"],
                tags, version_fields.get("content"),
            ),
        )
        self.session.add(prompt)
        await self.session.flush()

        version = PromptVersion(
            **version_fields,
            prompt_id=prompt.id,
            version_number=semver.INITIAL_VERSION,
            previous_version_id=None,
            created_at=now,
        )
        self.session.add(version)
        await self.session.flush()

        prompt.current_version_id = version.id
        await self.session.flush()
        return prompt, version

    async def get_prompt(self, prompt_id):
        prompt = await self.session.get(Prompt, prompt_id)
        if prompt is None:
            raise NotFoundError("Prompt not found")
        return prompt

    async def get_prompt_with_current_version(self, prompt_id):
        prompt = await self.get_prompt(prompt_id)
        if prompt.current_version_id is None:
            return prompt, None
        version = await self.session.get(PromptVersion, prompt.current_version_id)
        if version is not None and version.prompt_id != prompt.id:
            raise InvalidStateError("Current version belongs to a different prompt")
        return prompt, version

    async def update_prompt_metadata(self, prompt_id, fields):
        prompt = await self.get_prompt(prompt_id)
        fields = dict(fields)
        tags = fields.pop("tags", None)

        for key, value in fields.items():
            setattr(prompt, key, value)
        if tags is not None:
            # Reuse surviving rows: the flush inserts before it deletes, so
            # re-adding an existing tag would trip uq_prompt_tag.
            existing = {link.tag: link for link in prompt.tag_links}
            prompt.tag_links = [existing.get(t) or PromptTag(tag=t) for t in tags]

        content = None
        if prompt.current_version_id is not None:
            current = await self.session.get(PromptVersion, prompt.current_version_id)
            content = current.content if current else None
        prompt.search_text = build_search_text(
            prompt.name, prompt.description, prompt.purpose, prompt.tags, content
        )
        prompt.updated_at = utcnow()
        await self.session.flush()
        return prompt

    async def update_prompt_status(self, prompt_id, status):
        prompt = await self.get_prompt(prompt_id)
        previous = prompt.status
        prompt.status = status
        prompt.updated_at = utcnow()
        await self.session.flush()
        return previous, status

    async def delete_prompt(self, prompt_id, hard):
        if not hard:
            await self.update_prompt_status(prompt_id, "archived")
            return

        await self.get_prompt(prompt_id)
        await self.session.execute(delete(PromptEvent).where(PromptEvent.prompt_id == prompt_id))
        await self.session.execute(delete(PromptTag).where(PromptTag.prompt_id == prompt_id))
        # Drop the pointer first so versions can go without tripping the FK
        await self.session.execute(
            update(Prompt).where(Prompt.id == prompt_id).values(current_version_id=None)
        )
        await self.session.execute(delete(PromptVersion).where(PromptVersion.prompt_id == prompt_id))
        await self.session.execute(delete(Prompt).where(Prompt.id == prompt_id))

    # ── Versions ─────────────────────────────────────────────────────

    async def count_versions(self, prompt_id):
        result = await self.session.execute(
            select(func.count(PromptVersion.id)).where(PromptVersion.prompt_id == prompt_id)
        )
        return result.scalar() or 0

    async def list_versions(self, prompt_id):
        await self.get_prompt(prompt_id)
        result = await self.session.execute(
            select(PromptVersion).where(PromptVersion.prompt_id == prompt_id)
        )
        return semver.sort_descending(result.scalars().all(), key=lambda v: v.version_number)

    async def get_version_by_number(self, prompt_id, version_number):
        result = await self.session.execute(
            select(PromptVersion).where(
                PromptVersion.prompt_id == prompt_id,
                PromptVersion.version_number == version_number,
            )
        )
        version = result.scalar_one_or_none()
        if version is None:
            raise NotFoundError(f"Version {version_number} not found")
        return version

    async def append_version(self, prompt_id, version_fields, expected_previous_version_id):
        prompt = await self.get_prompt(prompt_id)
        version = PromptVersion(
            **version_fields,
            prompt_id=prompt_id,
            previous_version_id=expected_previous_version_id,
            created_at=utcnow(),
        )
        self.session.add(version)
        await self.session.flush()

        # Compare-and-swap: only move the pointer if nobody else has.
        result = await self.session.execute(
            update(Prompt)
            .where(
                Prompt.id == prompt_id,
                Prompt.current_version_id == expected_previous_version_id,
            )
            .values(
                current_version_id=version.id,
                updated_at=utcnow(),
                search_text=build_search_text(
                    prompt.name, prompt.description, prompt.purpose, prompt.tags, version.content
                ),
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise ConflictError("Prompt's current version changed; reload and retry")
        return version

    # ── Events ───────────────────────────────────────────────────────

    async def append_event(self, prompt_id, event_type, metadata=None, comment=None, created_by=None):
        event = PromptEvent(
            prompt_id=prompt_id,
            event_type=event_type,
            event_metadata=metadata or {},
            comment=comment,
            created_by=created_by,
            created_at=utcnow(),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_events(self, prompt_id, limit=50, offset=0):
        await self.get_prompt(prompt_id)
        total = (await self.session.execute(
            select(func.count(PromptEvent.id)).where(PromptEvent.prompt_id == prompt_id)
        )).scalar() or 0
        result = await self.session.execute(
            select(PromptEvent)
            .where(PromptEvent.prompt_id == prompt_id)
            .order_by(PromptEvent.created_at.desc(), PromptEvent.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    # ── Reads ────────────────────────────────────────────────────────

    async def search_prompts(self, params):
        return await query.search_prompts(self.session, params)

    async def list_tags(self):
        return await query.list_tags(self.session)

    async def list_purposes(self):
        return await query.list_purposes(self.session)
