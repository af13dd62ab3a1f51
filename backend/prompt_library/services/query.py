"""Read-side queries: prompt search and the tag/purpose catalogs.

Only reads. Exposed to routes through ``PromptStore.search_prompts`` and the
catalog methods; the functions take the session the store holds.
"""
import json

from sqlalchemy import Text, case, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_library.models import Prompt, PromptTag, PromptVersion
from prompt_library.schemas.prompt import (
    CatalogEntry,
    Pagination,
    PromptListItem,
    PromptListResponse,
    PromptSearch,
)
from prompt_library.schemas.version import VersionSummary

_SORT_COLUMNS = {
    "name": Prompt.name,
    "created_at": Prompt.created_at,
    "updated_at": Prompt.updated_at,
}


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, value: str):
    return column.like(f"%{_like_escape(value)}%", escape="\\")


def _search_terms(search: str | None) -> list[str]:
    return search.lower().split() if search else []


def _filters(params: PromptSearch) -> list:
    """Conjunctive WHERE clauses for a search request."""
    clauses = []
    if params.status:
        clauses.append(Prompt.status.in_(params.status))
    if params.purpose:
        clauses.append(Prompt.purpose == params.purpose)
    if params.tags:
        # Overlap: any requested tag is enough
        clauses.append(
            Prompt.id.in_(select(PromptTag.prompt_id).where(PromptTag.tag.in_(params.tags)))
        )
    if params.models:
        # models is a JSON list; match each id in its serialized form
        models_text = cast(PromptVersion.models, Text)
        clauses.append(
            Prompt.current_version_id.in_(
                select(PromptVersion.id).where(
                    or_(*[_contains(models_text, json.dumps(m)) for m in params.models])
                )
            )
        )
    for term in _search_terms(params.search):
        clauses.append(_contains(Prompt.search_text, term))
    return clauses


def _ordering(params: PromptSearch) -> list:
    terms = _search_terms(params.search)
    descending = params.order == "desc"

    if params.sort == "rank" and terms:
        # Best effort: name hits outrank body hits, then freshness
        score = sum(case((_contains(func.lower(Prompt.name), t), 1), else_=0) for t in terms)
        primary = score.desc() if descending else score.asc()
        return [primary, Prompt.updated_at.desc(), Prompt.id]

    column = _SORT_COLUMNS.get(params.sort, Prompt.updated_at)
    return [column.desc() if descending else column.asc(), Prompt.id]


async def search_prompts(db: AsyncSession, params: PromptSearch) -> PromptListResponse:
    """Filter, sort and page prompts. ``total`` counts every match, not just the page."""
    clauses = _filters(params)

    total = (await db.execute(
        select(func.count(Prompt.id)).where(*clauses)
    )).scalar() or 0

    result = await db.execute(
        select(Prompt)
        .where(*clauses)
        .order_by(*_ordering(params))
        .limit(params.limit)
        .offset(params.offset)
    )
    prompts = result.scalars().all()

    version_ids = [p.current_version_id for p in prompts if p.current_version_id]
    summaries = {}
    if version_ids:
        rows = await db.execute(
            select(PromptVersion.id, PromptVersion.version_number, PromptVersion.models)
            .where(PromptVersion.id.in_(version_ids))
        )
        summaries = {
            row.id: VersionSummary(version_number=row.version_number, models=row.models or [])
            for row in rows
        }

    items = []
    for prompt in prompts:
        item = PromptListItem.model_validate(prompt)
        item.current_version = summaries.get(prompt.current_version_id)
        items.append(item)

    return PromptListResponse(
        items=items,
        pagination=Pagination(
            total=total,
            limit=params.limit,
            offset=params.offset,
            has_more=params.offset + len(items) < total,
        ),
    )


async def list_tags(db: AsyncSession) -> list[CatalogEntry]:
    """Distinct tags with the number of prompts carrying each, most used first."""
    usage = func.count(PromptTag.prompt_id)
    result = await db.execute(
        select(PromptTag.tag, usage).group_by(PromptTag.tag).order_by(usage.desc(), PromptTag.tag)
    )
    return [CatalogEntry(name=tag, usage_count=count) for tag, count in result.all()]


async def list_purposes(db: AsyncSession) -> list[CatalogEntry]:
    usage = func.count(Prompt.id)
    result = await db.execute(
        select(Prompt.purpose, usage).group_by(Prompt.purpose).order_by(usage.desc(), Prompt.purpose)
    )
    return [CatalogEntry(name=purpose, usage_count=count) for purpose, count in result.all()]
