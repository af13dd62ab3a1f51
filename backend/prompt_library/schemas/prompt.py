"""Prompt request/response schemas."""
import uuid
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from prompt_library.models.prompt import PromptStatus
from prompt_library.schemas.version import VersionResponse, VersionSummary, normalize_models

SortField = Literal["name", "created_at", "updated_at", "rank"]

MAX_TAGS = 20
MAX_TAG_LENGTH = 100
MAX_MODELS = 20


def normalize_tags(tags: list[str]) -> list[str]:
    """Strip, reject empty/oversized tags, drop duplicates keeping first occurrence."""
    seen: list[str] = []
    for raw in tags:
        tag = raw.strip()
        if not tag:
            raise ValueError("Tags cannot be empty")
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tags must be at most {MAX_TAG_LENGTH} characters")
        if tag not in seen:
            seen.append(tag)
    return seen


class PromptCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    purpose: str = Field(..., min_length=1, max_length=500)
    tags: list[str] = Field(default_factory=list, max_length=MAX_TAGS)
    owner: Optional[str] = Field(None, max_length=255)
    content: str = Field(..., min_length=1, max_length=50000)
    system_prompt: Optional[str] = Field(None, max_length=10000)
    models: list[str] = Field(default_factory=list, max_length=MAX_MODELS)
    llm_config: dict = Field(default_factory=dict, alias="model_config")
    author: Optional[str] = Field(None, max_length=255)

    model_config = {"populate_by_name": True, "protected_namespaces": ()}

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        return normalize_tags(v)

    @field_validator("models")
    @classmethod
    def check_models(cls, v):
        return normalize_models(v)


class PromptUpdate(BaseModel):
    """Partial metadata update. Only fields present in the request are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    purpose: Optional[str] = Field(None, min_length=1, max_length=500)
    tags: Optional[list[str]] = Field(None, max_length=MAX_TAGS)
    owner: Optional[str] = Field(None, max_length=255)
    author: Optional[str] = Field(None, max_length=255)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        return normalize_tags(v) if v is not None else v

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in ("name", "purpose", "tags"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        """Metadata fields the caller actually sent (author is attribution, not metadata)."""
        return self.model_dump(exclude_unset=True, exclude={"author"})


class StatusChange(BaseModel):
    status: PromptStatus
    comment: str = Field(..., min_length=1, max_length=2000)
    author: Optional[str] = Field(None, max_length=255)

    @field_validator("comment")
    @classmethod
    def comment_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Comment is required for status changes")
        return v


class PromptSearch(BaseModel):
    search: Optional[str] = None
    tags: list[str] = []
    purpose: Optional[str] = None
    status: list[PromptStatus] = []
    models: list[str] = []
    sort: SortField = "updated_at"
    order: Literal["asc", "desc"] = "desc"
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class PromptResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    purpose: str
    tags: list[str] = []
    status: str
    owner: Optional[str] = None
    current_version_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PromptDetailResponse(PromptResponse):
    current_version: Optional[VersionResponse] = None
    version_count: int = 0


class PromptListItem(PromptResponse):
    current_version: Optional[VersionSummary] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class PromptListResponse(BaseModel):
    items: list[PromptListItem]
    pagination: Pagination


class CatalogEntry(BaseModel):
    """A distinct tag or purpose with the number of prompts using it."""
    name: str
    usage_count: int
