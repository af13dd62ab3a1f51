"""Audit event response schemas."""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator


class EventResponse(BaseModel):
    id: int
    prompt_id: uuid.UUID
    event_type: str
    comment: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias=AliasChoices("event_metadata", "metadata"))
    created_at: datetime
    created_by: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("metadata", mode="before")
    @classmethod
    def none_to_dict(cls, v):
        return v if v is not None else {}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    has_more: bool
