"""Version request/response schemas."""
import uuid
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

MAX_MODEL_ID_LENGTH = 100


def normalize_models(models: list[str]) -> list[str]:
    for model in models:
        if not model.strip():
            raise ValueError("Model identifiers cannot be empty")
        if len(model) > MAX_MODEL_ID_LENGTH:
            raise ValueError(f"Model identifiers must be at most {MAX_MODEL_ID_LENGTH} characters")
    return models


class VersionCreate(BaseModel):
    """New content for a prompt. models/model_config fall back to the current version's."""
    content: str = Field(..., min_length=1, max_length=50000)
    system_prompt: Optional[str] = Field(None, max_length=10000)
    change_description: str = Field(..., min_length=1, max_length=1000)
    bump_type: Literal["major", "minor", "patch"]
    models: Optional[list[str]] = Field(None, max_length=20)
    llm_config: Optional[dict] = Field(None, alias="model_config")
    author: Optional[str] = Field(None, max_length=255)

    model_config = {"populate_by_name": True, "protected_namespaces": ()}

    @field_validator("change_description")
    @classmethod
    def description_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Change description is required")
        return v

    @field_validator("models")
    @classmethod
    def check_models(cls, v):
        return normalize_models(v) if v is not None else v


class RollbackRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)
    author: Optional[str] = Field(None, max_length=255)

    @field_validator("comment")
    @classmethod
    def comment_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Comment is required for rollback")
        return v


class VersionResponse(BaseModel):
    id: uuid.UUID
    prompt_id: uuid.UUID
    version_number: str
    change_description: str
    content: str
    system_prompt: Optional[str] = None
    models: list[str] = []
    llm_config: dict = Field(default_factory=dict, alias="model_config")
    author: Optional[str] = None
    created_at: datetime
    previous_version_id: Optional[uuid.UUID] = None

    model_config = {"from_attributes": True, "populate_by_name": True, "protected_namespaces": ()}

    @field_validator("models", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v if v is not None else []

    @field_validator("llm_config", mode="before")
    @classmethod
    def none_to_dict(cls, v):
        return v if v is not None else {}


class VersionSummary(BaseModel):
    version_number: str
    models: list[str] = []

    model_config = {"from_attributes": True}
