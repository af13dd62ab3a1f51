"""PromptEvent model - append-only audit trail."""
import uuid
from datetime import datetime
from typing import Literal, get_args
from sqlalchemy import CheckConstraint, String, Text, JSON, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from prompt_library.models.base import Base, utcnow

EventType = Literal["created", "version_created", "status_changed", "metadata_updated", "rollback"]
EVENT_TYPES: tuple[str, ...] = get_args(EventType)


class PromptEvent(Base):
    __tablename__ = "prompt_events"

    # Integer id doubles as the insertion-order tie breaker for equal created_at.
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    prompt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_prompt_events_prompt_created", "prompt_id", "created_at"),
        CheckConstraint(
            "event_type IN (" + ", ".join(f"'{t}'" for t in EVENT_TYPES) + ")",
            name="ck_prompt_events_type",
        ),
    )
