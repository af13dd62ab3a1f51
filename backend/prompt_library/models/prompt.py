"""Prompt model - the named, versioned unit of content management."""
import uuid
from typing import Literal, get_args
from sqlalchemy import CheckConstraint, String, Text, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from prompt_library.models.base import Base, TimestampMixin

PromptStatus = Literal["draft", "in_review", "testing", "active", "deprecated", "archived"]
PROMPT_STATUSES: tuple[str, ...] = get_args(PromptStatus)


class Prompt(Base, TimestampMixin):
    __tablename__ = "prompts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    purpose: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    owner: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Null only inside the creation transaction. use_alter breaks the
    # prompts <-> prompt_versions cycle at DDL time.
    current_version_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey(
            "prompt_versions.id",
            use_alter=True,
            name="fk_prompts_current_version_id",
            ondelete="SET NULL",
        ),
        nullable=True,
        index=True,
    )

    # Lowercased name + description + purpose + tags + head of current content
    search_text: Mapped[str] = mapped_column(Text, default="")

    tag_links: Mapped[list["PromptTag"]] = relationship(
        back_populates="prompt",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="PromptTag.id",
    )

    @property
    def tags(self) -> list[str]:
        return [link.tag for link in self.tag_links]

    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in PROMPT_STATUSES) + ")",
            name="ck_prompts_status",
        ),
    )


class PromptTag(Base):
    __tablename__ = "prompt_tags"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    prompt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    prompt: Mapped["Prompt"] = relationship(back_populates="tag_links")

    __table_args__ = (
        UniqueConstraint("prompt_id", "tag", name="uq_prompt_tag"),
    )
