"""Prompt lifecycle engine.

Owns the business rules for how a prompt moves through its statuses and how
its content evolves across versions. Every public method runs its whole
protocol inside a single store transaction, so callers observe either the
complete result (state change + audit event) or nothing.

Rules enforced here:
- A prompt is born ``draft`` with version ``1.0.0``.
- New content never mutates a version; it appends one whose number is the
  current number bumped by major/minor/patch.
- Rollback appends a copy of an older version, numbered as a patch bump of
  the current one, so history only moves forward.
- Version appends are compare-and-swap on the current-version pointer; a
  racing writer gets ConflictError. Status and metadata are last-writer-wins.
- Any status may move to any other status; every move needs a comment.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from prompt_library.errors import ConflictError, InvalidStateError
from prompt_library.models import Prompt, PromptVersion
from prompt_library.schemas.prompt import PromptCreate, PromptUpdate, StatusChange
from prompt_library.schemas.version import RollbackRequest, VersionCreate
from prompt_library.services import semver
from prompt_library.services.prompt_store import PromptStore

logger = logging.getLogger(__name__)

INITIAL_CHANGE_DESCRIPTION = "Initial version"
SOFT_DELETE_COMMENT = "Prompt deleted"


@dataclass
class PromptWithVersion:
    prompt: Prompt
    current_version: Optional[PromptVersion]
    version_count: int = 1


class PromptLifecycle:
    """State machine and version protocol over a PromptStore."""

    def __init__(self, store: PromptStore):
        self.store = store

    async def create_prompt(self, data: PromptCreate) -> PromptWithVersion:
        prompt_fields = {
            "name": data.name,
            "description": data.description,
            "purpose": data.purpose,
            "tags": data.tags,
            "owner": data.owner,
        }
        version_fields = {
            "change_description": INITIAL_CHANGE_DESCRIPTION,
            "content": data.content,
            "system_prompt": data.system_prompt,
            "models": data.models,
            "model_config": data.llm_config,
            "author": data.author,
        }
        async with self.store.transaction():
            prompt, version = await self.store.insert_prompt_and_initial_version(
                prompt_fields, version_fields
            )
            await self.store.append_event(
                prompt.id,
                "created",
                metadata={"initial_version": version.version_number},
                created_by=data.author,
            )
        logger.info(f"Created prompt {prompt.id} ({prompt.name!r}) at {version.version_number}")
        return PromptWithVersion(prompt=prompt, current_version=version, version_count=1)

    async def create_version(self, prompt_id: uuid.UUID, data: VersionCreate) -> PromptVersion:
        async with self.store.transaction():
            _, current = await self.store.get_prompt_with_current_version(prompt_id)
            if current is None:
                raise InvalidStateError("Prompt has no current version")

            new_number = self._bump(current.version_number, data.bump_type)
            version = await self._append(
                prompt_id,
                {
                    "version_number": new_number,
                    "change_description": data.change_description,
                    "content": data.content,
                    "system_prompt": data.system_prompt,
                    "models": data.models if data.models is not None else list(current.models or []),
                    "model_config": (
                        data.llm_config if data.llm_config is not None else dict(current.model_config or {})
                    ),
                    "author": data.author,
                },
                current,
            )
            await self.store.append_event(
                prompt_id,
                "version_created",
                metadata={
                    "version": new_number,
                    "previous_version": current.version_number,
                    "type": data.bump_type,
                },
                created_by=data.author,
            )
        logger.info(f"Prompt {prompt_id}: {current.version_number} -> {new_number} ({data.bump_type})")
        return version

    async def rollback(
        self, prompt_id: uuid.UUID, version_number: str, data: RollbackRequest
    ) -> PromptVersion:
        async with self.store.transaction():
            _, current = await self.store.get_prompt_with_current_version(prompt_id)
            if current is None:
                raise InvalidStateError("Prompt has no current version")
            target = await self.store.get_version_by_number(prompt_id, version_number)

            new_number = self._bump(current.version_number, "patch")
            version = await self._append(
                prompt_id,
                {
                    "version_number": new_number,
                    "change_description": f"Rollback to version {target.version_number}: {data.comment}",
                    "content": target.content,
                    "system_prompt": target.system_prompt,
                    "models": list(target.models or []),
                    "model_config": dict(target.model_config or {}),
                    "author": data.author,
                },
                current,
            )
            await self.store.append_event(
                prompt_id,
                "rollback",
                metadata={
                    "from_version": current.version_number,
                    "to_version": target.version_number,
                    "new_version": new_number,
                },
                comment=data.comment,
                created_by=data.author,
            )
        logger.info(
            f"Prompt {prompt_id}: rolled back to {target.version_number} as {new_number}"
        )
        return version

    async def update_metadata(self, prompt_id: uuid.UUID, data: PromptUpdate) -> Prompt:
        changes = data.changes()
        async with self.store.transaction():
            if not changes:
                return await self.store.get_prompt(prompt_id)
            prompt = await self.store.update_prompt_metadata(prompt_id, changes)
            await self.store.append_event(
                prompt_id,
                "metadata_updated",
                metadata={"fields": sorted(changes)},
                created_by=data.author,
            )
        return prompt

    async def change_status(self, prompt_id: uuid.UUID, data: StatusChange) -> Prompt:
        async with self.store.transaction():
            previous, new = await self.store.update_prompt_status(prompt_id, data.status)
            await self.store.append_event(
                prompt_id,
                "status_changed",
                metadata={"from": previous, "to": new},
                comment=data.comment,
                created_by=data.author,
            )
            prompt = await self.store.get_prompt(prompt_id)
        logger.info(f"Prompt {prompt_id}: status {previous} -> {new}")
        return prompt

    async def delete_prompt(self, prompt_id: uuid.UUID, hard: bool = True, author: Optional[str] = None) -> None:
        """Hard delete removes the prompt with its versions and events; soft delete archives it."""
        async with self.store.transaction():
            if hard:
                await self.store.delete_prompt(prompt_id, hard=True)
            else:
                previous = (await self.store.get_prompt(prompt_id)).status
                await self.store.delete_prompt(prompt_id, hard=False)
                await self.store.append_event(
                    prompt_id,
                    "status_changed",
                    metadata={"from": previous, "to": "archived", "reason": "deleted"},
                    comment=SOFT_DELETE_COMMENT,
                    created_by=author,
                )
        logger.info(f"Deleted prompt {prompt_id} ({'hard' if hard else 'soft'})")

    @staticmethod
    def _bump(current_number: str, bump_type: str) -> str:
        new_number = semver.bump(current_number, bump_type)
        if new_number is None:
            raise InvalidStateError(f"Current version number {current_number!r} is not valid semver")
        return new_number

    async def _append(self, prompt_id: uuid.UUID, fields: dict, current: PromptVersion) -> PromptVersion:
        try:
            return await self.store.append_version(prompt_id, fields, expected_previous_version_id=current.id)
        except ConflictError:
            logger.warning(
                f"Prompt {prompt_id}: version {fields['version_number']} lost the race "
                f"against a concurrent writer"
            )
            raise
