"""Import all models so SQLAlchemy metadata knows about them."""
from prompt_library.models.base import Base
from prompt_library.models.prompt import Prompt, PromptTag, PROMPT_STATUSES
from prompt_library.models.version import PromptVersion
from prompt_library.models.event import PromptEvent, EVENT_TYPES

__all__ = [
    "Base",
    "Prompt", "PromptTag", "PromptVersion", "PromptEvent",
    "PROMPT_STATUSES", "EVENT_TYPES",
]
