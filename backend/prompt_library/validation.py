"""Boundary validation: turn raw request data into typed, already-checked schemas.

Everything past this point (lifecycle engine, store) trusts its input.
"""
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from prompt_library.errors import ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Location prefixes FastAPI adds that mean nothing to API callers
_LOC_PREFIXES = {"body", "query", "path", "header"}


def first_error_message(errors: Iterable[dict]) -> str:
    """Format the first pydantic/FastAPI error as ``"field: message"``."""
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in _LOC_PREFIXES]
        msg = err.get("msg", "Invalid input")
        # pydantic prefixes custom ValueError messages with "Value error, "
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        return f"{'.'.join(loc)}: {msg}" if loc else msg
    return "Invalid input"


def validate_request(schema: type[SchemaT], data: Any) -> SchemaT:
    """Validate ``data`` against ``schema`` or raise ValidationError naming the first bad field."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(first_error_message(e.errors())) from e
