"""Shared-secret admin check for mutating routes."""
import secrets
from typing import Optional

from fastapi import Header

from prompt_library.config import settings
from prompt_library.errors import ConfigurationError, UnauthorizedError


async def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    """FastAPI dependency. Fails closed when ADMIN_KEY is not configured."""
    expected = settings.ADMIN_KEY
    if not expected:
        raise ConfigurationError("ADMIN_KEY not configured")
    if not x_admin_key or not secrets.compare_digest(x_admin_key.encode(), expected.encode()):
        raise UnauthorizedError()
