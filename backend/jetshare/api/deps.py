"""
Shared API dependencies.
"""
from typing import Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db.init_db import AsyncSessionLocal
from ..exceptions import UnauthorizedError


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Caller identity from the X-User-Id header set by the authenticating proxy.

    Raises:
        UnauthorizedError: Header missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise UnauthorizedError()
    return x_user_id.strip()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessionmaker for work outside the request's session (agent tools)."""
    return AsyncSessionLocal
