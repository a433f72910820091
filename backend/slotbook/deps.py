from typing import Any, AsyncIterator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import Select, select
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .models import User, UserRole
from .utils.auth import TokenError, decode_access_token, parse_bearer


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _lookup(session: AsyncSession, stmt: Select[Any]) -> Any:
    # Ends the implicit read transaction so handlers can open their own with session.begin().
    try:
        return await session.scalar(stmt)
    except ProgrammingError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="user store unavailable") from exc
    finally:
        await session.rollback()


async def get_current_user_id(
    authorization: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> int:
    settings = get_settings()
    try:
        token = parse_bearer(authorization)
        user_id = decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc

    if await _lookup(session, select(User.id).where(User.id == user_id)) is None:
        raise _unauthorized("user not found")
    return user_id


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> int:
    role = await _lookup(session, select(User.role).where(User.id == user_id))
    if role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin role required")
    return user_id
