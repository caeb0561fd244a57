"""Resolve the calling member from the identity forwarded by the gateway."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ecoquest_api.db.session import get_session
from ecoquest_api.models.user import User


SESSION_USER_HEADER = "X-Session-User"


def _parse_session_user(raw: str | None) -> UUID:
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    try:
        return UUID(raw)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error


async def require_member_session(
    session_user: str | None = Header(None, alias=SESSION_USER_HEADER),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Load the member whose id the gateway placed in ``X-Session-User``.

    Balances, attempts and redemptions are always scoped to this user; the
    path never carries a user id for member operations.
    """

    user = await db.get(User, _parse_session_user(session_user))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session user not found",
        )
    return user
