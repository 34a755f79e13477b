"""Bearer-token helpers for the HTTP surface.

Routes receive the caller's user id explicitly from ``get_current_user_id``
and pass it down to the services; nothing below the routers reads request
context.
"""
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from bandscore import crud, models
from bandscore.config import get_settings
from bandscore.database import get_db
from bandscore.errors import Forbidden, Unauthenticated

security = HTTPBearer(auto_error=False)


def create_access_token(user_id: str) -> str:
    s = get_settings()
    return jwt.encode({"sub": user_id}, s.JWT_SECRET, algorithm=s.JWT_ALGORITHM)


def verify_token(token: str) -> str:
    """Decode a bearer token and return its subject (the user id)."""
    s = get_settings()
    try:
        payload = jwt.decode(token, s.JWT_SECRET, algorithms=[s.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")
    sub = payload.get("sub")
    if not sub:
        raise Unauthenticated("Invalid token")
    return str(sub)


def get_current_user_id(creds: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> str:
    if not creds:
        raise Unauthenticated("Missing credentials")
    return verify_token(creds.credentials)


async def require_admin(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> str:
    user = await crud.get_user_by_id(db, user_id)
    if not user or user.role != models.UserRole.ADMIN:
        raise Forbidden("Admin access required")
    return user_id


async def ensure_self_or_admin(db: AsyncSession, current_user_id: str, target_user_id: str) -> None:
    if current_user_id == target_user_id:
        return
    user = await crud.get_user_by_id(db, current_user_id)
    if not user or user.role != models.UserRole.ADMIN:
        raise Forbidden("You can only view your own attempts")
