"""
Authentication dependencies for the camp registration API

Validates bearer JWT access tokens and enforces role guards.
"""
from fastapi import Header, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging
import jwt

from app.db.connection import get_db_session
from app.db.models import User, UserRole
from app.services.user_service import UserService
from app.config import settings

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db_session)
) -> User:
    """
    Resolve the user behind a bearer access token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired, or
            the user no longer exists
    """
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning("Request rejected: Missing or invalid Authorization header")
        raise _unauthorized("Missing access token. Use 'Authorization: Bearer <token>'.")

    token = authorization[7:].strip()  # Remove "Bearer " prefix
    if not token:
        raise _unauthorized("Empty access token. Please login again.")

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.warning("Request rejected: Token expired")
        raise _unauthorized("Session expired. Please login again.")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Request rejected: Invalid token - {str(e)}")
        raise _unauthorized("Invalid access token. Please login again.")

    if payload.get("type") != "access":
        logger.warning(f"Request rejected: Invalid token type '{payload.get('type')}'")
        raise _unauthorized("Invalid token type. Please login again.")

    user_id = payload.get("sub")
    user = await UserService.get_by_id(db, user_id) if user_id else None
    if not user:
        logger.warning(f"Request rejected: Unknown user in token ({user_id})")
        raise _unauthorized("User not found. Please login again.")

    return user


def require_roles(*roles: UserRole):
    """
    Dependency factory allowing only the given roles.

    Usage:
        @router.get("/admin-only")
        async def endpoint(user: User = Depends(require_roles(UserRole.ADMIN))):
            ...
    """
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning(f"Permission denied: {user.role.value} user {user.id} needs one of "
                           f"{', '.join(role.value for role in roles)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return user

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.ADMIN, UserRole.STAFF)


def ensure_self_or_roles(current_user: User, user_id: str, *roles: UserRole) -> None:
    """403 unless the caller is user_id or holds one of roles."""
    if current_user.id != user_id and current_user.role not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own records"
        )
