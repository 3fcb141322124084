"""
FastAPI dependencies for authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a dependency chain that enforces both authentication and
role-based access control:

  get_current_user (JWT -> active User)
      └── require_admin (User -> User)   [ADMIN role]

Every protected endpoint declares one of these as a parameter. FastAPI
automatically calls the dependency, and if it fails (e.g., invalid token
or wrong role), the request is rejected before the route handler runs.
"""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.config import settings
from app.database import Database, get_db
from app.exceptions import ForbiddenError, UnauthorizedError
from app.models.user import User
from app.security import decode_access_token


# OAuth2PasswordBearer tells FastAPI where to look for the token:
# the "Authorization: Bearer <token>" header. A missing header yields None
# and get_current_user raises UnauthorizedError.
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login",
    auto_error=False,
)


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: Database = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        UnauthorizedError: If the token is missing, expired or invalid, or
            the user no longer exists.
        ForbiddenError: If the user's account is inactive or blocked.
    """
    if not token:
        raise UnauthorizedError("Not authenticated")

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise UnauthorizedError("Could not validate credentials")

    user_id: str | None = payload.get("sub")
    if user_id is None:
        raise UnauthorizedError("Could not validate credentials")

    user = await db.users.find_by_id(user_id)
    if user is None:
        raise UnauthorizedError("Could not validate credentials")

    if not user.is_active:
        raise ForbiddenError("Account is inactive or blocked")

    return user


async def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the ADMIN role.

    Raises:
        ForbiddenError: If the user is not an admin.
    """
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
