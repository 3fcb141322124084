"""
User service — user lookup and administrative user management.

Access rules:
  - get_user: an admin can read any user; a regular user only themself
  - search_users / set_user_status: admin only (enforced by the router's
    require_admin dependency)
"""

import logging

from app.database import Database, UserFilter, UserUpdate
from app.exceptions import ForbiddenError, NotFoundError
from app.models.user import User, UserStatus

logger = logging.getLogger(__name__)


async def get_user(db: Database, user_id: str, actor: User) -> User:
    """
    Raises:
        ForbiddenError: If a non-admin asks for someone else.
        NotFoundError: If the user does not exist.
    """
    if not actor.is_admin and actor.id != user_id:
        raise ForbiddenError("You can only view your own user record")

    user = await db.users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def search_users(
    db: Database,
    email: str | None = None,
    status: UserStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[User], int]:
    """
    [ADMIN ONLY] Filter users by email and/or status, one page at a time.

    Returns:
        Tuple of (users on the requested page, total matching users).
    """
    users = await db.users.find(UserFilter(email=email, status=status))
    users.sort(key=lambda u: u.created_at)
    start = (page - 1) * limit
    return users[start:start + limit], len(users)


async def set_user_status(db: Database, user_id: str, status: UserStatus) -> User:
    """
    [ADMIN ONLY] Activate, deactivate or block a user.

    Raises:
        NotFoundError: If the user does not exist.
    """
    async with db.locks.hold(f"user:{user_id}"):
        user = await db.users.update(user_id, UserUpdate(status=status))

    if user is None:
        raise NotFoundError("User not found")

    logger.info("User %s status set to %s", user_id, user.status.value)
    return user
