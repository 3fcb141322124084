"""
Users router — user lookup and admin user management.

Endpoints:
  GET   /api/users/search            — [Admin] Search users by email/status
  GET   /api/users/{user_id}         — Get a user (admin, or the user themself)
  PATCH /api/users/{user_id}/status  — [Admin] Activate, deactivate or block

/search is declared before /{user_id} so the literal path wins.
"""

from fastapi import APIRouter, Depends, Query

from app.database import Database, get_db
from app.dependencies import get_current_user, require_admin
from app.models.user import User, UserStatus
from app.schemas.user import (
    Pagination,
    UserResponse,
    UserSearchResponse,
    UserStatusUpdateRequest,
)
from app.services import user_service

router = APIRouter()


@router.get(
    "/search",
    response_model=UserSearchResponse,
    summary="[Admin] Search users",
)
async def search_users(
    email: str | None = Query(None, description="Exact email (case-insensitive)"),
    status: UserStatus | None = Query(None, description="active, inactive or blocked"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Database = Depends(get_db),
):
    users, total = await user_service.search_users(
        db, email=email, status=status, page=page, limit=limit
    )
    return UserSearchResponse(
        users=[UserResponse.from_user(u) for u in users],
        pagination=Pagination.build(page, limit, total),
    )


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get a user",
)
async def get_user(
    user_id: str,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    found = await user_service.get_user(db, user_id, actor=user)
    return UserResponse.from_user(found)


@router.patch(
    "/{user_id}/status",
    response_model=UserResponse,
    summary="[Admin] Change a user's status",
)
async def set_user_status(
    user_id: str,
    request: UserStatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: Database = Depends(get_db),
):
    """
    Blocked or inactive users can no longer authenticate and cannot be
    chosen as the receiver of a new transaction.
    """
    updated = await user_service.set_user_status(db, user_id, request.status)
    return UserResponse.from_user(updated)
