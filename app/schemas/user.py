"""
Pydantic schemas for User-related responses and admin requests.

These schemas control what user data is exposed through the API.
Notice that hashed_password is NEVER included in any response schema —
this is a critical security boundary.
"""

from datetime import datetime

from pydantic import BaseModel

from app.models.user import User, UserRole, UserStatus


class UserResponse(BaseModel):
    """Public representation of a User (never includes password hash)."""
    id: str
    name: str
    email: str
    balance_cents: int
    status: UserStatus
    role: UserRole
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls.model_validate(user.to_safe_dict())


class BalanceResponse(BaseModel):
    balance_cents: int
    currency: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit,
            has_more=page * limit < total,
        )


class UserSearchResponse(BaseModel):
    users: list[UserResponse]
    pagination: Pagination


class UserStatusUpdateRequest(BaseModel):
    """Request body for PATCH /api/users/{user_id}/status."""
    status: UserStatus
