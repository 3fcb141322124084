"""
Pydantic schemas for authentication endpoints (register, login, profile).

Pydantic validates incoming data automatically — if a required field is
missing or malformed, the request is rejected with a 400 before our code
even runs.
"""

import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from app.schemas.user import UserResponse

_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def _check_password_strength(value: str) -> str:
    if not _PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain a lowercase letter, an uppercase letter and a digit"
        )
    return value


# At least 8 characters with a lowercase letter, an uppercase letter and a digit
StrongPassword = Annotated[
    str, Field(min_length=8), AfterValidator(_check_password_strength)
]
Name = Annotated[str, Field(min_length=2, max_length=50)]


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""
    model_config = {"str_strip_whitespace": True}

    name: Name
    email: EmailStr
    password: StrongPassword


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""
    email: EmailStr
    password: str = Field(min_length=1)


class AuthResponse(BaseModel):
    """Response body for register/login — safe user view + JWT."""
    user: UserResponse
    token: str
    token_type: str = "bearer"


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /api/auth/profile. Omitted fields stay unchanged."""
    model_config = {"str_strip_whitespace": True}

    name: Name | None = None
    email: EmailStr | None = None
    password: StrongPassword | None = None


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/auth/change-password."""
    current_password: str = Field(min_length=1)
    new_password: StrongPassword


class MessageResponse(BaseModel):
    message: str
