"""
Authentication router — registration, login and self-service profile.

Endpoints:
  POST /api/auth/register         — Register a new user and get a token
  POST /api/auth/login            — Authenticate and get a token
  GET  /api/auth/profile          — Current user's profile
  PUT  /api/auth/profile          — Update name, email and/or password
  POST /api/auth/change-password  — Change password (requires the current one)
  GET  /api/auth/balance          — Current user's balance

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any store operation and never logged.
  - JWT tokens appear only in response bodies and are never logged.
"""

from fastapi import APIRouter, Depends, status

from app.config import settings
from app.database import Database, get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
)
from app.schemas.user import BalanceResponse, UserResponse
from app.services import auth_service

router = APIRouter()


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    request: RegisterRequest,
    db: Database = Depends(get_db),
):
    """
    Register a new user. New users start with the onboarding bonus
    (SIGNUP_BONUS_CENTS) and receive a JWT so they are logged in at once.

    - **name**: 2-50 characters
    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters with lowercase, uppercase and a digit
    """
    user, token = await auth_service.register(
        db=db,
        name=request.name,
        email=request.email,
        password=request.password,
    )
    return AuthResponse(user=UserResponse.from_user(user), token=token)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: LoginRequest,
    db: Database = Depends(get_db),
):
    """
    Authenticate with email and password.

    Returns a JWT bearer token that must be included in the Authorization
    header for all subsequent requests:

        Authorization: Bearer <token>
    """
    user, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )
    return AuthResponse(user=UserResponse.from_user(user), token=token)


@router.get(
    "/profile",
    response_model=UserResponse,
    summary="Get current user's profile",
)
async def get_profile(user: User = Depends(get_current_user)):
    return UserResponse.from_user(user)


@router.put(
    "/profile",
    response_model=UserResponse,
    summary="Update current user's profile",
)
async def update_profile(
    updates: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Only provided fields are updated — omitted fields remain unchanged."""
    updated = await auth_service.update_profile(
        db=db,
        user_id=user.id,
        name=updates.name,
        email=updates.email,
        password=updates.password,
    )
    return UserResponse.from_user(updated)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
)
async def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    await auth_service.change_password(
        db=db,
        user_id=user.id,
        current_password=request.current_password,
        new_password=request.new_password,
    )
    return MessageResponse(message="Password changed successfully")


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get current user's balance",
)
async def get_balance(user: User = Depends(get_current_user)):
    return BalanceResponse(balance_cents=user.balance_cents, currency=settings.CURRENCY)
