"""
Authentication service — registration, login and self-service profile logic.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses, so the business logic can be tested without a web server.

Registration flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create the User (ADMIN if the email is in settings.ADMIN_EMAILS) and
     credit the onboarding bonus through update_balance()
  4. Return a JWT token so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Reject inactive/blocked accounts
  4. Return a JWT token

Security notes:
  - Login returns the same error for "wrong password" and "email not found"
    to prevent user enumeration attacks
  - Plaintext passwords and tokens are never logged
"""

import logging

from app.config import settings
from app.database import Database, UserUpdate
from app.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    UnauthorizedError,
)
from app.models.user import User, UserRole
from app.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


async def register(
    db: Database,
    name: str,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Register a new user with the onboarding bonus.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        ConflictError: If the email is already registered.
    """
    if await db.users.find_by_email(email) is not None:
        raise ConflictError(f"Email {email.lower()} is already registered")

    user = User.create(name=name, email=email, hashed_password=hash_password(password))
    if user.email in {e.lower() for e in settings.ADMIN_EMAILS}:
        user.role = UserRole.ADMIN
    if settings.SIGNUP_BONUS_CENTS > 0:
        user.update_balance(settings.SIGNUP_BONUS_CENTS)
    await db.users.save(user)

    logger.info("Registered user %s with %d cents", user.id, user.balance_cents)

    # "sub" (subject) is the standard claim for user identity
    token = create_access_token(data={"sub": user.id})
    return user, token


async def login(
    db: Database,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
        UnauthorizedError: If the account is inactive or blocked.
    """
    user = await db.users.find_by_email(email)

    # Same error for both cases: no user enumeration
    if user is None:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise UnauthorizedError("Account is inactive or blocked")

    token = create_access_token(data={"sub": user.id})
    return user, token


async def update_profile(
    db: Database,
    user_id: str,
    name: str | None = None,
    email: str | None = None,
    password: str | None = None,
) -> User:
    """
    Update the caller's name, email and/or password.

    Raises:
        NotFoundError: If the user no longer exists.
        ConflictError: If the new email belongs to another user.
    """
    async with db.locks.hold(f"user:{user_id}"):
        if email is not None:
            existing = await db.users.find_by_email(email)
            if existing is not None and existing.id != user_id:
                raise ConflictError("Email is already in use by another user")

        changes = UserUpdate(
            name=name,
            email=email,
            hashed_password=hash_password(password) if password else None,
        )
        user = await db.users.update(user_id, changes)

    if user is None:
        raise NotFoundError("User not found")
    return user


async def change_password(
    db: Database,
    user_id: str,
    current_password: str,
    new_password: str,
) -> None:
    """
    Replace the caller's password after verifying the current one.

    Raises:
        NotFoundError: If the user no longer exists.
        UnauthorizedError: If the current password is wrong.
    """
    async with db.locks.hold(f"user:{user_id}"):
        user = await db.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not verify_password(current_password, user.hashed_password):
            raise UnauthorizedError("Current password is incorrect")

        await db.users.update(user_id, UserUpdate(hashed_password=hash_password(new_password)))

    logger.info("Password changed for user %s", user_id)
