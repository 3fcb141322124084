"""
Pydantic schemas for Transaction endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050).

The authorization code is part of TransactionWithCodeResponse only, which
is returned to the sender by the create and authorize endpoints. Every
other read of a transaction uses TransactionResponse, which omits it.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.models.transaction import TransactionStatus, TransactionType
from app.schemas.user import Pagination, UserResponse


class TransactionCreateRequest(BaseModel):
    """Request body for POST /api/transactions."""
    model_config = {"str_strip_whitespace": True}

    receiver_user_id: str = Field(min_length=1)
    amount_cents: int = Field(gt=0, description="Amount in cents (must be positive)")
    description: str = Field(min_length=3, max_length=255)
    type: TransactionType = TransactionType.PAYMENT


class AuthorizeRequest(BaseModel):
    """Request body for POST /api/transactions/{id}/authorize."""
    model_config = {"str_strip_whitespace": True}

    authorization_code: str | None = None

    @field_validator("authorization_code", mode="before")
    @classmethod
    def blank_code_is_absent(cls, value):
        # An empty or whitespace-only code counts as not supplied
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: str
    sender_user_id: str
    receiver_user_id: str
    amount_cents: int
    description: str
    type: TransactionType
    status: TransactionStatus
    is_authorized: bool
    failure_reason: str | None
    related_transaction_id: str | None
    created_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class TransactionWithCodeResponse(TransactionResponse):
    """Transaction as returned to its sender at creation/authorization time."""
    authorization_code: str


class OtherParty(BaseModel):
    id: str
    name: str
    email: str


class TransactionHistoryItem(TransactionResponse):
    role: Literal["sender", "receiver"]
    other_party: OtherParty | None


class TransactionHistoryResponse(BaseModel):
    transactions: list[TransactionHistoryItem]
    pagination: Pagination


class TransactionDetailResponse(TransactionResponse):
    sender: UserResponse | None
    receiver: UserResponse | None
    user_role: Literal["sender", "receiver"]


class ProcessResponse(BaseModel):
    """Response body for a successfully processed transaction."""
    transaction: TransactionResponse
    sender_balance_cents: int
    receiver_balance_cents: int


class RefundResponse(BaseModel):
    transaction: TransactionResponse
    refund_transaction: TransactionResponse


class AuthorizationStatusResponse(BaseModel):
    transaction_id: str
    is_authorized: bool
    status: TransactionStatus
