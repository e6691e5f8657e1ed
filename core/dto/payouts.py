"""Payout DTOs for data validation."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.money import has_at_most_two_places


class PayoutRequestDTO(BaseModel):
    """DTO for an affiliate asking to be paid."""

    amount: Decimal = Field(..., gt=0, description="Requested amount")
    payment_method: Optional[str] = Field(None, max_length=50, description="Defaults to bank transfer")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if not has_at_most_two_places(v):
            raise ValueError("at most two decimal places")
        return v

    @field_validator('payment_method')
    @classmethod
    def validate_payment_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class SettlePayoutDTO(BaseModel):
    """DTO for settling an affiliate's payout request."""

    transaction_id: str = Field(..., min_length=1, max_length=255, description="Bank reference")
    transaction_proof: Optional[str] = Field(None, max_length=2000, description="Receipt URL or note")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('transaction_id')
    @classmethod
    def validate_transaction_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("transaction_id is required")
        return v


class BulkSettleDTO(SettlePayoutDTO):
    """DTO for paying out everything pending for one affiliate."""

    affiliate_id: int = Field(..., gt=0)


class RejectPayoutDTO(BaseModel):
    """DTO for rejecting a payout request."""

    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason is required")
        return v
