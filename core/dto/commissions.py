"""Commission DTOs for data validation."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.money import has_at_most_two_places


class AccrueCommissionDTO(BaseModel):
    """DTO for accruing a commission for a completed payment."""

    payment_id: int = Field(..., gt=0, description="Completed payment")
    affiliate_id: Optional[int] = Field(None, gt=0, description="Defaults to the payment's affiliate")
    sale_amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the payment's final amount")
    rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Percent, defaults to the affiliate's rate")

    @field_validator('sale_amount')
    @classmethod
    def validate_sale_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and not has_at_most_two_places(v):
            raise ValueError("at most two decimal places")
        return v


class CancelCommissionDTO(BaseModel):
    """DTO for cancelling a commission after a refund."""

    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason is required")
        return v
