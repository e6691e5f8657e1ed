"""Affiliate code and coupon DTOs for data validation."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.money import has_at_most_two_places
from database.models import DiscountType


class GenerateAffiliateCodeDTO(BaseModel):
    """DTO for previewing an affiliate code from a name."""

    name: str = Field(..., min_length=1, max_length=255)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not any(ch.isalpha() for ch in v):
            raise ValueError("name must contain letters")
        return v


class CreateCouponTypeDTO(BaseModel):
    """DTO for creating a coupon type."""

    type_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    discount_type: DiscountType
    max_discount_limit: Decimal = Field(..., gt=0)

    @field_validator('type_name')
    @classmethod
    def validate_type_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('max_discount_limit')
    @classmethod
    def validate_limit(cls, v: Decimal) -> Decimal:
        if not has_at_most_two_places(v):
            raise ValueError("at most two decimal places")
        return v


class CouponPreviewDTO(BaseModel):
    """DTO for previewing a coupon code without creating it."""

    coupon_type_id: int = Field(..., gt=0)
    discount_value: Decimal = Field(..., gt=0)

    @field_validator('discount_value')
    @classmethod
    def validate_discount_value(cls, v: Decimal) -> Decimal:
        if not has_at_most_two_places(v):
            raise ValueError("at most two decimal places")
        return v


class CreateCouponDTO(CouponPreviewDTO):
    """DTO for an affiliate creating a coupon."""

    max_usage_count: Optional[int] = Field(None, gt=0, description="NULL = unlimited")
    valid_until: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=1000)
