"""
Data Transfer Objects (DTOs) for data validation.

This package contains Pydantic models for validating request bodies.
"""

from core.dto.commissions import (
    AccrueCommissionDTO,
    CancelCommissionDTO,
)
from core.dto.payouts import (
    PayoutRequestDTO,
    SettlePayoutDTO,
    BulkSettleDTO,
    RejectPayoutDTO,
)
from core.dto.coupons import (
    GenerateAffiliateCodeDTO,
    CreateCouponTypeDTO,
    CouponPreviewDTO,
    CreateCouponDTO,
)

__all__ = [
    'AccrueCommissionDTO',
    'CancelCommissionDTO',
    'PayoutRequestDTO',
    'SettlePayoutDTO',
    'BulkSettleDTO',
    'RejectPayoutDTO',
    'GenerateAffiliateCodeDTO',
    'CreateCouponTypeDTO',
    'CouponPreviewDTO',
    'CreateCouponDTO',
]
