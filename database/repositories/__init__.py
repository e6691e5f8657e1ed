"""Database repositories package."""
from database.repositories.user import UserRepository
from database.repositories.payment import PaymentRepository
from database.repositories.commission import CommissionRepository
from database.repositories.payout import PayoutRepository
from database.repositories.coupon import CouponRepository, CouponTypeRepository

__all__ = [
    "UserRepository",
    "PaymentRepository",
    "CommissionRepository",
    "PayoutRepository",
    "CouponRepository",
    "CouponTypeRepository",
]
