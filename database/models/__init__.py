"""Database models package."""
from database.models.user import User, UserRole, REQUIRED_BANK_FIELDS
from database.models.course import Course
from database.models.coupon import Coupon, CouponType, DiscountType
from database.models.payment import Payment, PaymentStatus
from database.models.payout import Payout, PayoutStatus, OPEN_PAYOUT_STATUSES
from database.models.commission import Commission, CommissionStatus

__all__ = [
    "User",
    "UserRole",
    "REQUIRED_BANK_FIELDS",
    "Course",
    "Coupon",
    "CouponType",
    "DiscountType",
    "Payment",
    "PaymentStatus",
    "Payout",
    "PayoutStatus",
    "OPEN_PAYOUT_STATUSES",
    "Commission",
    "CommissionStatus",
]
