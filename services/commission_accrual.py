"""Commission accrual - turns completed sales into commissions owed to affiliates."""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AffiliateNotFoundError,
    CommissionNotFoundError,
    CommissionStatusError,
    DuplicateCommissionError,
    PaymentNotFoundError,
    ValidationError,
)
from core.money import to_money
from database.models import Commission, CommissionStatus, PaymentStatus
from database.repositories import (
    CommissionRepository,
    CouponRepository,
    PaymentRepository,
    UserRepository,
)
from database.types import utcnow
from services.base import LedgerService

logger = logging.getLogger(__name__)


class CommissionAccrualService(LedgerService):
    """Creates exactly one commission per completed payment."""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.commission_repo = CommissionRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.user_repo = UserRepository(session)
        self.coupon_repo = CouponRepository(session)

    @staticmethod
    def calculate_commission(sale_amount, rate) -> Decimal:
        """
        Calculate commission amount.

        Args:
            sale_amount: Sale amount in rupees
            rate: Commission percent (10.00 = 10%)

        Returns:
            Commission rounded half-up to paise

        Example:
            999.99 × 12.50% = 125.00
        """
        sale = to_money(sale_amount)
        rate = Decimal(str(rate))
        if sale < 0:
            raise ValidationError("sale_amount", "must not be negative")
        if rate < 0 or rate > 100:
            raise ValidationError("rate", "must be between 0 and 100")
        return to_money(sale * rate / Decimal(100))

    async def accrue_commission(
        self,
        payment_id: int,
        affiliate_id: int,
        sale_amount=None,
        rate=None
    ) -> Commission:
        """
        Record the commission owed for a completed payment.

        The rate is the affiliate's current rate unless given explicitly, and
        is frozen on the commission so later rate changes never alter it.

        Raises:
            PaymentNotFoundError: Unknown payment
            AffiliateNotFoundError: Unknown user or user is not an affiliate
            ValidationError: Payment not completed, or no rate available
            DuplicateCommissionError: Payment already has a commission
        """
        async with self.transaction(
            "accrue_commission",
            on_integrity_error=lambda e: DuplicateCommissionError(payment_id),
            payment_id=payment_id,
            affiliate_id=affiliate_id
        ):
            payment = await self.payment_repo.get_for_update(payment_id)
            if not payment:
                raise PaymentNotFoundError(payment_id)

            if payment.status != PaymentStatus.COMPLETED.value:
                raise ValidationError(
                    "payment_id",
                    f"payment is {payment.status}, only COMPLETED payments earn commission"
                )

            if await self.commission_repo.get_by_payment_id(payment_id):
                raise DuplicateCommissionError(payment_id)

            affiliate = await self.user_repo.get_affiliate(affiliate_id)
            if not affiliate:
                raise AffiliateNotFoundError(affiliate_id)

            if payment.affiliate_id is not None and payment.affiliate_id != affiliate_id:
                raise ValidationError("affiliate_id", "payment is credited to another affiliate")

            sale = to_money(sale_amount) if sale_amount is not None else to_money(payment.final_amount)
            if rate is None:
                rate = affiliate.commission_rate
            if rate is None:
                raise ValidationError("rate", "affiliate has no commission rate")
            rate = Decimal(str(rate))

            amount = self.calculate_commission(sale, rate)

            commission = Commission(
                affiliate_id=affiliate_id,
                payment_id=payment.id,
                student_id=payment.user_id,
                course_id=payment.course_id,
                coupon_id=payment.coupon_id,
                sale_amount=sale,
                commission_rate=rate,
                commission_amount=amount,
                status=CommissionStatus.PENDING.value,
            )
            self.commission_repo.add(commission)

            payment.affiliate_id = affiliate_id
            payment.commission_amount = amount
            payment.commission_paid = False
            await self.commission_repo.flush()

        logger.info(
            f"Commission accrued: payment={payment_id}, affiliate={affiliate_id}, "
            f"amount={amount} ({rate}% of {sale})",
            extra={"payment_id": payment_id, "affiliate_id": affiliate_id, "commission_id": commission.id}
        )
        return commission

    async def accrue_for_payment(self, payment_id: int) -> Commission:
        """
        Accrue using the affiliate the payment is credited to.

        Falls back to the creator of the coupon used for the payment.
        """
        payment = await self.payment_repo.get_by_id(payment_id)
        if not payment:
            raise PaymentNotFoundError(payment_id)

        affiliate_id = payment.affiliate_id
        if affiliate_id is None and payment.coupon_id is not None:
            coupon = await self.coupon_repo.get_by_id(payment.coupon_id)
            if coupon:
                affiliate_id = coupon.created_by_affiliate_id

        if affiliate_id is None:
            raise ValidationError("payment_id", "payment has no affiliate or affiliate coupon")

        return await self.accrue_commission(payment_id, affiliate_id)

    async def cancel_commission(self, payment_id: int, reason: str) -> Commission:
        """
        Cancel the commission of a refunded payment.

        Only PENDING commissions can be cancelled; cancelling twice is a no-op.

        Raises:
            CommissionNotFoundError: Payment has no commission
            CommissionStatusError: Commission was already paid out
        """
        async with self.transaction("cancel_commission", payment_id=payment_id):
            commission = await self.commission_repo.get_by_payment_id(payment_id)
            if not commission:
                raise CommissionNotFoundError(message=f"No commission for payment {payment_id}")

            # Pending balance shrinks: affiliate row first, as every payout path does
            affiliate = await self.user_repo.get_for_update(commission.affiliate_id)
            commission = await self.commission_repo.get_by_payment_id(payment_id, lock=True)

            if commission.status == CommissionStatus.CANCELLED.value:
                return commission

            if commission.status != CommissionStatus.PENDING.value:
                raise CommissionStatusError(commission.status, CommissionStatus.CANCELLED.value)

            if affiliate:
                affiliate.last_payout_activity_at = utcnow()

            commission.status = CommissionStatus.CANCELLED.value
            commission.notes = reason
            await self.commission_repo.flush()

        logger.info(
            f"Commission cancelled: payment={payment_id}, commission={commission.id}, reason={reason}",
            extra={"payment_id": payment_id, "commission_id": commission.id, "affiliate_id": commission.affiliate_id}
        )
        return commission
