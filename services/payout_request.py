"""Payout requests - an affiliate asks to be paid part of their balance."""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from core.context import CallerContext
from core.exceptions import (
    AffiliateNotFoundError,
    InsufficientBalanceError,
    MissingBankDetailsError,
    ValidationError,
)
from core.money import ZERO, to_money
from database.models import Payout, PayoutStatus
from database.repositories import PayoutRepository, UserRepository
from database.types import utcnow
from services.base import LedgerService
from services.payout_aggregator import PayoutAggregator

logger = logging.getLogger(__name__)


class PayoutRequestService(LedgerService):
    """
    Affiliate-initiated payout requests.

    A request does not bind commissions; it only reserves its amount out of
    the pending balance until an admin settles or rejects it.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.payout_repo = PayoutRepository(session)
        self.aggregator = PayoutAggregator(session)

    async def request_payout(
        self,
        caller: CallerContext,
        amount,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Payout:
        """
        Create a PENDING payout for the calling affiliate.

        Checked under the affiliate's row lock:
        - amount is positive
        - bank details are complete
        - amount fits the available balance (pending minus open requests)

        Raises:
            ValidationError: Non-positive amount
            MissingBankDetailsError: Bank details incomplete
            InsufficientBalanceError: Amount exceeds the available balance
        """
        caller.require_affiliate()
        affiliate_id = caller.actor_id

        try:
            amount = to_money(amount)
        except ValueError:
            raise ValidationError("amount", "must be a number") from None
        if amount <= ZERO:
            raise ValidationError("amount", "must be greater than 0")

        async with self.transaction(
            "request_payout",
            affiliate_id=affiliate_id,
            actor_id=caller.actor_id
        ):
            affiliate = await self.user_repo.get_affiliate(affiliate_id, lock=True)
            if not affiliate:
                raise AffiliateNotFoundError(affiliate_id)

            missing = affiliate.missing_bank_fields
            if missing:
                raise MissingBankDetailsError(missing)

            pending, reserved = await self.aggregator.balance_snapshot(affiliate_id)
            available = max(ZERO, pending - reserved)
            if amount > available:
                raise InsufficientBalanceError(amount, available)

            payout = Payout(
                affiliate_id=affiliate_id,
                amount=amount,
                requested_amount=amount,
                status=PayoutStatus.PENDING.value,
                payment_method=payment_method or settings.default_payment_method,
                bank_details=affiliate.bank_details_snapshot(),
                notes=notes,
                requested_at=utcnow(),
            )
            self.payout_repo.add(payout)

            affiliate.last_payout_activity_at = utcnow()
            await self.payout_repo.flush()

        logger.info(
            f"Payout requested: payout={payout.id}, affiliate={affiliate_id}, "
            f"amount={amount}, available_before={available}",
            extra={"payout_id": payout.id, "affiliate_id": affiliate_id, "actor_id": caller.actor_id}
        )
        return payout

    async def list_my_payouts(self, caller: CallerContext, limit: Optional[int] = None) -> List[Payout]:
        """Payout history of the calling affiliate, newest first."""
        caller.require_affiliate()
        return await self.payout_repo.list_for_affiliate(caller.actor_id, limit)

    async def get_balance(self, caller: CallerContext) -> dict[str, Decimal]:
        """Pending, reserved and available balance of the calling affiliate."""
        caller.require_affiliate()
        if not await self.user_repo.get_affiliate(caller.actor_id):
            raise AffiliateNotFoundError(caller.actor_id)
        pending, reserved = await self.aggregator.balance_snapshot(caller.actor_id)
        return {
            'pending': pending,
            'reserved': reserved,
            'available': max(ZERO, pending - reserved),
        }
