"""
Payout settlement - closes payouts by binding commissions to them.

Every entry point runs as one transaction: the payout row, each bound
commission and each source payment's commission_paid flag are committed
together or not at all.
"""
import logging
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from core.context import CallerContext
from core.exceptions import (
    AffiliateNotFoundError,
    ConcurrentModificationError,
    InsufficientFundsError,
    NoPendingCommissionsError,
    PayoutNotFoundError,
    PayoutStatusError,
    ValidationError,
)
from core.money import ZERO, to_money
from database.models import Commission, CommissionStatus, Payout, PayoutStatus, User
from database.repositories import (
    CommissionRepository,
    PaymentRepository,
    PayoutRepository,
    UserRepository,
)
from database.types import utcnow
from services.base import LedgerService
from services.notifications import PayoutNotifier, send_in_background

logger = logging.getLogger(__name__)


def select_covering_commissions(
    commissions: Sequence[Commission],
    required: Decimal
) -> Tuple[List[Commission], Decimal]:
    """
    Take commissions in the given (oldest first) order until their sum
    reaches `required`. Commissions are never split, so the sum may exceed it.
    """
    selected: List[Commission] = []
    total = ZERO
    for commission in commissions:
        if total >= required:
            break
        selected.append(commission)
        total += commission.commission_amount
    return selected, to_money(total)


class SettlementPlan(NamedTuple):
    """What settling one request would bind."""
    required: Decimal
    commissions: List[Commission]
    total: Decimal
    pending_total: Decimal
    reserved_by_others: Decimal

    @property
    def covered(self) -> bool:
        return self.total >= self.required

    @property
    def free(self) -> Decimal:
        """Pending amount not held by the affiliate's other open requests."""
        return max(ZERO, self.pending_total - self.reserved_by_others)

    @property
    def leaves_reservations(self) -> bool:
        return self.total <= self.free


class PayoutSettlementService(LedgerService):
    """Admin-side payout lifecycle: approve, settle, bulk settle, reject."""

    SUPERSEDED_REASON = "Superseded by bulk payout #{payout_id}"

    def __init__(self, session: AsyncSession, notifier: Optional[PayoutNotifier] = None):
        super().__init__(session)
        self.notifier = notifier
        self.user_repo = UserRepository(session)
        self.payout_repo = PayoutRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.payment_repo = PaymentRepository(session)

    async def _bind_commissions(self, payout: Payout, commissions: Sequence[Commission]) -> None:
        """Mark commissions PAID under the payout and flag their payments."""
        paid_at = utcnow()
        for commission in commissions:
            commission.status = CommissionStatus.PAID.value
            commission.payout_id = payout.id
            commission.paid_at = paid_at

        await self.payment_repo.mark_commission_paid(c.payment_id for c in commissions)
        await self.commission_repo.flush()

        bound = to_money(await self.commission_repo.sum_for_payout(payout.id))
        if bound != to_money(payout.amount):
            # Another settlement bound commissions to this payout meanwhile
            raise ConcurrentModificationError(
                f"Payout {payout.id} amount {payout.amount} does not match bound commissions {bound}"
            )

    async def _lock_affiliate(self, affiliate_id: int) -> User:
        affiliate = await self.user_repo.get_affiliate(affiliate_id, lock=True)
        if not affiliate:
            raise AffiliateNotFoundError(affiliate_id)
        affiliate.last_payout_activity_at = utcnow()
        return affiliate

    async def _lock_payout(self, payout_id: int) -> Tuple[Payout, Optional[User]]:
        """
        Lock the payout's affiliate, then the payout itself.

        Money operations always take the affiliate row first, so they queue
        on it instead of deadlocking on payout or commission rows.
        """
        payout = await self.payout_repo.get_by_id(payout_id)
        if not payout:
            raise PayoutNotFoundError(payout_id)
        # affiliate_id never changes, the unlocked read is enough to find it
        affiliate = await self.user_repo.get_for_update(payout.affiliate_id)
        return await self.payout_repo.get_for_update(payout_id), affiliate

    async def bulk_settle(
        self,
        caller: CallerContext,
        affiliate_id: int,
        transaction_id: str,
        transaction_proof: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Payout:
        """
        Pay out everything an affiliate has pending as one COMPLETED payout.

        Open requests of the affiliate can no longer be covered afterwards,
        so they are rejected as superseded in the same transaction.

        Raises:
            AffiliateNotFoundError: Unknown affiliate
            NoPendingCommissionsError: Nothing to settle
        """
        caller.require_admin()
        superseded: List[Payout] = []

        async with self.transaction(
            "bulk_settle",
            affiliate_id=affiliate_id,
            actor_id=caller.actor_id
        ):
            affiliate = await self._lock_affiliate(affiliate_id)

            commissions = await self.commission_repo.get_pending_for_affiliate(affiliate_id, lock=True)
            if not commissions:
                raise NoPendingCommissionsError(affiliate_id)

            total = to_money(sum(c.commission_amount for c in commissions))
            now = utcnow()

            payout = Payout(
                affiliate_id=affiliate_id,
                amount=total,
                requested_amount=None,
                status=PayoutStatus.COMPLETED.value,
                payment_method=settings.default_payment_method,
                transaction_id=transaction_id,
                transaction_proof=transaction_proof,
                bank_details=affiliate.bank_details_snapshot(),
                notes=notes,
                requested_at=now,
                approved_at=now,
                processed_at=now,
                processed_by=caller.actor_id,
            )
            self.payout_repo.add(payout)
            await self.payout_repo.flush()

            await self._bind_commissions(payout, commissions)

            for open_payout in await self.payout_repo.list_open_for_affiliate(affiliate_id):
                open_payout.status = PayoutStatus.REJECTED.value
                open_payout.rejection_reason = self.SUPERSEDED_REASON.format(payout_id=payout.id)
                open_payout.processed_at = now
                open_payout.processed_by = caller.actor_id
                superseded.append(open_payout)
            await self.payout_repo.flush()

        logger.info(
            f"Bulk payout completed: payout={payout.id}, affiliate={affiliate_id}, "
            f"amount={total}, commissions={len(commissions)}, superseded={[p.id for p in superseded]}",
            extra={"payout_id": payout.id, "affiliate_id": affiliate_id, "actor_id": caller.actor_id}
        )

        if self.notifier:
            send_in_background(self.notifier.payout_completed(affiliate, payout))
        return payout

    async def _plan_settlement(self, payout: Payout, lock: bool = False) -> SettlementPlan:
        """Commissions that would cover the payout, next to what other open requests hold."""
        required = to_money(payout.requested_amount or payout.amount)
        pending = await self.commission_repo.get_pending_for_affiliate(payout.affiliate_id, lock=lock)
        selected, total = select_covering_commissions(pending, required)
        reserved = await self.payout_repo.sum_reserved_for_affiliate(
            payout.affiliate_id,
            exclude_payout_id=payout.id
        )
        return SettlementPlan(
            required=required,
            commissions=selected,
            total=total,
            pending_total=to_money(sum((c.commission_amount for c in pending), ZERO)),
            reserved_by_others=to_money(reserved),
        )

    async def settle_requested_payout(
        self,
        caller: CallerContext,
        payout_id: int,
        transaction_id: str,
        transaction_proof: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Payout:
        """
        Settle a PENDING or PROCESSING payout request.

        Pending commissions are bound oldest first until they cover the
        requested amount; the payout's amount becomes their exact sum.
        The bound sum must leave enough pending for the affiliate's other
        open requests, so settling one request never strands another.
        Repeating a completed settlement with the same transaction id
        returns the payout unchanged.

        Raises:
            PayoutNotFoundError: Unknown payout
            PayoutStatusError: Payout already closed
            InsufficientFundsError: Pending commissions do not cover the
                request, or covering it would bind amounts reserved by
                other open requests
        """
        caller.require_admin()

        async with self.transaction(
            "settle_requested_payout",
            payout_id=payout_id,
            actor_id=caller.actor_id
        ):
            payout, affiliate = await self._lock_payout(payout_id)

            if (
                payout.status == PayoutStatus.COMPLETED.value
                and payout.transaction_id == transaction_id
            ):
                logger.info(
                    f"Payout {payout_id} already settled with transaction {transaction_id}",
                    extra={"payout_id": payout_id, "actor_id": caller.actor_id}
                )
                return payout

            if not payout.is_open:
                raise PayoutStatusError(payout.status, PayoutStatus.COMPLETED.value)
            if not affiliate:
                raise AffiliateNotFoundError(payout.affiliate_id)
            affiliate.last_payout_activity_at = utcnow()

            plan = await self._plan_settlement(payout, lock=True)
            if not plan.covered:
                raise InsufficientFundsError(plan.required, plan.total)
            if not plan.leaves_reservations:
                raise InsufficientFundsError(plan.total, plan.free, plan.reserved_by_others)

            now = utcnow()
            payout.amount = plan.total
            payout.status = PayoutStatus.COMPLETED.value
            payout.transaction_id = transaction_id
            payout.transaction_proof = transaction_proof
            if notes:
                payout.notes = notes
            payout.approved_at = payout.approved_at or now
            payout.processed_at = now
            payout.processed_by = caller.actor_id
            await self.payout_repo.flush()

            await self._bind_commissions(payout, plan.commissions)

        logger.info(
            f"Payout settled: payout={payout.id}, affiliate={payout.affiliate_id}, "
            f"requested={plan.required}, amount={plan.total}, "
            f"commissions={[c.id for c in plan.commissions]}",
            extra={"payout_id": payout.id, "affiliate_id": payout.affiliate_id, "actor_id": caller.actor_id}
        )

        if self.notifier:
            send_in_background(self.notifier.payout_completed(affiliate, payout))
        return payout

    async def approve_payout(self, caller: CallerContext, payout_id: int) -> Payout:
        """Move a PENDING payout to PROCESSING."""
        caller.require_admin()

        async with self.transaction("approve_payout", payout_id=payout_id, actor_id=caller.actor_id):
            payout, affiliate = await self._lock_payout(payout_id)
            if payout.status != PayoutStatus.PENDING.value:
                raise PayoutStatusError(payout.status, PayoutStatus.PROCESSING.value)

            if affiliate:
                affiliate.last_payout_activity_at = utcnow()
            payout.status = PayoutStatus.PROCESSING.value
            payout.approved_at = utcnow()
            payout.processed_by = caller.actor_id
            await self.payout_repo.flush()

        logger.info(
            f"Payout approved: payout={payout_id}, admin={caller.actor_id}",
            extra={"payout_id": payout_id, "actor_id": caller.actor_id}
        )
        return payout

    async def reject_payout(self, caller: CallerContext, payout_id: int, reason: str) -> Payout:
        """
        Reject an open payout request.

        Commissions are not touched and stay PENDING for a later payout.

        Raises:
            ValidationError: Empty reason
            PayoutNotFoundError: Unknown payout
            PayoutStatusError: Payout already closed
        """
        caller.require_admin()
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "rejection reason is required")

        async with self.transaction("reject_payout", payout_id=payout_id, actor_id=caller.actor_id):
            payout, affiliate = await self._lock_payout(payout_id)
            if not payout.is_open:
                raise PayoutStatusError(payout.status, PayoutStatus.REJECTED.value)

            if affiliate:
                affiliate.last_payout_activity_at = utcnow()

            payout.status = PayoutStatus.REJECTED.value
            payout.rejection_reason = reason
            payout.processed_at = utcnow()
            payout.processed_by = caller.actor_id
            await self.payout_repo.flush()

        logger.info(
            f"Payout rejected: payout={payout_id}, reason={reason}",
            extra={"payout_id": payout_id, "affiliate_id": payout.affiliate_id, "actor_id": caller.actor_id}
        )

        if self.notifier and affiliate:
            send_in_background(self.notifier.payout_rejected(affiliate, payout))
        return payout

    async def preview_settlement(self, payout_id: int) -> Dict:
        """
        Which commissions settling this payout would bind, without writing.
        """
        payout = await self.payout_repo.get_by_id(payout_id)
        if not payout:
            raise PayoutNotFoundError(payout_id)
        if not payout.is_open:
            raise PayoutStatusError(payout.status, PayoutStatus.COMPLETED.value)

        plan = await self._plan_settlement(payout)

        return {
            'payout_id': payout.id,
            'affiliate_id': payout.affiliate_id,
            'requested_amount': plan.required,
            'settle_amount': plan.total,
            'covered': plan.covered and plan.leaves_reservations,
            'excess': max(ZERO, plan.total - plan.required),
            'pending_total': plan.pending_total,
            'reserved_by_other_requests': plan.reserved_by_others,
            'remaining_pending': to_money(plan.pending_total - plan.total),
            'commissions': plan.commissions,
        }

    async def list_payouts(
        self,
        status: Optional[PayoutStatus] = None,
        limit: Optional[int] = None
    ) -> List[Payout]:
        return await self.payout_repo.list_by_status(status, limit)

    async def get_payout_detail(self, payout_id: int) -> Tuple[Payout, List[Commission]]:
        """Payout with the commissions bound to it."""
        payout = await self.payout_repo.get_by_id(payout_id)
        if not payout:
            raise PayoutNotFoundError(payout_id)
        return payout, await self.commission_repo.list_for_payout(payout_id)
