"""Payment repository."""
from typing import Iterable

from sqlalchemy import update

from database.models import Payment
from database.repositories.base import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    """Repository for Payment model operations."""

    model_class = Payment

    async def mark_commission_paid(self, payment_ids: Iterable[int]) -> int:
        """Flag every given payment's commission as paid. Returns rows updated."""
        ids = sorted(set(payment_ids))
        if not ids:
            return 0
        result = await self.session.execute(
            update(Payment)
            .where(Payment.id.in_(ids))
            .values(commission_paid=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
