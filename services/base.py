"""
Base ledger service with the shared transaction boundary.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from core.exceptions import (
    LedgerError,
    ConcurrentModificationError,
    TransactionFailureError,
)

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Base class for ledger services.

    A service method encapsulates one ledger operation. Every write it makes
    happens inside `transaction()`, which commits once at the end or rolls
    everything back, so callers never observe partial state.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize service with database session.

        Args:
            session: Async SQLAlchemy session for database operations
        """
        self.session = session

    @asynccontextmanager
    async def transaction(
        self,
        operation: str,
        on_integrity_error: Optional[Callable[[IntegrityError], LedgerError]] = None,
        **log_context
    ) -> AsyncIterator[None]:
        """
        Run the block as one atomic unit of work.

        Raises:
            LedgerError: Business rule violations, re-raised after rollback
            ConcurrentModificationError: A version check failed at flush
            TransactionFailureError: Any other store error
        """
        try:
            yield
            await self.session.commit()
        except LedgerError as e:
            await self.session.rollback()
            logger.warning(
                f"{operation} rejected: {e.message}",
                extra=log_context
            )
            raise
        except StaleDataError as e:
            await self.session.rollback()
            logger.warning(
                f"{operation} lost a concurrent update: {e}",
                extra=log_context
            )
            raise ConcurrentModificationError() from e
        except IntegrityError as e:
            await self.session.rollback()
            if on_integrity_error is not None:
                error = on_integrity_error(e)
                logger.warning(f"{operation} rejected: {error.message}", extra=log_context)
                raise error from e
            logger.error(f"{operation} failed: {e}", exc_info=True, extra=log_context)
            raise TransactionFailureError() from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"{operation} failed: {e}", exc_info=True, extra=log_context)
            raise TransactionFailureError() from e
