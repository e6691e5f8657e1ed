"""
Base repository with common read and write helpers.

Repositories only flush; the calling service owns commit and rollback so that
every ledger operation is one transaction.
"""
from typing import TypeVar, Generic, Optional, List, Type
from abc import ABC

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.base import Base

# Type variable for model classes
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(ABC, Generic[ModelType]):
    """
    Abstract base repository with common operations.

    Provides:
    - get_by_id: Get single entity by ID
    - get_for_update: Same, but row-locked for the rest of the transaction
    - get_all: Get all entities with optional limit
    - count: Count all entities
    - exists: Check if entity exists by ID
    - add / flush / refresh: Session passthroughs

    Usage:
        class PayoutRepository(BaseRepository[Payout]):
            model_class = Payout

            async def list_open_for_affiliate(self, affiliate_id: int):
                # Custom method
                ...
    """

    model_class: Type[ModelType]

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, entity_id: int) -> Optional[ModelType]:
        """
        Get entity by its primary key ID.

        Args:
            entity_id: Primary key ID

        Returns:
            Entity or None if not found
        """
        result = await self.session.execute(
            select(self.model_class).where(self.model_class.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, entity_id: int) -> Optional[ModelType]:
        """
        Get entity by ID holding a row lock (SELECT ... FOR UPDATE).

        The identity map is refreshed from the locked row so version
        counters are current. SQLite ignores the lock clause.
        """
        result = await self.session.execute(
            select(self.model_class)
            .where(self.model_class.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_all(self, limit: Optional[int] = None) -> List[ModelType]:
        """Get all entities, oldest id first."""
        query = select(self.model_class).order_by(self.model_class.id)
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self) -> int:
        """Count all entities."""
        result = await self.session.execute(
            select(func.count(self.model_class.id))
        )
        return result.scalar() or 0

    async def exists(self, entity_id: int) -> bool:
        """Check if entity exists by ID."""
        result = await self.session.execute(
            select(func.count(self.model_class.id)).where(
                self.model_class.id == entity_id
            )
        )
        return (result.scalar() or 0) > 0

    def add(self, entity: ModelType) -> None:
        """
        Add entity to session (for create operations).

        Args:
            entity: Entity to add
        """
        self.session.add(entity)

    async def flush(self) -> None:
        """Flush session changes to database."""
        await self.session.flush()

    async def refresh(self, entity: ModelType) -> ModelType:
        """
        Refresh entity from database.

        Args:
            entity: Entity to refresh

        Returns:
            Refreshed entity
        """
        await self.session.refresh(entity)
        return entity
