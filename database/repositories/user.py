"""User repository - affiliates and their codes."""
from typing import Optional, List

from sqlalchemy import select

from database.models import User, UserRole
from database.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User model operations."""

    model_class = User

    async def get_affiliate(self, user_id: int, lock: bool = False) -> Optional[User]:
        """Get user by ID only if it is an affiliate."""
        user = await (self.get_for_update(user_id) if lock else self.get_by_id(user_id))
        if user is None or not user.is_affiliate:
            return None
        return user

    async def get_by_affiliate_code(self, code: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.affiliate_code == code.upper())
        )
        return result.scalar_one_or_none()

    async def get_codes_with_prefix(self, prefix: str) -> List[str]:
        """All affiliate codes starting with the given initials."""
        result = await self.session.execute(
            select(User.affiliate_code).where(
                User.affiliate_code.like(f"{prefix}%")
            )
        )
        return [code for code in result.scalars().all() if code]

    async def list_affiliates(self, active_only: bool = True) -> List[User]:
        query = select(User).where(User.role == UserRole.JYOTISHI.value)
        if active_only:
            query = query.where(User.is_active == True)  # noqa: E712
        result = await self.session.execute(query.order_by(User.name, User.id))
        return list(result.scalars().all())

    async def get_by_ids(self, user_ids: List[int]) -> dict[int, User]:
        """Map of id -> user for the given ids."""
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(User).where(User.id.in_(user_ids))
        )
        return {user.id: user for user in result.scalars().all()}

    async def get_admin_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        """Admin user whose Telegram chat is the given one."""
        result = await self.session.execute(
            select(User).where(
                User.telegram_chat_id == telegram_id,
                User.role == UserRole.ADMIN.value,
                User.is_active == True  # noqa: E712
            )
        )
        return result.scalars().first()
