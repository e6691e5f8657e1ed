"""
Human-readable codes for affiliates, coupon types and coupons.

Sequence numbers are picked by scanning what exists, but the unique
constraint on insert is the real guard: a lost race rolls back and the
next candidate is tried.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from core.context import CallerContext
from core.exceptions import (
    AffiliateNotFoundError,
    CodeConflictError,
    CodeSpaceExhaustedError,
    CouponTypeNotFoundError,
    ValidationError,
)
from core.money import to_money
from database.models import Coupon, CouponType, DiscountType, User
from database.repositories import CouponRepository, CouponTypeRepository, UserRepository
from services.base import LedgerService

logger = logging.getLogger(__name__)


def extract_initials(name: str) -> str:
    """
    Initials used as the affiliate code prefix.

    "Asha Verma" -> "AV", "Ramesh Kumar Iyer" -> "RI", "Priya" -> "PR"
    """
    words = ["".join(ch for ch in word if ch.isalpha()) for word in name.split()]
    words = [word for word in words if word]
    if not words:
        raise ValidationError("name", "must contain letters")
    if len(words) == 1:
        return words[0][:2].upper()
    return (words[0][0] + words[-1][0]).upper()


def smallest_unused(used: Iterable[int], limit: int) -> Optional[int]:
    """Smallest integer in 1..limit not in `used`."""
    taken = set(used)
    for candidate in range(1, limit + 1):
        if candidate not in taken:
            return candidate
    return None


def next_affiliate_code(initials: str, existing_codes: Iterable[str], limit: int = 999) -> str:
    """Initials plus the smallest free three-digit sequence, e.g. AV001."""
    used = []
    for code in existing_codes:
        suffix = code[len(initials):]
        if code.startswith(initials) and suffix.isdigit():
            used.append(int(suffix))

    sequence = smallest_unused(used, limit)
    if sequence is None:
        raise CodeSpaceExhaustedError(f"initials {initials}", limit)
    return f"{initials}{sequence:03d}"


def next_type_code(existing_codes: Iterable[str], limit: int = 99) -> str:
    """Smallest free two-digit coupon type code, e.g. 01."""
    used = [int(code) for code in existing_codes if code and code.isdigit()]
    number = smallest_unused(used, limit)
    if number is None:
        raise CodeSpaceExhaustedError("coupon types", limit)
    return f"{number:02d}"


def format_discount(value) -> str:
    """Discount without the decimal point: 10 -> "10", 10.50 -> "105"."""
    normalized = Decimal(str(value)).normalize()
    return format(normalized, "f").replace(".", "")


def build_coupon_code(prefix: str, affiliate_code: str, type_code: str, discount_value) -> str:
    """Prefix + affiliate code + type code + discount, e.g. COUPAV0010110."""
    return f"{prefix}{affiliate_code}{type_code}{format_discount(discount_value)}".upper()


class CodeService(LedgerService):
    """Generates and persists affiliate, coupon type and coupon codes."""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.user_repo = UserRepository(session)
        self.coupon_type_repo = CouponTypeRepository(session)
        self.coupon_repo = CouponRepository(session)

    async def generate_affiliate_code(self, name: str) -> str:
        """Next free code for a name. Preview only, nothing is reserved."""
        initials = extract_initials(name)
        existing = await self.user_repo.get_codes_with_prefix(initials)
        return next_affiliate_code(initials, existing, settings.affiliate_code_max_sequence)

    async def assign_affiliate_code(self, user_id: int) -> User:
        """
        Give an affiliate its permanent code.

        An affiliate that already has a code keeps it.

        Raises:
            AffiliateNotFoundError: Unknown user or not an affiliate
            CodeSpaceExhaustedError: All sequences for the initials are taken
            CodeConflictError: Lost every insert race
        """
        code = None
        for attempt in range(1, settings.code_generation_attempts + 1):
            try:
                async with self.transaction(
                    "assign_affiliate_code",
                    on_integrity_error=lambda e: CodeConflictError(code),
                    affiliate_id=user_id
                ):
                    user = await self.user_repo.get_affiliate(user_id, lock=True)
                    if not user:
                        raise AffiliateNotFoundError(user_id)
                    if user.affiliate_code:
                        return user

                    code = await self.generate_affiliate_code(user.name)
                    user.affiliate_code = code
                    await self.user_repo.flush()
            except CodeConflictError:
                logger.warning(
                    f"Affiliate code {code} taken concurrently (attempt {attempt}), retrying",
                    extra={"affiliate_id": user_id}
                )
                continue

            logger.info(
                f"Affiliate code assigned: user={user_id}, code={code}",
                extra={"affiliate_id": user_id}
            )
            return user

        raise CodeConflictError(code)

    async def next_coupon_type_code(self) -> str:
        """Next free two-digit coupon type code. Preview only."""
        existing = await self.coupon_type_repo.get_type_codes()
        return next_type_code(existing, settings.coupon_type_max_code)

    async def create_coupon_type(
        self,
        caller: CallerContext,
        type_name: str,
        discount_type: DiscountType,
        max_discount_limit,
        description: Optional[str] = None
    ) -> CouponType:
        """Create a coupon type under the next free type code."""
        caller.require_admin()
        discount_type = DiscountType(discount_type)
        limit = to_money(max_discount_limit)
        if limit <= 0:
            raise ValidationError("max_discount_limit", "must be greater than 0")
        if discount_type == DiscountType.PERCENTAGE and limit > 100:
            raise ValidationError("max_discount_limit", "percentage cannot exceed 100")

        code = None
        for attempt in range(1, settings.code_generation_attempts + 1):
            try:
                async with self.transaction(
                    "create_coupon_type",
                    on_integrity_error=lambda e: CodeConflictError(code),
                    actor_id=caller.actor_id
                ):
                    code = await self.next_coupon_type_code()
                    coupon_type = CouponType(
                        type_code=code,
                        type_name=type_name,
                        description=description,
                        discount_type=discount_type.value,
                        max_discount_limit=limit,
                        is_active=True,
                        created_by=caller.actor_id,
                    )
                    self.coupon_type_repo.add(coupon_type)
                    await self.coupon_type_repo.flush()
            except CodeConflictError:
                logger.warning(f"Coupon type code {code} taken concurrently (attempt {attempt}), retrying")
                continue

            logger.info(
                f"Coupon type created: code={code}, name={type_name}",
                extra={"actor_id": caller.actor_id}
            )
            return coupon_type

        raise CodeConflictError(code)

    async def _coupon_parts(self, affiliate_id: int, coupon_type_id: int, discount_value) -> tuple:
        affiliate = await self.user_repo.get_affiliate(affiliate_id)
        if not affiliate:
            raise AffiliateNotFoundError(affiliate_id)
        if not affiliate.affiliate_code:
            raise ValidationError("affiliate_code", "affiliate has no code yet")

        coupon_type = await self.coupon_type_repo.get_by_id(coupon_type_id)
        if not coupon_type or not coupon_type.is_active:
            raise CouponTypeNotFoundError(coupon_type_id)

        discount = to_money(discount_value)
        if discount <= 0:
            raise ValidationError("discount_value", "must be greater than 0")
        if coupon_type.discount_type == DiscountType.PERCENTAGE.value and discount > 100:
            raise ValidationError("discount_value", "percentage cannot exceed 100")
        if discount > coupon_type.max_discount_limit:
            raise ValidationError(
                "discount_value",
                f"exceeds the limit of {coupon_type.max_discount_limit} for this coupon type"
            )

        code = build_coupon_code(
            settings.coupon_code_prefix,
            affiliate.affiliate_code,
            coupon_type.type_code,
            discount
        )
        return affiliate, coupon_type, discount, code

    async def preview_coupon(self, affiliate_id: int, coupon_type_id: int, discount_value) -> Dict:
        """The code a coupon would get and whether it is already taken."""
        _, coupon_type, discount, code = await self._coupon_parts(
            affiliate_id, coupon_type_id, discount_value
        )
        return {
            'coupon_code': code,
            'exists': await self.coupon_repo.code_exists(code),
            'coupon_type': coupon_type,
            'discount_value': discount,
        }

    async def create_coupon(
        self,
        caller: CallerContext,
        coupon_type_id: int,
        discount_value,
        max_usage_count: Optional[int] = None,
        valid_until: Optional[datetime] = None,
        description: Optional[str] = None
    ) -> Coupon:
        """
        Create a coupon for the calling affiliate.

        Raises:
            CodeConflictError: Same coupon already exists
        """
        caller.require_affiliate()
        code = None

        async with self.transaction(
            "create_coupon",
            on_integrity_error=lambda e: CodeConflictError(code),
            affiliate_id=caller.actor_id
        ):
            _, coupon_type, discount, code = await self._coupon_parts(
                caller.actor_id, coupon_type_id, discount_value
            )
            if await self.coupon_repo.code_exists(code):
                raise CodeConflictError(code)

            coupon = Coupon(
                code=code,
                coupon_type_id=coupon_type.id,
                created_by_affiliate_id=caller.actor_id,
                discount_type=coupon_type.discount_type,
                discount_value=discount,
                max_usage_count=max_usage_count,
                current_usage_count=0,
                valid_until=valid_until,
                is_active=True,
                description=description,
            )
            self.coupon_repo.add(coupon)
            await self.coupon_repo.flush()

        logger.info(
            f"Coupon created: code={code}, affiliate={caller.actor_id}",
            extra={"affiliate_id": caller.actor_id}
        )
        return coupon

    async def list_affiliate_coupons(self, affiliate_id: int) -> List[Coupon]:
        return await self.coupon_repo.list_for_affiliate(affiliate_id)

    async def list_coupon_types(self) -> List[CouponType]:
        return await self.coupon_type_repo.list_active()
