"""Caller identity passed explicitly into every ledger operation."""
from dataclasses import dataclass

from core.exceptions import PermissionDeniedError


ROLE_ADMIN = "ADMIN"
ROLE_JYOTISHI = "JYOTISHI"
ROLE_USER = "USER"


@dataclass(frozen=True)
class CallerContext:
    """Who is performing an operation."""
    actor_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_affiliate(self) -> bool:
        return self.role == ROLE_JYOTISHI

    def require_admin(self) -> "CallerContext":
        if not self.is_admin:
            raise PermissionDeniedError("Only administrators can do this")
        return self

    def require_affiliate(self) -> "CallerContext":
        if not self.is_affiliate:
            raise PermissionDeniedError("Only affiliates can do this")
        return self
