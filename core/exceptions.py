"""
Custom application exceptions.

These exceptions represent ledger rule violations. They are raised by the
services and translated into HTTP responses or bot replies at the edges.
"""
from decimal import Decimal
from typing import Iterable, Optional


class LedgerError(Exception):
    """Base exception for all application errors."""

    message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, **kwargs):
        self.message = message or self.message
        self.details = kwargs
        super().__init__(self.message)


# ============== Authorization ==============

class PermissionDeniedError(LedgerError):
    """Caller doesn't have permission for this action."""
    message = "Permission denied"


# ============== Validation ==============

class ValidationError(LedgerError):
    """Data validation error."""
    message = "Validation failed"

    def __init__(self, field: str, error: str):
        self.field = field
        self.error = error
        super().__init__(f"Invalid '{field}': {error}", field=field)


class MissingBankDetailsError(LedgerError):
    """Affiliate has no complete bank details on file."""
    message = "Bank details are incomplete"

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Please update your bank details before requesting a payout "
            f"(missing: {', '.join(self.missing_fields)})",
            missing_fields=self.missing_fields,
        )


# ============== Not found ==============

class NotFoundError(LedgerError):
    """Referenced record does not exist."""
    message = "Not found"
    entity: str = "Record"

    def __init__(self, entity_id=None, message: Optional[str] = None):
        self.entity_id = entity_id
        if message is None:
            message = f"{self.entity} {entity_id} not found" if entity_id is not None else f"{self.entity} not found"
        super().__init__(message, entity_id=entity_id)


class UserNotFoundError(NotFoundError):
    entity = "User"


class AffiliateNotFoundError(NotFoundError):
    entity = "Affiliate"


class PayoutNotFoundError(NotFoundError):
    entity = "Payout"


class PaymentNotFoundError(NotFoundError):
    entity = "Payment"


class CommissionNotFoundError(NotFoundError):
    entity = "Commission"


class CouponTypeNotFoundError(NotFoundError):
    entity = "Coupon type"


# ============== Conflicts ==============

class ConflictError(LedgerError):
    """State changed underneath the caller; retry with fresh state."""
    message = "Conflict"


class DuplicateCommissionError(ConflictError):
    """A commission already exists for this payment."""
    message = "Commission already accrued for this payment"

    def __init__(self, payment_id=None):
        self.payment_id = payment_id
        super().__init__(
            f"Commission already accrued for payment {payment_id}" if payment_id is not None else None,
            payment_id=payment_id,
        )


class CodeConflictError(ConflictError):
    """Generated code is already taken."""
    message = "Code already exists"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Code {code} already exists", code=code)


class ConcurrentModificationError(ConflictError):
    """Another operation updated the same rows first."""
    message = "Record was modified concurrently, please retry"


class PayoutStatusError(ConflictError):
    """Invalid payout status transition."""
    message = "Payout status does not allow this action"

    def __init__(self, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move payout from {current_status} to {target_status}",
            current_status=current_status,
            target_status=target_status,
        )


class CommissionStatusError(ConflictError):
    """Invalid commission status transition."""
    message = "Commission status does not allow this action"

    def __init__(self, current_status: str, target_status: str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move commission from {current_status} to {target_status}",
            current_status=current_status,
            target_status=target_status,
        )


# ============== Balances ==============

class InsufficientBalanceError(LedgerError):
    """Payout request exceeds the available commission balance."""
    message = "Insufficient pending commission balance"

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient pending commission balance: requested {requested}, available {available}",
            requested=str(requested),
            available=str(available),
        )


class InsufficientFundsError(LedgerError):
    """Pending commissions do not cover a payout being settled."""
    message = "Pending commissions do not cover the payout"

    def __init__(self, required: Decimal, available: Decimal, reserved: Optional[Decimal] = None):
        self.required = required
        self.available = available
        self.reserved = reserved
        if reserved is None:
            super().__init__(
                f"Pending commissions ({available}) do not cover the payout ({required})",
                required=str(required),
                available=str(available),
            )
            return
        super().__init__(
            f"Settling needs {required} of pending commissions but only {available} "
            f"is free of other open requests ({reserved} reserved)",
            required=str(required),
            available=str(available),
            reserved=str(reserved),
        )


class NoPendingCommissionsError(LedgerError):
    """Affiliate has nothing to settle."""
    message = "No pending commissions found"

    def __init__(self, affiliate_id=None):
        self.affiliate_id = affiliate_id
        super().__init__(affiliate_id=affiliate_id)


class CodeSpaceExhaustedError(LedgerError):
    """Every sequence number of a code family is taken."""
    message = "No codes left"

    def __init__(self, scope: str, limit: int):
        self.scope = scope
        self.limit = limit
        super().__init__(f"All {limit} codes are used for {scope}", scope=scope, limit=limit)


# ============== Store ==============

class TransactionFailureError(LedgerError):
    """Ledger store failed mid-operation; nothing was committed."""
    message = "Ledger store failure, nothing was saved. Please retry."
