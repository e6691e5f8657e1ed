"""Money helpers. All ledger amounts are Decimal rupees with two places."""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

PAISA = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce to Decimal and round half-up to paise.

    Floats go through str() so 0.1 stays 0.10 and not 0.1000000000000000055.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(PAISA, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Not a money amount: {value!r}") from e


def has_at_most_two_places(value: Decimal) -> bool:
    exponent = value.normalize().as_tuple().exponent
    return not isinstance(exponent, int) or exponent >= -2
