"""Message formatting utilities."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytz

from app.config import settings
from core.money import to_money


def format_money(amount, currency: str = "₹") -> str:
    """Format an amount with thousands separators, e.g. ₹1,250.50"""
    return f"{currency}{to_money(amount):,.2f}"


def format_datetime(value: Optional[datetime], timezone_str: Optional[str] = None) -> str:
    """Format a stored (UTC) timestamp in the display timezone."""
    if value is None:
        return "-"
    tz = pytz.timezone(timezone_str or settings.display_timezone)
    # SQLite hands back naive values, they are UTC
    aware = value if value.tzinfo else pytz.utc.localize(value)
    return aware.astimezone(tz).strftime('%d.%m.%Y %H:%M')


def money_str(amount: Optional[Decimal]) -> Optional[str]:
    """Decimal as a JSON-safe string with two places."""
    if amount is None:
        return None
    return str(to_money(amount))


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
