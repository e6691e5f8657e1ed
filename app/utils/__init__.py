"""Utilities package."""
from app.utils.formatters import (
    format_money,
    format_datetime,
    money_str,
    isoformat,
)

__all__ = [
    "format_money",
    "format_datetime",
    "money_str",
    "isoformat",
]
