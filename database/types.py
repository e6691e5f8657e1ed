"""Database-agnostic column types.

Production runs on PostgreSQL, the test-suite on SQLite; these types render
correctly on both.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Integer, JSON, Numeric

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntegerType = BigInteger().with_variant(Integer(), "sqlite")

# Money in rupees with paise
MoneyType = Numeric(12, 2)

# Percent, 10.00 = 10%
RateType = Numeric(5, 2)

# JSONB is PostgreSQL-specific, JSON works with both
JSONType = JSON


def utcnow() -> datetime:
    """Timezone-aware current time for Python-side column defaults."""
    return datetime.now(timezone.utc)
