"""
Messages package for centralized text management.

- payouts.py: Payout notifications and admin overviews
- errors.py: Error messages
"""

from app.messages.payouts import PayoutMessages
from app.messages.errors import ErrorMessages

__all__ = [
    'PayoutMessages',
    'ErrorMessages',
]
