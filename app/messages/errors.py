"""Error messages for user-facing error handling."""
from dataclasses import dataclass


@dataclass(frozen=True)
class ErrorMessages:
    """User-friendly error messages."""

    # General errors
    GENERIC_ERROR = "❌ Something went wrong. Please try again later."
    GENERIC_ERROR_SHORT = "❌ Error"

    # Permission errors
    ADMIN_ONLY = "❌ Administrators only"

    # Network/Technical
    SERVICE_UNAVAILABLE = "🔧 Ledger temporarily unavailable, nothing was saved. Please retry."

    @staticmethod
    def ledger_error(message: str) -> str:
        """Format a rejected ledger operation."""
        return f"❌ {message}"
