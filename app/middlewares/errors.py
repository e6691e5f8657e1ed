"""Error middleware for aiohttp - ledger exceptions to JSON responses."""
import logging
from typing import Callable

from aiohttp import web

from core.exceptions import (
    LedgerError,
    PermissionDeniedError,
    NotFoundError,
    ConflictError,
    TransactionFailureError,
)

logger = logging.getLogger(__name__)


def status_for(error: LedgerError) -> int:
    """HTTP status for a ledger error; everything unlisted is a 400."""
    if isinstance(error, PermissionDeniedError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, TransactionFailureError):
        return 503
    return 400


def error_body(error: LedgerError) -> dict:
    body = {"error": error.message, "code": type(error).__name__}
    for key, value in error.details.items():
        if value is not None:
            body.setdefault(key, value)
    return body


@web.middleware
async def error_middleware(request: web.Request, handler: Callable):
    """Turn service exceptions into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except LedgerError as e:
        return web.json_response(error_body(e), status=status_for(e))
    except Exception as e:
        logger.error(
            f"Unhandled API error on {request.method} {request.path}: {e}",
            exc_info=True
        )
        return web.json_response(
            {"error": "Internal server error", "code": "InternalError"},
            status=500
        )
