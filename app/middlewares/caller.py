"""Caller context middleware for aiohttp - who is calling the API."""
import logging
from typing import Callable

from aiohttp import web

from core.context import CallerContext, ROLE_ADMIN, ROLE_JYOTISHI, ROLE_USER

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"

KNOWN_ROLES = {ROLE_ADMIN, ROLE_JYOTISHI, ROLE_USER}

# Paths that do not act on behalf of anyone
PUBLIC_PATHS = {"/health"}


def caller_from_headers(headers) -> CallerContext | None:
    """Build the caller from the headers set by the upstream auth gateway.

    Returns:
        CallerContext, or None if the headers are missing or malformed
    """
    actor_id = headers.get(ACTOR_ID_HEADER)
    role = (headers.get(ACTOR_ROLE_HEADER) or "").strip().upper()
    if not actor_id or role not in KNOWN_ROLES:
        return None
    try:
        return CallerContext(actor_id=int(actor_id), role=role)
    except ValueError:
        return None


@web.middleware
async def caller_context_middleware(request: web.Request, handler: Callable):
    """Attach request['caller'] for every /api/* call.

    /api/admin/* additionally requires the ADMIN role and /api/jyotishi/*
    the JYOTISHI role.
    """
    if request.path in PUBLIC_PATHS or not request.path.startswith('/api/'):
        return await handler(request)

    caller = caller_from_headers(request.headers)
    if caller is None:
        logger.warning(f"API access without caller identity: {request.path}")
        return web.json_response(
            {"error": "Authentication required", "code": "AuthenticationRequired"},
            status=401
        )

    if request.path.startswith('/api/admin/') and not caller.is_admin:
        logger.warning(
            f"Non-admin access attempt to {request.path} by user {caller.actor_id}",
            extra={"actor_id": caller.actor_id}
        )
        return web.json_response(
            {"error": "Admin access required", "code": "PermissionDeniedError"},
            status=403
        )

    if request.path.startswith('/api/jyotishi/') and not caller.is_affiliate:
        logger.warning(
            f"Non-affiliate access attempt to {request.path} by user {caller.actor_id}",
            extra={"actor_id": caller.actor_id}
        )
        return web.json_response(
            {"error": "Affiliate access required", "code": "PermissionDeniedError"},
            status=403
        )

    request['caller'] = caller
    return await handler(request)
