"""User identity middleware.

Authentication happens upstream (reverse proxy or auth gateway), which
forwards the signed-in user's id in the X-User-ID header. This middleware
turns that header into a UserContext for the request scope. Requests without
the header proceed without identity; endpoints that need a user reject them
with 401 through the get_user dependency.
"""

from __future__ import annotations

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.dealboard.core.identity import (
    SKIP_IDENTITY_PATHS,
    UserContext,
    reset_user_context,
    set_user_context,
)

logger = structlog.get_logger(__name__)

USER_ID_HEADER = "X-User-ID"


class IdentityMiddleware(BaseHTTPMiddleware):
    """Middleware that sets UserContext from the X-User-ID header.

    Paths in SKIP_IDENTITY_PATHS are excluded from identity resolution.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(skip) for skip in SKIP_IDENTITY_PATHS):
            return await call_next(request)

        user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
        if not user_id:
            logger.debug("identity.header_missing", path=path)
            return await call_next(request)

        token = set_user_context(UserContext(user_id=user_id))
        try:
            return await call_next(request)
        finally:
            reset_user_context(token)
