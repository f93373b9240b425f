"""User identity propagation via Python contextvars.

The UserContext is set by IdentityMiddleware at the start of each request and
is accessible anywhere in the call stack via get_current_user(). The board
uses it to scope fetches and to stamp the owner of newly created deals.
Authentication itself happens upstream; this module only carries the result.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass


class NotAuthenticatedError(RuntimeError):
    """Raised when an operation needs a user but none is set."""


# ── User Context ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserContext:
    """Immutable user context for the current request."""

    user_id: str


_user_context: contextvars.ContextVar[UserContext] = contextvars.ContextVar("user_context")


def get_current_user() -> UserContext:
    """Get the user context for the current request.

    Raises NotAuthenticatedError if no user context has been set.
    """
    try:
        return _user_context.get()
    except LookupError:
        raise NotAuthenticatedError("No authenticated user -- request is not user-scoped")


def current_user_id() -> str:
    """Identity provider used by the board: the current user's id."""
    return get_current_user().user_id


def set_user_context(ctx: UserContext) -> contextvars.Token[UserContext]:
    """Set the user context for the current request. Returns a token for reset."""
    return _user_context.set(ctx)


def reset_user_context(token: contextvars.Token[UserContext]) -> None:
    _user_context.reset(token)


# ── Paths that skip identity resolution ─────────────────────────────────────

SKIP_IDENTITY_PATHS = (
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/v1/stages",
)
