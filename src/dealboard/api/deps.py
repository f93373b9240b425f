"""FastAPI dependency injection for the current user and their board.

These dependencies are used in endpoint function signatures to inject the
resolved UserContext and the user's PipelineBoard.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from src.dealboard.board.service import BoardRegistry, PipelineBoard
from src.dealboard.core.identity import NotAuthenticatedError, UserContext, get_current_user


async def get_user() -> UserContext:
    """Get the current user (set by IdentityMiddleware).

    Raises:
        HTTPException(401): If the request carries no identity.
    """
    try:
        return get_current_user()
    except NotAuthenticatedError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )


def _get_board_registry(request: Request) -> BoardRegistry:
    """Retrieve BoardRegistry from app.state, 503 if not available."""
    registry = getattr(request.app.state, "board_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal board not initialized",
        )
    return registry


async def get_board(
    request: Request,
    user: UserContext = Depends(get_user),
) -> PipelineBoard:
    """The current user's board, whatever its load state."""
    registry = _get_board_registry(request)
    return await registry.for_user(user.user_id)


async def get_ready_board(board: PipelineBoard = Depends(get_board)) -> PipelineBoard:
    """The current user's board; BoardUnavailableError (503) if the last load failed."""
    board.require_ready()
    return board
