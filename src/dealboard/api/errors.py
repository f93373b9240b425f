"""Exception handlers mapping board errors to HTTP responses.

| Exception               | Status |
|-------------------------|--------|
| UnknownStageError       | 422    |
| DealNotFoundError       | 404    |
| ProspectNotFoundError   | 404    |
| ProspectNotAllowedError | 422    |
| NotAuthenticatedError   | 401    |
| PersistenceError        | 503    |
| BoardUnavailableError   | 503    |
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.dealboard.board.service import BoardUnavailableError, ProspectNotAllowedError
from src.dealboard.board.store import DealNotFoundError, ProspectNotFoundError
from src.dealboard.core.identity import NotAuthenticatedError
from src.dealboard.deals.persistence import PersistenceError
from src.dealboard.deals.stages import UnknownStageError

logger = structlog.get_logger(__name__)


async def _unknown_stage(request: Request, exc: UnknownStageError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "stage_id": exc.stage_id},
    )


async def _prospect_not_allowed(request: Request, exc: ProspectNotAllowedError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "deal_type": exc.deal_type.value},
    )


async def _not_found(request: Request, exc: LookupError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _not_authenticated(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": "Not authenticated"},
    )


async def _persistence_failed(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.warning("api.persistence_error", path=request.url.path, operation=exc.operation)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc)},
    )


async def _board_unavailable(request: Request, exc: BoardUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc), "retry": "/api/v1/board/reload"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UnknownStageError, _unknown_stage)
    app.add_exception_handler(DealNotFoundError, _not_found)
    app.add_exception_handler(ProspectNotFoundError, _not_found)
    app.add_exception_handler(ProspectNotAllowedError, _prospect_not_allowed)
    app.add_exception_handler(NotAuthenticatedError, _not_authenticated)
    app.add_exception_handler(PersistenceError, _persistence_failed)
    app.add_exception_handler(BoardUnavailableError, _board_unavailable)
