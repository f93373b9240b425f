"""Board endpoints: summary view, drag-and-drop drops, and reload.

A drop carries the whole gesture (deal, source column, target column) so the
server replays it through the board's DragCoordinator; dropping on the
column the deal came from is ignored without touching persistence.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.dealboard.api.deps import get_board, get_ready_board
from src.dealboard.board.aggregator import BoardSummary
from src.dealboard.board.engine import TransitionOutcome
from src.dealboard.board.service import LoadState, PipelineBoard
from src.dealboard.deals.schemas import Deal

router = APIRouter(prefix="/api/v1/board", tags=["board"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class DropRequest(BaseModel):
    """A completed drag gesture."""

    deal_id: str
    source_stage_id: str
    target_stage_id: str


class DropResponse(BaseModel):
    """outcome is None when the drop was ignored."""

    ignored: bool
    outcome: TransitionOutcome | None = None
    deal: Deal | None = None


class LoadStateResponse(BaseModel):
    state: LoadState
    error: str | None = None
    deal_count: int


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=BoardSummary)
async def get_board_summary(
    q: str = Query(default="", description="Organization search, narrows the columns only"),
    board: PipelineBoard = Depends(get_ready_board),
) -> BoardSummary:
    """Columns, totals, funnel and action lists for the current user."""
    return board.summary(q)


@router.post("/drops", response_model=DropResponse)
async def drop_deal(
    body: DropRequest,
    board: PipelineBoard = Depends(get_ready_board),
) -> DropResponse:
    """Apply a drag-and-drop gesture."""
    board.get_deal(body.deal_id)
    session = board.drag.start(body.deal_id, body.source_stage_id)
    outcome = await board.drag.drop(session, body.target_stage_id)
    return DropResponse(
        ignored=outcome is None,
        outcome=outcome,
        deal=board.store.get(body.deal_id),
    )


@router.post("/reload", response_model=LoadStateResponse)
async def reload_board(board: PipelineBoard = Depends(get_board)) -> LoadStateResponse:
    """Refetch all deals; the retry path after a failed load.

    Answers 503 if the reload fails again.
    """
    await board.reload()
    board.require_ready()
    return LoadStateResponse(state=board.state, error=board.error, deal_count=len(board.store))
