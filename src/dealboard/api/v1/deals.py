"""REST API endpoints for deals and their prospects.

Every endpoint works on the current user's PipelineBoard: reads come from the
board's store, writes go through the board so the store and persistence stay
in step. Stage changes answer with the transition outcome; a ROLLED_BACK
outcome means the write failed and the board was reloaded.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel

from src.dealboard.api.deps import get_ready_board
from src.dealboard.board.engine import TransitionOutcome
from src.dealboard.board.service import PipelineBoard
from src.dealboard.deals.schemas import Deal, DealCreate, DealUpdate, Prospect, ProspectCreate

router = APIRouter(prefix="/api/v1", tags=["deals"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class StageChangeRequest(BaseModel):
    """Request body for moving a deal to a stage."""

    stage_id: str


class TransitionResponse(BaseModel):
    """Outcome of a stage change and the deal as the board now holds it."""

    outcome: TransitionOutcome
    deal: Deal | None = None


def _transition_response(
    board: PipelineBoard, deal_id: str, outcome: TransitionOutcome
) -> TransitionResponse:
    # After a rollback the reload may have dropped the deal entirely
    return TransitionResponse(outcome=outcome, deal=board.store.get(deal_id))


# ── Deal Endpoints ───────────────────────────────────────────────────────────


@router.get("/deals", response_model=list[Deal])
async def list_deals(
    q: str = Query(default="", description="Organization search"),
    board: PipelineBoard = Depends(get_ready_board),
) -> list[Deal]:
    """List the user's deals, newest first, optionally filtered by organization."""
    return board.list_deals(q)


@router.post("/deals", response_model=Deal, status_code=201)
async def create_deal(
    body: DealCreate,
    board: PipelineBoard = Depends(get_ready_board),
) -> Deal:
    """Create a new deal."""
    return await board.create_deal(body)


@router.get("/deals/{deal_id}", response_model=Deal)
async def get_deal(
    deal_id: str,
    board: PipelineBoard = Depends(get_ready_board),
) -> Deal:
    """Get a single deal by ID."""
    return board.get_deal(deal_id)


@router.patch("/deals/{deal_id}", response_model=Deal)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    board: PipelineBoard = Depends(get_ready_board),
) -> Deal:
    """Update the fields present in the body."""
    return await board.update_deal(deal_id, body)


@router.delete("/deals/{deal_id}", status_code=204)
async def delete_deal(
    deal_id: str,
    board: PipelineBoard = Depends(get_ready_board),
) -> Response:
    """Delete a deal together with its prospects."""
    await board.delete_deal(deal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Stage Endpoints ──────────────────────────────────────────────────────────


@router.post("/deals/{deal_id}/stage", response_model=TransitionResponse)
async def change_stage(
    deal_id: str,
    body: StageChangeRequest,
    board: PipelineBoard = Depends(get_ready_board),
) -> TransitionResponse:
    """Move a deal to any stage."""
    outcome = await board.change_stage(deal_id, body.stage_id)
    return _transition_response(board, deal_id, outcome)


@router.post("/deals/{deal_id}/forward", response_model=TransitionResponse)
async def move_forward(
    deal_id: str,
    board: PipelineBoard = Depends(get_ready_board),
) -> TransitionResponse:
    """Move a deal to the next stage."""
    outcome = await board.move_forward(deal_id)
    return _transition_response(board, deal_id, outcome)


@router.post("/deals/{deal_id}/backward", response_model=TransitionResponse)
async def move_backward(
    deal_id: str,
    board: PipelineBoard = Depends(get_ready_board),
) -> TransitionResponse:
    """Move a deal to the previous stage."""
    outcome = await board.move_backward(deal_id)
    return _transition_response(board, deal_id, outcome)


# ── Prospect Endpoints ───────────────────────────────────────────────────────


@router.post("/deals/{deal_id}/prospects", response_model=Prospect, status_code=201)
async def add_prospect(
    deal_id: str,
    body: ProspectCreate,
    board: PipelineBoard = Depends(get_ready_board),
) -> Prospect:
    """Attach a prospect to a deal."""
    return await board.add_prospect(deal_id, body)


@router.delete("/prospects/{prospect_id}", status_code=204)
async def remove_prospect(
    prospect_id: str,
    board: PipelineBoard = Depends(get_ready_board),
) -> Response:
    """Delete a prospect."""
    await board.remove_prospect(prospect_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
