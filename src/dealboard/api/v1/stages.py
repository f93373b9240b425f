"""Stage registry endpoint. Public: the registry is static and user-independent."""

from __future__ import annotations

from fastapi import APIRouter

from src.dealboard.deals.stages import STAGES, Stage

router = APIRouter(prefix="/api/v1/stages", tags=["stages"])


@router.get("", response_model=list[Stage])
async def list_stages() -> list[Stage]:
    """All pipeline stages in column order."""
    return list(STAGES)
