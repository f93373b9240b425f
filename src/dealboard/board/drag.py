"""Drag-and-drop coordination for the kanban board.

DragCoordinator is a two-state machine (IDLE -> DRAGGING -> IDLE). The
transfer payload (which deal, from which column) lives on the DragSession
returned by start(), not on the coordinator, so a stale session from an
abandoned gesture can never move the wrong deal.

ColumnHoverTracker keeps the drop-target highlight stable while the pointer
crosses child elements of a column, where leave/enter events arrive out of
order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

import structlog

from src.dealboard.board.engine import TransitionEngine, TransitionOutcome
from src.dealboard.deals.stages import validate_stage_id

logger = structlog.get_logger(__name__)


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass
class DragSession:
    """One drag gesture: the deal being carried and the column it left."""

    deal_id: str
    source_stage_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    active: bool = True


class DragCoordinator:
    """Turns drag gestures into at most one stage change each.

    Args:
        engine: TransitionEngine that performs the actual stage change.
    """

    def __init__(self, engine: TransitionEngine) -> None:
        self._engine = engine
        self._session: DragSession | None = None

    @property
    def state(self) -> DragState:
        return DragState.DRAGGING if self._session is not None else DragState.IDLE

    @property
    def session(self) -> DragSession | None:
        return self._session

    def start(self, deal_id: str, source_stage_id: str) -> DragSession:
        """Begin dragging a deal out of its column.

        A drag already in flight is abandoned; its session becomes inert.
        """
        if self._session is not None:
            logger.debug("drag.abandoned", deal_id=self._session.deal_id)
            self._session.active = False
        session = DragSession(deal_id=deal_id, source_stage_id=source_stage_id)
        self._session = session
        return session

    async def drop(
        self, session: DragSession, target_stage_id: str
    ) -> TransitionOutcome | None:
        """Drop the dragged deal on a column.

        Returns:
            None when the drop is ignored (same column, or an inert session);
            otherwise the outcome of the single engine call.

        Raises:
            UnknownStageError: If target_stage_id is not registered.
        """
        validate_stage_id(target_stage_id)
        if not self._finish(session):
            return None
        if target_stage_id == session.source_stage_id:
            return None
        return await self._engine.change_stage(session.deal_id, target_stage_id)

    def cancel(self, session: DragSession) -> None:
        """End a drag without a valid drop. No side effects."""
        self._finish(session)

    def _finish(self, session: DragSession) -> bool:
        if not session.active:
            return False
        session.active = False
        if self._session is session:
            self._session = None
        return True


class ColumnHoverTracker:
    """Tracks which column is highlighted as the current drop target."""

    def __init__(self) -> None:
        self._hovered: str | None = None

    @property
    def hovered(self) -> str | None:
        return self._hovered

    def enter(self, column_id: str) -> None:
        self._hovered = column_id

    def leave(self, column_id: str, entering: str | None = None) -> None:
        """Pointer left an element of column_id.

        Args:
            column_id: Column whose element the pointer left.
            entering: Column containing the element the pointer moved to, if any.
        """
        if entering == column_id:
            return  # moved onto a child of the same column
        if self._hovered == column_id:
            self._hovered = None

    def clear(self) -> None:
        self._hovered = None
