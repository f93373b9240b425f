"""Transition engine -- optimistic stage changes with rollback by reload.

A stage change is applied to the DealStore first (synchronously, so the board
reflects it immediately) and then written through DealPersistence. If the
write fails there is no targeted undo: the whole store is reloaded from
persistence, which discards the optimistic change along with any other
unconfirmed local state.

Changes to the same deal are serialized with a per-deal asyncio.Lock; changes
to different deals run concurrently. Locks are held weakly and disappear once
no change for that deal is running or waiting.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import structlog

from src.dealboard.board.store import DealNotFoundError, DealStore
from src.dealboard.core.clock import Clock
from src.dealboard.core.monitoring import board_stage_changes_total, report_exception
from src.dealboard.deals.persistence import DealPersistence, PersistenceError
from src.dealboard.deals.stages import validate_stage_id

logger = structlog.get_logger(__name__)


class TransitionOutcome(str, Enum):
    """Result of a stage change request."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    ROLLED_BACK = "rolled_back"


class TransitionEngine:
    """Applies stage transitions to a DealStore.

    Args:
        store: The board's DealStore.
        persistence: Storage collaborator for the commit phase.
        clock: Source of last_activity_at timestamps.
        reload: Async callable that refetches everything into the store;
            must raise when the refetch fails.
    """

    def __init__(
        self,
        store: DealStore,
        persistence: DealPersistence,
        clock: Clock,
        reload: Callable[[], Awaitable[Any]],
    ) -> None:
        self._store = store
        self._persistence = persistence
        self._clock = clock
        self._reload = reload
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, deal_id: str) -> asyncio.Lock:
        lock = self._locks.get(deal_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[deal_id] = lock
        return lock

    async def change_stage(self, deal_id: str, new_stage_id: str) -> TransitionOutcome:
        """Move a deal to another stage.

        Args:
            deal_id: Deal to move.
            new_stage_id: Target stage id.

        Returns:
            APPLIED when persisted, UNCHANGED when the deal already was in the
            target stage, ROLLED_BACK when the write failed and the store was
            reloaded.

        Raises:
            UnknownStageError: If new_stage_id is not registered (nothing changes).
            DealNotFoundError: If the deal is not in the store.

        Whatever the reload callable raises after a failed write propagates
        unchanged.
        """
        validate_stage_id(new_stage_id)

        async with self._lock_for(deal_id):
            deal = self._store.get(deal_id)
            if deal is None:
                raise DealNotFoundError(deal_id)

            if deal.stage_id == new_stage_id:
                board_stage_changes_total.labels(outcome=TransitionOutcome.UNCHANGED.value).inc()
                return TransitionOutcome.UNCHANGED

            now = self._clock.now()
            previous_stage_id = deal.stage_id
            self._store.upsert_local(
                deal.model_copy(update={"stage_id": new_stage_id, "last_activity_at": now})
            )

            try:
                await self._persistence.update_deal(
                    deal_id,
                    {"stage_id": new_stage_id, "last_activity_at": now},
                )
            except PersistenceError as exc:
                logger.warning(
                    "board.stage_change_failed",
                    deal_id=deal_id,
                    from_stage=previous_stage_id,
                    to_stage=new_stage_id,
                    error=str(exc),
                )
                report_exception(exc)
                board_stage_changes_total.labels(outcome=TransitionOutcome.ROLLED_BACK.value).inc()
                await self._reload()
                return TransitionOutcome.ROLLED_BACK

        logger.info(
            "board.stage_changed",
            deal_id=deal_id,
            from_stage=previous_stage_id,
            to_stage=new_stage_id,
        )
        board_stage_changes_total.labels(outcome=TransitionOutcome.APPLIED.value).inc()
        return TransitionOutcome.APPLIED
