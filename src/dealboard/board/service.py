"""Pipeline board -- the operations exposed to the HTTP layer.

PipelineBoard owns one DealStore and wires it to the TransitionEngine, the
DragCoordinator and the aggregator. Writes other than stage changes are
pessimistic: persistence is called first and the store only changes once the
write has succeeded, so a failed create/update/delete leaves local state as
it was and surfaces PersistenceError to the caller.
"""

from __future__ import annotations

import asyncio
import weakref
from collections import OrderedDict
from collections.abc import Callable
from enum import Enum

import structlog

from src.dealboard.board.aggregator import (
    DEFAULT_STALE_AFTER_DAYS,
    DEFAULT_UPCOMING_LIMIT,
    BoardSummary,
    summarize,
)
from src.dealboard.board.drag import DragCoordinator
from src.dealboard.board.engine import TransitionEngine, TransitionOutcome
from src.dealboard.board.search import filter_deals
from src.dealboard.board.store import DealStore
from src.dealboard.core.clock import Clock
from src.dealboard.core.identity import current_user_id
from src.dealboard.core.monitoring import board_reloads_total
from src.dealboard.deals.persistence import DealPersistence, PersistenceError
from src.dealboard.deals.schemas import (
    Deal,
    DealCreate,
    DealType,
    DealUpdate,
    Prospect,
    ProspectCreate,
)
from src.dealboard.deals.stages import next_stage, previous_stage

logger = structlog.get_logger(__name__)

DEFAULT_MAX_BOARDS = 256


class LoadState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class BoardUnavailableError(RuntimeError):
    """The last load failed; call reload() to retry."""


class ProspectNotAllowedError(ValueError):
    """Prospects can only be attached to partner deals."""

    def __init__(self, deal_id: str, deal_type: DealType) -> None:
        self.deal_id = deal_id
        self.deal_type = deal_type
        super().__init__(
            f"Prospects belong to partner deals; deal {deal_id} is a {deal_type.value} deal"
        )


class PipelineBoard:
    """Board state for one user plus every operation on it.

    Args:
        persistence: Storage collaborator.
        clock: Source of "now" for timestamps and date-relative figures.
        identity: Returns the current user's id; raises NotAuthenticatedError
            when nobody is signed in.
        stale_after_days: Inactivity threshold for stale deals.
        upcoming_limit: Number of upcoming actions in the summary.
    """

    def __init__(
        self,
        persistence: DealPersistence,
        clock: Clock,
        identity: Callable[[], str] = current_user_id,
        stale_after_days: int = DEFAULT_STALE_AFTER_DAYS,
        upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
    ) -> None:
        self._persistence = persistence
        self._clock = clock
        self._identity = identity
        self._stale_after_days = stale_after_days
        self._upcoming_limit = upcoming_limit

        self.store = DealStore()
        self.engine = TransitionEngine(self.store, persistence, clock, self._rollback)
        self.drag = DragCoordinator(self.engine)

        self.state = LoadState.LOADING
        self.error: str | None = None

    # ── Loading ─────────────────────────────────────────────────────────────

    async def load(self) -> LoadState:
        """Fetch every deal of the current user into the store.

        A failed fetch sets LoadState.ERROR and keeps the store as it was.

        Raises:
            NotAuthenticatedError: If there is no current user.
        """
        user_id = self._identity()
        self.state = LoadState.LOADING
        try:
            deals = await self._persistence.fetch_deals(user_id)
        except PersistenceError as exc:
            self.state = LoadState.ERROR
            self.error = str(exc)
            board_reloads_total.labels(result="error").inc()
            logger.error("board.load_failed", user_id=user_id, error=str(exc))
            return self.state

        self.store.replace_all(deals)
        self.state = LoadState.READY
        self.error = None
        board_reloads_total.labels(result="ok").inc()
        logger.debug("board.loaded", user_id=user_id, deals=len(deals))
        return self.state

    async def reload(self) -> LoadState:
        return await self.load()

    def require_ready(self) -> None:
        """Raise BoardUnavailableError while the board is in the ERROR state."""
        if self.state == LoadState.ERROR:
            raise BoardUnavailableError(self.error or "Deals could not be loaded")

    async def _rollback(self) -> None:
        # a failed reload leaves the optimistic change in the store
        await self.reload()
        self.require_ready()

    # ── Reads ───────────────────────────────────────────────────────────────

    def list_deals(self, query: str = "") -> list[Deal]:
        return filter_deals(self.store.list(), query)

    def get_deal(self, deal_id: str) -> Deal:
        return self.store.require(deal_id)

    def summary(self, query: str = "") -> BoardSummary:
        """Board view computed from the current store."""
        return summarize(
            self.store.list(),
            self._clock.now(),
            query,
            stale_after_days=self._stale_after_days,
            upcoming_limit=self._upcoming_limit,
        )

    # ── Deal Writes ─────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate) -> Deal:
        """Insert a new deal owned by the current user.

        Raises:
            NotAuthenticatedError: If there is no current user.
            PersistenceError: If the insert fails (store unchanged).
        """
        user_id = self._identity()
        deal = await self._persistence.insert_deal(user_id, data, self._clock.now())
        self.store.upsert_local(deal)
        logger.info("board.deal_created", deal_id=deal.id, stage_id=deal.stage_id)
        return deal

    async def update_deal(self, deal_id: str, data: DealUpdate) -> Deal:
        """Write the explicitly provided fields and bump last_activity_at.

        Raises:
            DealNotFoundError: If the deal is not on the board.
            PersistenceError: If the write fails (store unchanged).
        """
        self.store.require(deal_id)
        fields = data.changes()
        fields["last_activity_at"] = self._clock.now()
        deal = await self._persistence.update_deal(deal_id, fields)
        self.store.upsert_local(deal)
        logger.info("board.deal_updated", deal_id=deal_id, fields=sorted(fields))
        return deal

    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal and its prospects.

        Raises:
            DealNotFoundError: If the deal is not on the board.
            PersistenceError: If the delete fails (store unchanged).
        """
        self.store.require(deal_id)
        await self._persistence.delete_deal(deal_id)
        self.store.remove_local(deal_id)
        logger.info("board.deal_deleted", deal_id=deal_id)

    # ── Stage Transitions ───────────────────────────────────────────────────

    async def change_stage(self, deal_id: str, stage_id: str) -> TransitionOutcome:
        """Delegate to the TransitionEngine.

        Raises:
            BoardUnavailableError: If the write failed and the rollback reload
                failed too; the board stays in ERROR until reload() succeeds.
        """
        return await self.engine.change_stage(deal_id, stage_id)

    async def move_forward(self, deal_id: str) -> TransitionOutcome:
        """Move a deal one stage on; UNCHANGED when it already is in the last stage."""
        target = next_stage(self.store.require(deal_id).stage_id)
        if target is None:
            return TransitionOutcome.UNCHANGED
        return await self.engine.change_stage(deal_id, target.id)

    async def move_backward(self, deal_id: str) -> TransitionOutcome:
        """Move a deal one stage back; UNCHANGED when it is in the first stage."""
        target = previous_stage(self.store.require(deal_id).stage_id)
        if target is None:
            return TransitionOutcome.UNCHANGED
        return await self.engine.change_stage(deal_id, target.id)

    # ── Prospects ───────────────────────────────────────────────────────────

    async def add_prospect(self, deal_id: str, data: ProspectCreate) -> Prospect:
        """Attach a prospect to a deal and touch the deal's last activity.

        Raises:
            DealNotFoundError: If the deal is not on the board.
            ProspectNotAllowedError: If the deal is not a partner deal.
            PersistenceError: If either write fails. When the prospect was
                written but the touch failed, the board is reloaded first.
        """
        deal = self.store.require(deal_id)
        if not deal.is_partner:
            raise ProspectNotAllowedError(deal_id, deal.deal_type)
        prospect = await self._persistence.insert_prospect(deal_id, data)
        await self._touch(deal_id)
        logger.info("board.prospect_added", deal_id=deal_id, prospect_id=prospect.id)
        return prospect

    async def remove_prospect(self, prospect_id: str) -> Deal:
        """Delete a prospect and touch its parent deal.

        Returns:
            The parent deal as persisted after the touch.

        Raises:
            ProspectNotFoundError: If no deal on the board carries the prospect.
            PersistenceError: If either write fails.
        """
        self.store.owner_of_prospect(prospect_id)
        deal_id = await self._persistence.delete_prospect(prospect_id)
        deal = await self._touch(deal_id)
        logger.info("board.prospect_removed", deal_id=deal_id, prospect_id=prospect_id)
        return deal

    async def _touch(self, deal_id: str) -> Deal:
        try:
            deal = await self._persistence.update_deal(
                deal_id, {"last_activity_at": self._clock.now()}
            )
        except PersistenceError:
            logger.warning("board.touch_failed", deal_id=deal_id)
            await self.reload()
            raise
        self.store.upsert_local(deal)
        return deal


class BoardRegistry:
    """One PipelineBoard per user, created and loaded on first use.

    At most max_boards boards are kept; the least recently used one is
    dropped first and simply reloaded if its user comes back. First loads
    are serialized per user, so a slow fetch only delays that user.

    Args:
        persistence: Storage collaborator shared by every board.
        clock: Clock shared by every board.
        stale_after_days: Passed through to each PipelineBoard.
        upcoming_limit: Passed through to each PipelineBoard.
        max_boards: Number of boards kept in memory.
    """

    def __init__(
        self,
        persistence: DealPersistence,
        clock: Clock,
        stale_after_days: int = DEFAULT_STALE_AFTER_DAYS,
        upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
        max_boards: int = DEFAULT_MAX_BOARDS,
    ) -> None:
        if max_boards < 1:
            raise ValueError("max_boards must be at least 1")
        self._persistence = persistence
        self._clock = clock
        self._stale_after_days = stale_after_days
        self._upcoming_limit = upcoming_limit
        self._max_boards = max_boards
        self._boards: OrderedDict[str, PipelineBoard] = OrderedDict()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        return len(self._boards)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._boards

    def _cached(self, user_id: str) -> PipelineBoard | None:
        board = self._boards.get(user_id)
        if board is not None:
            self._boards.move_to_end(user_id)
        return board

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def for_user(self, user_id: str) -> PipelineBoard:
        """The user's board; the first call performs the initial load."""
        board = self._cached(user_id)
        if board is not None:
            return board

        async with self._lock_for(user_id):
            board = self._cached(user_id)
            if board is None:
                board = PipelineBoard(
                    self._persistence,
                    self._clock,
                    identity=lambda: user_id,
                    stale_after_days=self._stale_after_days,
                    upcoming_limit=self._upcoming_limit,
                )
                await board.load()
                self._boards[user_id] = board
                logger.info("board.created", user_id=user_id, state=board.state.value)
                while len(self._boards) > self._max_boards:
                    evicted, _ = self._boards.popitem(last=False)
                    logger.info("board.evicted", user_id=evicted)
        return board
