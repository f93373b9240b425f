"""Deal store -- the authoritative in-memory deal collection for one user.

DealStore is an owned container (one per board), never module-level state.
Order is fetch order: most recently created first. New deals inserted locally
go to the front, matching what a fresh fetch would return.

All operations are synchronous and perform no I/O, so a store mutation that
precedes an awaited write is observable before that write completes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from src.dealboard.deals.schemas import Deal
from src.dealboard.deals.stages import validate_stage_id

logger = structlog.get_logger(__name__)

Listener = Callable[[], None]


class DealNotFoundError(LookupError):
    """Raised when a deal id is not present in the store."""

    def __init__(self, deal_id: str) -> None:
        self.deal_id = deal_id
        super().__init__(f"Deal not found: id={deal_id}")


class ProspectNotFoundError(LookupError):
    """Raised when no deal in the store carries the given prospect id."""

    def __init__(self, prospect_id: str) -> None:
        self.prospect_id = prospect_id
        super().__init__(f"Prospect not found: id={prospect_id}")


class DealStore:
    """Ordered collection of Deal snapshots keyed by id.

    Deals are frozen; updating one means replacing it by id. Every mutation
    bumps ``version`` and notifies subscribers afterwards.
    """

    def __init__(self, deals: Iterable[Deal] = ()) -> None:
        self._deals: list[Deal] = []
        self._version = 0
        self._listeners: list[Listener] = []
        for deal in deals:
            validate_stage_id(deal.stage_id)
            self._deals.append(deal)

    # ── Reads ───────────────────────────────────────────────────────────────

    def list(self) -> list[Deal]:
        """Snapshot of all deals in fetch order."""
        return list(self._deals)

    def get(self, deal_id: str) -> Deal | None:
        for deal in self._deals:
            if deal.id == deal_id:
                return deal
        return None

    def require(self, deal_id: str) -> Deal:
        """Like get(), but raises DealNotFoundError for unknown ids."""
        deal = self.get(deal_id)
        if deal is None:
            raise DealNotFoundError(deal_id)
        return deal

    def owner_of_prospect(self, prospect_id: str) -> Deal:
        """The deal embedding a prospect.

        Raises:
            ProspectNotFoundError: If no deal in the store has that prospect.
        """
        for deal in self._deals:
            if any(p.id == prospect_id for p in deal.prospects):
                return deal
        raise ProspectNotFoundError(prospect_id)

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._deals)

    def __contains__(self, deal_id: object) -> bool:
        return any(deal.id == deal_id for deal in self._deals)

    # ── Mutations ───────────────────────────────────────────────────────────

    def upsert_local(self, deal: Deal) -> None:
        """Replace the deal with the same id in place, or insert it at the front.

        Raises:
            UnknownStageError: If deal.stage_id is not a registered stage.
        """
        validate_stage_id(deal.stage_id)
        for idx, existing in enumerate(self._deals):
            if existing.id == deal.id:
                self._deals[idx] = deal
                break
        else:
            self._deals.insert(0, deal)
        self._changed()

    def remove_local(self, deal_id: str) -> bool:
        """Drop a deal (and with it its embedded prospects). Returns False if absent."""
        before = len(self._deals)
        self._deals = [d for d in self._deals if d.id != deal_id]
        if len(self._deals) == before:
            return False
        self._changed()
        return True

    def replace_all(self, deals: Iterable[Deal]) -> None:
        """Swap in a freshly fetched collection, discarding all local state."""
        fresh = list(deals)
        for deal in fresh:
            validate_stage_id(deal.stage_id)
        self._deals = fresh
        self._changed()

    # ── Subscriptions ───────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every mutation.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("deal_store.listener_failed", version=self._version)
