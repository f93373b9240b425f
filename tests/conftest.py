"""Shared fixtures for deal board tests.

Provides:
- FixedClock: deterministic Clock pinned to 2024-06-15 10:00 Europe/Amsterdam
- InMemoryDealPersistence: DealPersistence test double with call recording
  and per-operation failure injection
- make_deal: factory for Deal snapshots with sensible defaults
- board: a loaded PipelineBoard wired to the in-memory double
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from src.dealboard.board.service import PipelineBoard
from src.dealboard.deals.persistence import DealPersistence, PersistenceError
from src.dealboard.deals.schemas import (
    Deal,
    DealCreate,
    DealType,
    Prospect,
    ProspectCreate,
)

TZ = ZoneInfo("Europe/Amsterdam")
NOW = datetime(2024, 6, 15, 10, 0, tzinfo=TZ)
USER_ID = "user-1"


# ── Clock ────────────────────────────────────────────────────────────────────


class FixedClock:
    """Clock that returns a settable instant."""

    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemoryDealPersistence(DealPersistence):
    """In-memory DealPersistence for testing without database.

    Every call is appended to ``calls`` as (operation, *args). Operations
    named in ``fail_on`` raise PersistenceError before touching state.
    """

    def __init__(self, deals: list[Deal] | None = None) -> None:
        self._deals: dict[str, Deal] = {d.id: d for d in deals or []}
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: set[str] = set()

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if operation in self.fail_on:
            raise PersistenceError(operation, "simulated outage")

    def calls_to(self, operation: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == operation]

    def stored(self, deal_id: str) -> Deal | None:
        return self._deals.get(deal_id)

    def seed(self, *deals: Deal) -> None:
        for deal in deals:
            self._deals[deal.id] = deal

    async def fetch_deals(self, user_id: str) -> list[Deal]:
        self._record("fetch_deals", user_id)
        owned = [d for d in self._deals.values() if d.user_id == user_id]
        return sorted(owned, key=lambda d: d.created_at, reverse=True)

    async def insert_deal(self, user_id: str, data: DealCreate, now: datetime) -> Deal:
        self._record("insert_deal", user_id, data, now)
        deal = Deal(
            id=str(uuid.uuid4()),
            user_id=user_id,
            stage_id=data.stage_id,
            organization=data.organization,
            deal_type=data.deal_type,
            amount=data.amount,
            next_action_at=data.next_action_at,
            notes=data.notes,
            company_url=data.company_url,
            contact_url=data.contact_url,
            last_activity_at=now,
            created_at=now,
        )
        self._deals[deal.id] = deal
        return deal

    async def update_deal(self, deal_id: str, fields: dict[str, Any]) -> Deal:
        self._record("update_deal", deal_id, dict(fields))
        deal = self._deals.get(deal_id)
        if deal is None:
            raise PersistenceError("update_deal", f"Deal not found: id={deal_id}")
        updated = deal.model_copy(update=fields)
        self._deals[deal_id] = updated
        return updated

    async def delete_deal(self, deal_id: str) -> None:
        self._record("delete_deal", deal_id)
        if self._deals.pop(deal_id, None) is None:
            raise PersistenceError("delete_deal", f"Deal not found: id={deal_id}")

    async def insert_prospect(self, deal_id: str, data: ProspectCreate) -> Prospect:
        self._record("insert_prospect", deal_id, data)
        deal = self._deals.get(deal_id)
        if deal is None:
            raise PersistenceError("insert_prospect", f"Deal not found: id={deal_id}")
        prospect = Prospect(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            name=data.name,
            notes=data.notes,
            created_at=NOW,
        )
        self._deals[deal_id] = deal.model_copy(update={"prospects": [*deal.prospects, prospect]})
        return prospect

    async def delete_prospect(self, prospect_id: str) -> str:
        self._record("delete_prospect", prospect_id)
        for deal in self._deals.values():
            remaining = [p for p in deal.prospects if p.id != prospect_id]
            if len(remaining) != len(deal.prospects):
                self._deals[deal.id] = deal.model_copy(update={"prospects": remaining})
                return deal.id
        raise PersistenceError("delete_prospect", f"Prospect not found: id={prospect_id}")


# ── Factories ────────────────────────────────────────────────────────────────


def _make_deal(**overrides: Any) -> Deal:
    defaults: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "user_id": USER_ID,
        "stage_id": "suspect",
        "organization": "Acme Corp",
        "deal_type": DealType.CUSTOMER,
        "amount": None,
        "last_activity_at": NOW,
        "created_at": NOW,
    }
    defaults.update(overrides)
    return Deal(**defaults)


@pytest.fixture
def make_deal():
    """Factory for Deal snapshots: make_deal(stage_id="won", amount=100.0)."""
    return _make_deal


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def persistence() -> InMemoryDealPersistence:
    return InMemoryDealPersistence()


@pytest_asyncio.fixture
async def board(persistence, clock) -> PipelineBoard:
    """PipelineBoard for USER_ID, loaded from the (initially empty) double."""
    b = PipelineBoard(persistence, clock, identity=lambda: USER_ID)
    await b.load()
    return b
