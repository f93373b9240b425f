"""Read-side projections over the deal collection.

Every function here is pure: it takes a sequence of Deal snapshots (and a
``now`` where dates matter) and returns a fresh value. Nothing is cached;
the board recomputes its summary from the store on every read, and callers
that want memoization can key on DealStore.version.

Amounts that are absent count as 0 inside sums and are otherwise left absent.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel

from src.dealboard.board.search import filter_deals
from src.dealboard.deals.schemas import Deal, DealType
from src.dealboard.deals.stages import STAGES, WON_STAGE_ID, non_won_stages

DEFAULT_STALE_AFTER_DAYS = 14
DEFAULT_UPCOMING_LIMIT = 6


# ── Result Models ───────────────────────────────────────────────────────────


class FunnelStage(BaseModel):
    stage_id: str
    name: str
    count: int
    percentage: int


class TypeShare(BaseModel):
    deal_type: DealType
    count: int
    share: float


class DueClass(str, Enum):
    OVERDUE = "overdue"
    TODAY = "today"
    TOMORROW = "tomorrow"
    LATER = "later"


class UpcomingAction(BaseModel):
    deal_id: str
    organization: str
    stage_id: str
    next_action_at: date
    due: DueClass


class UpcomingActions(BaseModel):
    items: list[UpcomingAction]
    remaining: int


class StageBar(BaseModel):
    stage_id: str
    name: str
    count: int
    width: float


class BoardColumn(BaseModel):
    stage_id: str
    name: str
    position: int
    total: float
    deals: list[Deal]


class BoardSummary(BaseModel):
    """Everything the board view renders, computed in one pass.

    Columns honour the search query; every other figure is computed over
    the full, unfiltered deal set.
    """

    query: str
    columns: list[BoardColumn]
    pipeline_value: float
    won_value: float
    total_value: float
    deal_count: int
    overdue_count: int
    stale_count: int
    stale_deal_ids: list[str]
    funnel: list[FunnelStage]
    type_distribution: list[TypeShare]
    upcoming_actions: UpcomingActions
    stage_bars: list[StageBar]


# ── Helpers ─────────────────────────────────────────────────────────────────


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, not 2)."""
    return math.floor(value + 0.5)


def _today(now: datetime) -> date:
    return now.date()


# ── Grouping & Totals ───────────────────────────────────────────────────────


def group_by_stage(deals: Iterable[Deal]) -> dict[str, list[Deal]]:
    """Bucket deals per stage; every registered stage is present, in order.

    Deals keep their relative order within a bucket.
    """
    grouped: dict[str, list[Deal]] = {stage.id: [] for stage in STAGES}
    for deal in deals:
        if deal.stage_id in grouped:
            grouped[deal.stage_id].append(deal)
    return grouped


def stage_total(deals: Iterable[Deal]) -> float:
    return sum((deal.amount or 0.0 for deal in deals), 0.0)


def stage_totals(grouped: dict[str, list[Deal]]) -> dict[str, float]:
    return {stage_id: stage_total(bucket) for stage_id, bucket in grouped.items()}


def pipeline_value(deals: Iterable[Deal]) -> float:
    """Sum of amounts of all deals that are not won yet."""
    return stage_total(d for d in deals if d.stage_id != WON_STAGE_ID)


def won_value(deals: Iterable[Deal]) -> float:
    return stage_total(d for d in deals if d.stage_id == WON_STAGE_ID)


def total_value(deals: Sequence[Deal]) -> float:
    return pipeline_value(deals) + won_value(deals)


# ── Dates ───────────────────────────────────────────────────────────────────


def is_overdue(deal: Deal, now: datetime) -> bool:
    """True when the next action date lies strictly before today."""
    if deal.next_action_at is None:
        return False
    return deal.next_action_at < _today(now)


def is_due_today(deal: Deal, now: datetime) -> bool:
    if deal.next_action_at is None:
        return False
    return deal.next_action_at == _today(now)


def overdue_count(deals: Iterable[Deal], now: datetime) -> int:
    return sum(1 for deal in deals if is_overdue(deal, now))


def is_stale(
    deal: Deal, now: datetime, stale_after_days: int = DEFAULT_STALE_AFTER_DAYS
) -> bool:
    """True for a non-won deal without activity for at least stale_after_days whole days."""
    if deal.stage_id == WON_STAGE_ID:
        return False
    # timedelta.days floors, so 13 days 23 hours counts as 13
    return (now - deal.last_activity_at).days >= stale_after_days


def stale_deals(
    deals: Iterable[Deal], now: datetime, stale_after_days: int = DEFAULT_STALE_AFTER_DAYS
) -> list[Deal]:
    return [deal for deal in deals if is_stale(deal, now, stale_after_days)]


def due_class(action_date: date, now: datetime) -> DueClass:
    today = _today(now)
    if action_date < today:
        return DueClass.OVERDUE
    if action_date == today:
        return DueClass.TODAY
    if action_date == today + timedelta(days=1):
        return DueClass.TOMORROW
    return DueClass.LATER


# ── Distributions ───────────────────────────────────────────────────────────


def funnel(deals: Sequence[Deal]) -> list[FunnelStage]:
    """Share of open deals per non-won stage, as rounded percentages.

    Percentages are rounded independently, so their sum can drift from 100:
    by at most one with up to three populated stages, more with six equally
    filled ones (6 x 17 = 102).
    """
    open_deals = [d for d in deals if d.stage_id != WON_STAGE_ID]
    total = len(open_deals)
    result: list[FunnelStage] = []
    for stage in non_won_stages():
        count = sum(1 for d in open_deals if d.stage_id == stage.id)
        percentage = round_half_up(100 * count / total) if total > 0 else 0
        result.append(
            FunnelStage(stage_id=stage.id, name=stage.name, count=count, percentage=percentage)
        )
    return result


def type_distribution(deals: Sequence[Deal]) -> list[TypeShare]:
    total = len(deals)
    shares: list[TypeShare] = []
    for deal_type in DealType:
        count = sum(1 for d in deals if d.deal_type == deal_type)
        shares.append(
            TypeShare(
                deal_type=deal_type,
                count=count,
                share=count / total if total > 0 else 0.0,
            )
        )
    return shares


def upcoming_actions(
    deals: Iterable[Deal], now: datetime, limit: int = DEFAULT_UPCOMING_LIMIT
) -> UpcomingActions:
    """Deals with a next action date, soonest first, truncated to limit."""
    dated = sorted(
        (d for d in deals if d.next_action_at is not None),
        key=lambda d: d.next_action_at,
    )
    items = [
        UpcomingAction(
            deal_id=d.id,
            organization=d.organization,
            stage_id=d.stage_id,
            next_action_at=d.next_action_at,
            due=due_class(d.next_action_at, now),
        )
        for d in dated[:limit]
    ]
    return UpcomingActions(items=items, remaining=max(len(dated) - limit, 0))


def stage_bars(deals: Iterable[Deal]) -> list[StageBar]:
    """Per-stage deal counts with bar widths relative to the fullest stage."""
    grouped = group_by_stage(deals)
    max_count = max(max((len(b) for b in grouped.values()), default=0), 1)
    return [
        StageBar(
            stage_id=stage.id,
            name=stage.name,
            count=len(grouped[stage.id]),
            width=100 * len(grouped[stage.id]) / max_count,
        )
        for stage in STAGES
    ]


# ── Summary ─────────────────────────────────────────────────────────────────


def summarize(
    deals: Sequence[Deal],
    now: datetime,
    query: str = "",
    stale_after_days: int = DEFAULT_STALE_AFTER_DAYS,
    upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
) -> BoardSummary:
    """Build the full board view.

    Args:
        deals: All deals of the user, in store order.
        now: Current time from the board clock.
        query: Organization search; only narrows the columns.
        stale_after_days: Inactivity threshold for stale deals.
        upcoming_limit: Maximum number of upcoming actions listed.
    """
    grouped = group_by_stage(filter_deals(deals, query))
    totals = stage_totals(grouped)
    columns = [
        BoardColumn(
            stage_id=stage.id,
            name=stage.name,
            position=stage.position,
            total=totals[stage.id],
            deals=grouped[stage.id],
        )
        for stage in STAGES
    ]
    stale = stale_deals(deals, now, stale_after_days)
    pipeline = pipeline_value(deals)
    won = won_value(deals)

    return BoardSummary(
        query=query,
        columns=columns,
        pipeline_value=pipeline,
        won_value=won,
        total_value=pipeline + won,
        deal_count=len(deals),
        overdue_count=overdue_count(deals, now),
        stale_count=len(stale),
        stale_deal_ids=[d.id for d in stale],
        funnel=funnel(deals),
        type_distribution=type_distribution(deals),
        upcoming_actions=upcoming_actions(deals, now, upcoming_limit),
        stage_bars=stage_bars(deals),
    )
