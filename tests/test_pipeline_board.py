"""Unit tests for PipelineBoard -- the board service used by the API.

Tests cover:
- load/reload and the LOADING/READY/ERROR states
- create/update/delete: store changes only after persistence succeeds
- change_stage, move_forward/move_backward at the pipeline ends
- add_prospect/remove_prospect including the touch-failure reload
- summary and drag wiring
- BoardRegistry: one board per user, loaded once
"""

from __future__ import annotations

import asyncio
import gc
from datetime import timedelta

import pytest

from src.dealboard.board.engine import TransitionOutcome
from src.dealboard.board.service import (
    BoardRegistry,
    BoardUnavailableError,
    LoadState,
    PipelineBoard,
    ProspectNotAllowedError,
)
from src.dealboard.board.store import DealNotFoundError, ProspectNotFoundError
from src.dealboard.core.identity import NotAuthenticatedError
from src.dealboard.deals.persistence import PersistenceError
from src.dealboard.deals.schemas import DealCreate, DealType, DealUpdate, ProspectCreate


# ── Loading ─────────────────────────────────────────────────────────────────


class TestLoading:
    async def test_load_fetches_users_deals_newest_first(self, persistence, clock, make_deal):
        old = make_deal(id="old", created_at=clock.now() - timedelta(days=3))
        new = make_deal(id="new", created_at=clock.now())
        other = make_deal(id="other", user_id="someone-else")
        persistence.seed(old, new, other)
        board = PipelineBoard(persistence, clock, identity=lambda: "user-1")

        assert board.state == LoadState.LOADING
        assert await board.load() == LoadState.READY
        assert [d.id for d in board.list_deals()] == ["new", "old"]

    async def test_failed_load_sets_error_and_keeps_store(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="a"))
        await board.reload()
        persistence.fail_on.add("fetch_deals")

        assert await board.reload() == LoadState.ERROR
        assert "simulated outage" in board.error
        assert [d.id for d in board.list_deals()] == ["a"]
        with pytest.raises(BoardUnavailableError):
            board.require_ready()

    async def test_reload_recovers_from_error(self, board, persistence):
        persistence.fail_on.add("fetch_deals")
        await board.reload()
        persistence.fail_on.clear()

        assert await board.reload() == LoadState.READY
        assert board.error is None
        board.require_ready()

    async def test_load_requires_identity(self, persistence, clock):
        def nobody() -> str:
            raise NotAuthenticatedError("nobody signed in")

        board = PipelineBoard(persistence, clock, identity=nobody)
        with pytest.raises(NotAuthenticatedError):
            await board.load()
        assert persistence.calls == []


# ── Deal Writes ─────────────────────────────────────────────────────────────


class TestCreateDeal:
    async def test_create_stamps_now_and_inserts_at_front(self, board, clock, make_deal):
        board.store.upsert_local(make_deal(id="existing"))

        deal = await board.create_deal(DealCreate(organization="Acme Corp", amount="10.000"))

        assert deal.user_id == "user-1"
        assert deal.stage_id == "suspect"
        assert deal.amount == 10000.0
        assert deal.last_activity_at == clock.now()
        assert board.list_deals()[0].id == deal.id

    async def test_failed_create_leaves_store_unchanged(self, board, persistence):
        persistence.fail_on.add("insert_deal")
        version = board.store.version

        with pytest.raises(PersistenceError):
            await board.create_deal(DealCreate(organization="Acme"))

        assert len(board.store) == 0
        assert board.store.version == version

    async def test_create_requires_identity(self, persistence, clock):
        def nobody() -> str:
            raise NotAuthenticatedError("nobody signed in")

        board = PipelineBoard(persistence, clock, identity=nobody)
        with pytest.raises(NotAuthenticatedError):
            await board.create_deal(DealCreate(organization="Acme"))
        assert persistence.calls == []


class TestUpdateDeal:
    async def test_only_provided_fields_written(self, board, persistence, clock, make_deal):
        deal = make_deal(id="d1", notes="keep", amount=5.0)
        persistence.seed(deal)
        await board.reload()
        clock.advance(hours=2)

        updated = await board.update_deal("d1", DealUpdate(amount="1.250,50"))

        assert persistence.calls_to("update_deal") == [
            ("update_deal", "d1", {"amount": 1250.5, "last_activity_at": clock.now()})
        ]
        assert updated.notes == "keep"
        assert board.store.get("d1").amount == 1250.5
        assert board.store.get("d1").last_activity_at == clock.now()

    async def test_update_can_change_type_and_stage(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1"))
        await board.reload()

        await board.update_deal("d1", DealUpdate(deal_type="partner", stage_id="meeting"))

        local = board.store.get("d1")
        assert local.deal_type == DealType.PARTNER
        assert local.stage_id == "meeting"

    async def test_failed_update_leaves_store_unchanged(self, board, persistence, make_deal):
        deal = make_deal(id="d1", notes="before")
        persistence.seed(deal)
        await board.reload()
        persistence.fail_on.add("update_deal")

        with pytest.raises(PersistenceError):
            await board.update_deal("d1", DealUpdate(notes="after"))

        assert board.store.get("d1") == deal

    async def test_update_unknown_deal(self, board, persistence):
        with pytest.raises(DealNotFoundError):
            await board.update_deal("missing", DealUpdate(notes="x"))
        assert persistence.calls_to("update_deal") == []


class TestDeleteDeal:
    async def test_delete_removes_locally_after_success(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1"), make_deal(id="d2"))
        await board.reload()

        await board.delete_deal("d1")

        assert "d1" not in board.store
        assert persistence.stored("d1") is None

    async def test_failed_delete_keeps_deal(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1"))
        await board.reload()
        persistence.fail_on.add("delete_deal")

        with pytest.raises(PersistenceError):
            await board.delete_deal("d1")
        assert "d1" in board.store


# ── Stage Transitions ───────────────────────────────────────────────────────


class TestStageNavigation:
    async def test_change_stage_delegates_to_engine(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1"))
        await board.reload()

        assert await board.change_stage("d1", "proposal") == TransitionOutcome.APPLIED
        assert board.store.get("d1").stage_id == "proposal"

    async def test_move_forward_and_backward(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", stage_id="meeting"))
        await board.reload()

        await board.move_forward("d1")
        assert board.store.get("d1").stage_id == "proposal"
        await board.move_backward("d1")
        await board.move_backward("d1")
        assert board.store.get("d1").stage_id == "prospect"

    async def test_forward_at_won_is_unchanged(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", stage_id="won"))
        await board.reload()

        assert await board.move_forward("d1") == TransitionOutcome.UNCHANGED
        assert persistence.calls_to("update_deal") == []

    async def test_backward_at_first_stage_is_unchanged(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", stage_id="suspect"))
        await board.reload()

        assert await board.move_backward("d1") == TransitionOutcome.UNCHANGED
        assert persistence.calls_to("update_deal") == []

    async def test_rolled_back_change_matches_persistence(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", stage_id="meeting"))
        await board.reload()
        persistence.fail_on.add("update_deal")

        assert await board.move_forward("d1") == TransitionOutcome.ROLLED_BACK
        assert board.store.list() == await persistence.fetch_deals("user-1")
        assert board.state == LoadState.READY

    async def test_failed_rollback_reload_surfaces_unavailable(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", stage_id="meeting"))
        await board.reload()
        persistence.fail_on.update({"update_deal", "fetch_deals"})

        with pytest.raises(BoardUnavailableError, match="simulated outage"):
            await board.change_stage("d1", "won")

        assert board.state == LoadState.ERROR
        with pytest.raises(BoardUnavailableError):
            board.require_ready()

        persistence.fail_on.clear()
        assert await board.reload() == LoadState.READY
        assert board.store.get("d1").stage_id == "meeting"

    async def test_drag_uses_board_engine(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", stage_id="meeting"))
        await board.reload()

        session = board.drag.start("d1", "meeting")
        assert await board.drag.drop(session, "decision") == TransitionOutcome.APPLIED
        assert board.store.get("d1").stage_id == "decision"


# ── Prospects ───────────────────────────────────────────────────────────────


class TestProspects:
    async def test_add_prospect_touches_parent(self, board, persistence, clock, make_deal):
        persistence.seed(make_deal(id="d1", deal_type=DealType.PARTNER))
        await board.reload()
        clock.advance(days=1)

        prospect = await board.add_prospect("d1", ProspectCreate(name="Jane Doe"))

        parent = board.store.get("d1")
        assert [p.id for p in parent.prospects] == [prospect.id]
        assert parent.last_activity_at == clock.now()

    async def test_remove_prospect_touches_parent(self, board, persistence, clock, make_deal):
        persistence.seed(make_deal(id="d1", deal_type=DealType.PARTNER))
        await board.reload()
        prospect = await board.add_prospect("d1", ProspectCreate(name="Jane Doe"))
        clock.advance(days=1)

        parent = await board.remove_prospect(prospect.id)

        assert parent.prospects == []
        assert board.store.get("d1").prospects == []
        assert board.store.get("d1").last_activity_at == clock.now()

    async def test_remove_unknown_prospect(self, board, persistence):
        with pytest.raises(ProspectNotFoundError):
            await board.remove_prospect("nope")
        assert persistence.calls_to("delete_prospect") == []

    async def test_failed_touch_reloads_then_raises(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", deal_type=DealType.PARTNER))
        await board.reload()
        persistence.fail_on.add("update_deal")
        fetches = len(persistence.calls_to("fetch_deals"))

        with pytest.raises(PersistenceError):
            await board.add_prospect("d1", ProspectCreate(name="Jane Doe"))

        assert [p.name for p in board.store.get("d1").prospects] == ["Jane Doe"]
        assert len(persistence.calls_to("fetch_deals")) == fetches + 1

    async def test_customer_deal_rejects_prospects(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", deal_type=DealType.CUSTOMER))
        await board.reload()

        with pytest.raises(ProspectNotAllowedError, match="customer"):
            await board.add_prospect("d1", ProspectCreate(name="Jane Doe"))

        assert persistence.calls_to("insert_prospect") == []
        assert board.store.get("d1").prospects == []

    async def test_failed_prospect_insert_changes_nothing(self, board, persistence, make_deal):
        persistence.seed(make_deal(id="d1", deal_type=DealType.PARTNER))
        await board.reload()
        persistence.fail_on.add("insert_prospect")

        with pytest.raises(PersistenceError):
            await board.add_prospect("d1", ProspectCreate(name="Jane Doe"))
        assert persistence.calls_to("update_deal") == []
        assert board.store.get("d1").prospects == []


# ── Summary ─────────────────────────────────────────────────────────────────


class TestSummary:
    async def test_summary_reflects_store(self, board, persistence, make_deal):
        persistence.seed(
            make_deal(id="a", organization="ACME Corp", amount=100.0),
            make_deal(id="b", organization="Globex", stage_id="won", amount=40.0),
        )
        await board.reload()

        summary = board.summary("acme")

        assert summary.pipeline_value == 100.0
        assert summary.won_value == 40.0
        assert [d.id for d in summary.columns[0].deals] == ["a"]
        assert summary.columns[-1].deals == []

    async def test_summary_uses_configured_limits(self, persistence, clock, make_deal):
        persistence.seed(make_deal(last_activity_at=clock.now() - timedelta(days=3)))
        board = PipelineBoard(persistence, clock, identity=lambda: "user-1", stale_after_days=2)
        await board.load()
        assert board.summary().stale_count == 1


# ── Registry ────────────────────────────────────────────────────────────────


class TestBoardRegistry:
    async def test_one_board_per_user_loaded_once(self, persistence, clock, make_deal):
        persistence.seed(make_deal(id="mine"), make_deal(id="theirs", user_id="user-2"))
        registry = BoardRegistry(persistence, clock)

        first = await registry.for_user("user-1")
        again = await registry.for_user("user-1")
        other = await registry.for_user("user-2")

        assert first is again
        assert first is not other
        assert [d.id for d in first.list_deals()] == ["mine"]
        assert [d.id for d in other.list_deals()] == ["theirs"]
        assert len(persistence.calls_to("fetch_deals")) == 2
        assert len(registry) == 2

    async def test_failed_first_load_is_kept_for_retry(self, persistence, clock):
        persistence.fail_on.add("fetch_deals")
        registry = BoardRegistry(persistence, clock)

        board = await registry.for_user("user-1")
        assert board.state == LoadState.ERROR

        persistence.fail_on.clear()
        assert await (await registry.for_user("user-1")).reload() == LoadState.READY

    async def test_least_recently_used_board_is_evicted(self, persistence, clock, make_deal):
        persistence.seed(make_deal(id="a", user_id="user-a"), make_deal(id="b", user_id="user-b"))
        registry = BoardRegistry(persistence, clock, max_boards=1)

        first = await registry.for_user("user-a")
        await registry.for_user("user-b")

        assert len(registry) == 1
        assert "user-a" not in registry
        again = await registry.for_user("user-a")
        assert again is not first
        assert [d.id for d in again.list_deals()] == ["a"]
        assert len(persistence.calls_to("fetch_deals")) == 3

    async def test_slow_first_load_does_not_block_other_users(self, persistence, clock, make_deal):
        persistence.seed(make_deal(id="theirs", user_id="user-2"))
        registry = BoardRegistry(persistence, clock)
        gate = asyncio.Event()
        fetch = persistence.fetch_deals

        async def gated_fetch(user_id):
            if user_id == "user-1":
                await gate.wait()
            return await fetch(user_id)

        persistence.fetch_deals = gated_fetch
        slow = asyncio.create_task(registry.for_user("user-1"))
        await asyncio.sleep(0)

        other = await asyncio.wait_for(registry.for_user("user-2"), timeout=1)
        assert [d.id for d in other.list_deals()] == ["theirs"]
        assert not slow.done()

        gate.set()
        assert (await slow).state == LoadState.READY

    async def test_load_locks_are_released(self, persistence, clock):
        registry = BoardRegistry(persistence, clock)
        await registry.for_user("user-1")
        gc.collect()
        assert len(registry._locks) == 0

    def test_rejects_empty_cache(self, persistence, clock):
        with pytest.raises(ValueError, match="max_boards"):
            BoardRegistry(persistence, clock, max_boards=0)
