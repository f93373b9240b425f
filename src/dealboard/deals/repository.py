"""Deal repository -- async CRUD for deals and their prospects.

Provides DealRepository with the session_factory callable pattern. Handles
conversion between SQLAlchemy rows and the frozen Deal/Prospect schemas.
Every write re-reads the affected deal (with prospects eagerly loaded) so
callers always receive the persisted state, including server defaults.

Missing rows raise ValueError; the persistence adapter translates both those
and SQLAlchemy errors into PersistenceError for the board.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.dealboard.deals.models import DealModel, ProspectModel
from src.dealboard.deals.schemas import (
    Deal,
    DealCreate,
    DealType,
    Prospect,
    ProspectCreate,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_prospect(model: ProspectModel) -> Prospect:
    """Convert ProspectModel to Prospect schema."""
    return Prospect(
        id=str(model.id),
        deal_id=str(model.deal_id),
        name=model.name,
        notes=model.notes,
        created_at=model.created_at,
    )


def _model_to_deal(model: DealModel) -> Deal:
    """Convert DealModel (prospects loaded) to Deal schema."""
    return Deal(
        id=str(model.id),
        user_id=model.user_id,
        stage_id=model.stage_id,
        organization=model.organization,
        deal_type=DealType(model.deal_type),
        amount=model.amount,
        next_action_at=model.next_action_at,
        notes=model.notes,
        company_url=model.company_url,
        contact_url=model.contact_url,
        last_activity_at=model.last_activity_at,
        created_at=model.created_at,
        prospects=[_model_to_prospect(p) for p in model.prospects],
    )


def _column_value(value: Any) -> Any:
    if isinstance(value, DealType):
        return value.value
    return value


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for deals and prospects.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def _load_deal(self, session: AsyncSession, deal_id: uuid.UUID) -> DealModel | None:
        stmt = (
            select(DealModel)
            .options(selectinload(DealModel.prospects))
            .where(DealModel.id == deal_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    # ── Deals ───────────────────────────────────────────────────────────────

    async def list_deals(self, user_id: str) -> list[Deal]:
        """List all deals owned by a user, most recently created first.

        Args:
            user_id: Owner id.

        Returns:
            List of Deal objects with prospects embedded.
        """
        async for session in self._session_factory():
            stmt = (
                select(DealModel)
                .options(selectinload(DealModel.prospects))
                .where(DealModel.user_id == user_id)
                .order_by(DealModel.created_at.desc())
            )
            result = await session.execute(stmt)
            return [_model_to_deal(m) for m in result.scalars().all()]

    async def get_deal(self, deal_id: str) -> Deal | None:
        """Get a deal by ID, or None if it does not exist."""
        async for session in self._session_factory():
            model = await self._load_deal(session, uuid.UUID(deal_id))
            if model is None:
                return None
            return _model_to_deal(model)

    async def create_deal(self, user_id: str, data: DealCreate, now: datetime) -> Deal:
        """Create a new deal.

        Args:
            user_id: Owner id.
            data: Validated DealCreate payload.
            now: Clock value used for both created_at and last_activity_at.

        Returns:
            The persisted Deal.
        """
        async for session in self._session_factory():
            model = DealModel(
                id=uuid.uuid4(),
                user_id=user_id,
                stage_id=data.stage_id,
                organization=data.organization,
                deal_type=data.deal_type.value,
                amount=data.amount,
                next_action_at=data.next_action_at,
                notes=data.notes,
                company_url=data.company_url,
                contact_url=data.contact_url,
                last_activity_at=now,
                created_at=now,
            )
            session.add(model)
            await session.commit()
            loaded = await self._load_deal(session, model.id)
            return _model_to_deal(loaded)

    async def update_deal(self, deal_id: str, fields: dict[str, Any]) -> Deal:
        """Update columns of an existing deal.

        Args:
            deal_id: Deal UUID string.
            fields: Column name to new value; only these columns are written.

        Returns:
            Updated Deal.

        Raises:
            ValueError: If the deal does not exist.
        """
        async for session in self._session_factory():
            model = await self._load_deal(session, uuid.UUID(deal_id))
            if model is None:
                raise ValueError(f"Deal not found: id={deal_id}")

            for key, value in fields.items():
                setattr(model, key, _column_value(value))

            await session.commit()
            loaded = await self._load_deal(session, model.id)
            return _model_to_deal(loaded)

    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal and, by cascade, its prospects.

        Raises:
            ValueError: If the deal does not exist.
        """
        async for session in self._session_factory():
            model = await self._load_deal(session, uuid.UUID(deal_id))
            if model is None:
                raise ValueError(f"Deal not found: id={deal_id}")
            await session.delete(model)
            await session.commit()
            logger.debug("deal_repository.deal_deleted", deal_id=deal_id)

    # ── Prospects ───────────────────────────────────────────────────────────

    async def create_prospect(self, deal_id: str, data: ProspectCreate) -> Prospect:
        """Attach a new prospect to a deal.

        Raises:
            ValueError: If the parent deal does not exist.
        """
        async for session in self._session_factory():
            parent = await self._load_deal(session, uuid.UUID(deal_id))
            if parent is None:
                raise ValueError(f"Deal not found: id={deal_id}")

            model = ProspectModel(
                id=uuid.uuid4(),
                deal_id=parent.id,
                name=data.name,
                notes=data.notes,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_prospect(model)

    async def delete_prospect(self, prospect_id: str) -> str:
        """Delete a prospect.

        Returns:
            The id of the deal the prospect belonged to.

        Raises:
            ValueError: If the prospect does not exist.
        """
        async for session in self._session_factory():
            stmt = select(ProspectModel).where(ProspectModel.id == uuid.UUID(prospect_id))
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                raise ValueError(f"Prospect not found: id={prospect_id}")

            deal_id = str(model.deal_id)
            await session.delete(model)
            await session.commit()
            return deal_id
