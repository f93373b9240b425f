"""PostgreSQL persistence adapter -- DealPersistence backed by DealRepository.

Delegates every call to the repository and translates its failures into
PersistenceError, which is the only failure type the board handles:
SQLAlchemyError, missing rows reported as ValueError, and transport errors
from the driver (refused connections, timeouts) that surface as OSError or
asyncio.TimeoutError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from datetime import datetime
from typing import Any, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.dealboard.deals.persistence.adapter import DealPersistence, PersistenceError
from src.dealboard.deals.repository import DealRepository
from src.dealboard.deals.schemas import Deal, DealCreate, Prospect, ProspectCreate

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PostgresDealPersistence(DealPersistence):
    """DealPersistence implementation over PostgreSQL via DealRepository.

    Args:
        repository: DealRepository instance for database operations.
    """

    def __init__(self, repository: DealRepository) -> None:
        self._repo = repository

    async def _call(self, operation: str, call: Awaitable[T], **context: Any) -> T:
        try:
            return await call
        except (SQLAlchemyError, ValueError, OSError, asyncio.TimeoutError) as exc:
            # bare timeouts carry no message
            detail = str(exc) or type(exc).__name__
            logger.warning(
                "postgres_persistence.call_failed",
                operation=operation,
                error=detail,
                **context,
            )
            raise PersistenceError(operation, detail) from exc

    async def fetch_deals(self, user_id: str) -> list[Deal]:
        """Fetch all deals of a user from PostgreSQL."""
        return await self._call(
            "fetch_deals", self._repo.list_deals(user_id), user_id=user_id
        )

    async def insert_deal(self, user_id: str, data: DealCreate, now: datetime) -> Deal:
        """Insert a deal in PostgreSQL."""
        deal = await self._call(
            "insert_deal", self._repo.create_deal(user_id, data, now), user_id=user_id
        )
        logger.info("postgres_persistence.deal_inserted", deal_id=deal.id, user_id=user_id)
        return deal

    async def update_deal(self, deal_id: str, fields: dict[str, Any]) -> Deal:
        """Update deal columns in PostgreSQL."""
        deal = await self._call(
            "update_deal", self._repo.update_deal(deal_id, fields), deal_id=deal_id
        )
        logger.info(
            "postgres_persistence.deal_updated",
            deal_id=deal_id,
            fields=sorted(fields),
        )
        return deal

    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal in PostgreSQL."""
        await self._call("delete_deal", self._repo.delete_deal(deal_id), deal_id=deal_id)
        logger.info("postgres_persistence.deal_deleted", deal_id=deal_id)

    async def insert_prospect(self, deal_id: str, data: ProspectCreate) -> Prospect:
        """Insert a prospect in PostgreSQL."""
        return await self._call(
            "insert_prospect", self._repo.create_prospect(deal_id, data), deal_id=deal_id
        )

    async def delete_prospect(self, prospect_id: str) -> str:
        """Delete a prospect in PostgreSQL."""
        return await self._call(
            "delete_prospect",
            self._repo.delete_prospect(prospect_id),
            prospect_id=prospect_id,
        )
