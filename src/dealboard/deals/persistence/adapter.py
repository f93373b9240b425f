"""Persistence adapter abstract base class -- the board's storage contract.

The board never talks to a database directly. Every write and every reload
goes through a DealPersistence implementation, which reports any failure
(transport, authorization, missing row) uniformly as PersistenceError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from src.dealboard.deals.schemas import Deal, DealCreate, Prospect, ProspectCreate


class PersistenceError(RuntimeError):
    """A persistence call failed; the caller decides whether to reload."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class DealPersistence(ABC):
    """Abstract interface for deal storage backends.

    Methods:
        fetch_deals: All deals of a user, prospects embedded, newest first.
        insert_deal: Create a deal, return the stored Deal.
        update_deal: Write the given fields, return the stored Deal.
        delete_deal: Delete a deal and its prospects.
        insert_prospect: Attach a prospect to a deal, return it.
        delete_prospect: Delete a prospect, return its parent deal id.
    """

    @abstractmethod
    async def fetch_deals(self, user_id: str) -> list[Deal]:
        """All deals of a user, prospects embedded, newest first."""
        ...

    @abstractmethod
    async def insert_deal(self, user_id: str, data: DealCreate, now: datetime) -> Deal:
        """Create a deal stamped with now, return the stored Deal."""
        ...

    @abstractmethod
    async def update_deal(self, deal_id: str, fields: dict[str, Any]) -> Deal:
        """Write the given fields, return the stored Deal."""
        ...

    @abstractmethod
    async def delete_deal(self, deal_id: str) -> None:
        """Delete a deal and its prospects."""
        ...

    @abstractmethod
    async def insert_prospect(self, deal_id: str, data: ProspectCreate) -> Prospect:
        """Attach a prospect to a deal, return it."""
        ...

    @abstractmethod
    async def delete_prospect(self, prospect_id: str) -> str:
        """Delete a prospect, return its parent deal id."""
        ...
