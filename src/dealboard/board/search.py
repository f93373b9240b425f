"""Organization search for the board columns."""

from __future__ import annotations

from collections.abc import Sequence

from src.dealboard.deals.schemas import Deal


def filter_deals(deals: Sequence[Deal], query: str | None) -> list[Deal]:
    """Deals whose organization contains query, ignoring case.

    A blank query matches everything; order is preserved either way.
    """
    if query is None or not query.strip():
        return list(deals)
    needle = query.casefold()
    return [deal for deal in deals if needle in deal.organization.casefold()]
