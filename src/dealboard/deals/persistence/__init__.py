"""Persistence layer -- pluggable adapter between the board and storage.

Provides the abstract DealPersistence interface and its implementation:
- PostgresDealPersistence: PostgreSQL storage wrapping DealRepository

All failures surface as PersistenceError.
"""

from src.dealboard.deals.persistence.adapter import DealPersistence, PersistenceError
from src.dealboard.deals.persistence.postgres import PostgresDealPersistence

__all__ = [
    "DealPersistence",
    "PersistenceError",
    "PostgresDealPersistence",
]
