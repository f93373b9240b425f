"""Wall-clock source shared by the board.

Every timestamp the board writes (last_activity_at) and every date-relative
computation (overdue, stale, upcoming actions) reads from one Clock so that
comparisons within a session are consistent.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Anything with a now() returning an aware datetime."""

    def now(self) -> datetime: ...


class SystemClock:
    """Clock backed by the system time, localized to the board's timezone.

    Args:
        timezone: IANA timezone name; defines where "today" starts.
    """

    def __init__(self, timezone: str = "Europe/Amsterdam") -> None:
        self._tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._tz)
