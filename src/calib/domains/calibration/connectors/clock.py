"""Wall-clock implementation of the Clock protocol."""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo


class SystemClock:
    """Reads the system clock; "today" is computed in the user's timezone."""

    def __init__(self, tz: tzinfo | str = timezone.utc) -> None:
        self._tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def today(self) -> date:
        return self.now().date()
