"""Reference clock: the canonical "today" shared by every viewer regardless of their locale."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from .config import DEFAULT_REFERENCE_TIMEZONE, DEFAULT_UNLOCK_CUTOFF_HOUR

NowProvider = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReferenceClock:
    """Computes the unlock day in a fixed zone with a non-midnight cutoff.

    Content drops once per day at ``cutoff_hour`` reference-zone wall time; before
    that hour the previous day is still "today". Nothing is cached, so every call
    reflects the instant returned by ``now_provider`` at that moment.
    """

    def __init__(
        self,
        tz_name: str = DEFAULT_REFERENCE_TIMEZONE,
        cutoff_hour: int = DEFAULT_UNLOCK_CUTOFF_HOUR,
        now_provider: Optional[NowProvider] = None,
    ):
        self.zone = ZoneInfo(tz_name)
        self.cutoff = time(hour=cutoff_hour)
        self._now = now_provider or utc_now

    def now_utc(self) -> datetime:
        return _ensure_aware(self._now()).astimezone(timezone.utc)

    def current_instant(self) -> datetime:
        """Return the present moment expressed in the reference zone."""
        return self.now_utc().astimezone(self.zone)

    def reference_day(self, instant: Optional[datetime] = None) -> date:
        """Return the calendar day used for unlock decisions.

        Wall-clock comparison in the reference zone: exactly the cutoff counts as
        "at or after", and DST shifts are not special-cased.
        """
        local = (
            _ensure_aware(instant).astimezone(self.zone)
            if instant is not None
            else self.current_instant()
        )
        if local.time() < self.cutoff:
            return local.date() - timedelta(days=1)
        return local.date()


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
