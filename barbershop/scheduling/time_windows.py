"""Time-of-day windows and store-zone instant arithmetic.

Windows are half-open ranges of wall-clock minutes from local midnight,
``[start, end)``. Every conversion to an absolute instant goes through the
store's ``ZoneInfo`` so DST days keep their wall-clock boundaries.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, order=True)
class TimeWindow:
    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    @property
    def length(self) -> int:
        return max(0, self.end - self.start)


def intersect(window: TimeWindow, bound: TimeWindow) -> TimeWindow | None:
    """Clamp ``window`` to ``bound``; ``None`` when nothing is left."""
    clamped = TimeWindow(max(window.start, bound.start), min(window.end, bound.end))
    if clamped.is_empty:
        return None
    return clamped


def contains_instant(window: TimeWindow, minutes_of_day: int) -> bool:
    return window.start <= minutes_of_day < window.end


def day_of_week(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def local_instant(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    """Aware UTC instant for ``minutes`` of wall-clock time on the store-local ``day``."""
    day_offset, minute_of_day = divmod(minutes, MINUTES_PER_DAY)
    hour, minute = divmod(minute_of_day, 60)
    local = datetime.combine(day + timedelta(days=day_offset), time(hour, minute), tzinfo=tz)
    return local.astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    return local_instant(day, 0, tz), local_instant(day, MINUTES_PER_DAY, tz)


def local_span(day: date, window: TimeWindow, tz: ZoneInfo) -> tuple[datetime, datetime]:
    return local_instant(day, window.start, tz), local_instant(day, window.end, tz)


def minutes_of_day(instant: datetime, tz: ZoneInfo) -> int:
    local = instant.astimezone(tz)
    return local.hour * 60 + local.minute


def store_hours(open_minutes: int, close_minutes: int) -> TimeWindow:
    return TimeWindow(open_minutes, close_minutes)


def format_minutes_12h(minutes: int) -> str:
    hour, minute = divmod(minutes % MINUTES_PER_DAY, 60)
    hour12 = 12 if hour % 12 == 0 else hour % 12
    suffix = 'AM' if hour < 12 else 'PM'
    return f'{hour12}:{minute:02d} {suffix}'
