"""Bookable start times for one barber on one store-local date."""

import uuid
from datetime import date, datetime, timedelta

from barbershop.core import errors
from barbershop.core.config import StoreSettings
from barbershop.scheduling.conflicts import overlaps
from barbershop.scheduling.repository import BookingRepository
from barbershop.scheduling.time_windows import (
    TimeWindow,
    day_of_week,
    intersect,
    local_day_bounds,
    local_instant,
    store_hours,
)


def resolve_day_windows(repository: BookingRepository, store: StoreSettings, barber_id: uuid.UUID, day: date) -> list[TimeWindow]:
    """Working windows for ``day`` clamped to store hours, earliest first.

    A barber without any weekly windows works full store hours every day. Once
    any window exists, weekdays without one are closed.
    """
    bound = store_hours(store.open_minutes, store.close_minutes)
    configured = repository.list_availability_windows(barber_id)
    if not configured:
        return [bound]

    weekday = day_of_week(day)
    windows = []
    for row in configured:
        if row.day_of_week != weekday:
            continue
        clamped = intersect(TimeWindow(row.start_minutes, row.end_minutes), bound)
        if clamped is not None:
            windows.append(clamped)

    return sorted(windows)


def iter_window_starts(window: TimeWindow, duration_minutes: int, step_minutes: int):
    # Fixed step regardless of duration, so long services can start off-grid.
    for minutes in range(window.start, window.end - duration_minutes + 1, step_minutes):
        yield minutes


def compute_slots(
    repository: BookingRepository,
    store: StoreSettings,
    barber_id: uuid.UUID,
    day: date,
    duration_minutes: int,
) -> list[datetime]:
    barber = repository.get_barber(barber_id, active_only=True)
    if barber is None:
        raise errors.NotFoundError('Barber not found.')

    if repository.list_time_off_covering(barber_id, day):
        return []

    windows = resolve_day_windows(repository, store, barber_id, day)
    if not windows:
        return []

    day_start, day_end = local_day_bounds(day, store.timezone)
    existing = repository.list_confirmed_appointments(day_start, day_end, barber_id=barber_id)
    duration = timedelta(minutes=duration_minutes)

    slots: set[datetime] = set()
    for window in windows:
        for minutes in iter_window_starts(window, duration_minutes, store.slot_minutes):
            start = local_instant(day, minutes, store.timezone)
            end = start + duration
            if any(overlaps(start, end, booked.start_at, booked.end_at) for booked in existing):
                continue
            slots.add(start)

    return sorted(slots)
