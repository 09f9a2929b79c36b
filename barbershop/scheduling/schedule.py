"""Staff day view: each barber's confirmed appointments laid over the slot grid."""

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from barbershop.core.config import StoreSettings
from barbershop.models.appointment import Appointment
from barbershop.models.barber import Barber
from barbershop.scheduling.time_windows import format_minutes_12h, local_instant

OPEN = 'open'
BLOCKED = 'blocked'


@dataclass(frozen=True)
class ScheduleColumn:
    index: int
    start_at: datetime
    label: str


@dataclass
class TimelineSegment:
    kind: str
    start_column: int
    end_column: int
    start_at: datetime
    end_at: datetime
    appointment_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass
class BarberTimeline:
    barber: Barber
    appointments: list[Appointment]
    segments: list[TimelineSegment]


@dataclass
class DaySchedule:
    day: date
    open_at: datetime
    close_at: datetime
    slot_minutes: int
    columns: list[ScheduleColumn]
    barbers: list[BarberTimeline]


def build_columns(store: StoreSettings, day: date) -> list[ScheduleColumn]:
    columns = []
    for index, minutes in enumerate(range(store.open_minutes, store.close_minutes, store.slot_minutes)):
        columns.append(
            ScheduleColumn(
                index=index,
                start_at=local_instant(day, minutes, store.timezone),
                label=format_minutes_12h(minutes),
            )
        )
    return columns


def column_span(appointment: Appointment, open_at: datetime, slot_minutes: int, total_columns: int) -> tuple[int, int]:
    """Columns ``[first, last)`` touched by the appointment, clamped to the grid."""
    slot_seconds = slot_minutes * 60
    first = math.floor((appointment.start_at - open_at).total_seconds() / slot_seconds)
    last = math.ceil((appointment.end_at - open_at).total_seconds() / slot_seconds)
    return max(0, first), min(total_columns, last)


def segment_timeline(
    appointments: list[Appointment],
    columns: list[ScheduleColumn],
    open_at: datetime,
    close_at: datetime,
    slot_minutes: int,
) -> list[TimelineSegment]:
    total = len(columns)

    def column_end(index: int) -> datetime:
        return columns[index + 1].start_at if index + 1 < total else close_at

    spans = []
    for appointment in appointments:
        first, last = column_span(appointment, open_at, slot_minutes, total)
        if first < last:
            spans.append((first, last, appointment.id))
    spans.sort(key=lambda span: (span[0], span[1]))

    # Appointments sharing a column collapse into one blocked run.
    blocked: list[list] = []
    for first, last, appointment_id in spans:
        if blocked and first < blocked[-1][1]:
            blocked[-1][1] = max(blocked[-1][1], last)
            blocked[-1][2].append(appointment_id)
        else:
            blocked.append([first, last, [appointment_id]])

    segments = []
    cursor = 0
    for first, last, appointment_ids in blocked + [[total, total, []]]:
        for index in range(cursor, first):
            segments.append(TimelineSegment(OPEN, index, index + 1, columns[index].start_at, column_end(index)))
        if first < last:
            segments.append(
                TimelineSegment(BLOCKED, first, last, columns[first].start_at, column_end(last - 1), appointment_ids)
            )
        cursor = max(cursor, last)

    return segments


def build_day_schedule(
    barbers: Iterable[Barber],
    appointments: Iterable[Appointment],
    store: StoreSettings,
    day: date,
) -> DaySchedule:
    open_at = local_instant(day, store.open_minutes, store.timezone)
    close_at = local_instant(day, store.close_minutes, store.timezone)
    columns = build_columns(store, day)

    by_barber: dict[uuid.UUID, list[Appointment]] = {}
    for appointment in appointments:
        by_barber.setdefault(appointment.barber_id, []).append(appointment)

    timelines = []
    for barber in sorted(barbers, key=lambda barber: (barber.sort_order, barber.name)):
        booked = sorted(by_barber.get(barber.id, []), key=lambda appointment: appointment.start_at)
        timelines.append(
            BarberTimeline(
                barber=barber,
                appointments=booked,
                segments=segment_timeline(booked, columns, open_at, close_at, store.slot_minutes),
            )
        )

    return DaySchedule(
        day=day,
        open_at=open_at,
        close_at=close_at,
        slot_minutes=store.slot_minutes,
        columns=columns,
        barbers=timelines,
    )