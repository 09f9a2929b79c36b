"""The one overlap test used for both slot listing and booking writes."""

from collections.abc import Iterable

from barbershop.models.appointment import CONFIRMED


def overlaps(a_start, a_end, b_start, b_end):
    """True when ``[a_start, a_end)`` and ``[b_start, b_end)`` share any instant.

    Touching intervals do not overlap. Written with ``&`` so the same function
    also builds the SQL criterion when handed column expressions.
    """
    return (a_start < b_end) & (a_end > b_start)


def find_conflict(start, end, appointments: Iterable, exclude_id=None):
    for appointment in appointments:
        if appointment.status != CONFIRMED:
            continue
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        if overlaps(start, end, appointment.start_at, appointment.end_at):
            return appointment
    return None
