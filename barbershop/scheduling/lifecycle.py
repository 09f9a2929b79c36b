"""Create, move and close out appointments.

Every write funnels through the repository's guarded operations, which repeat
the overlap check at commit time; the slot list a client saw earlier is never
trusted on its own.
"""

import logging
import uuid
from datetime import date, datetime, timedelta

from barbershop.core import errors
from barbershop.core.config import StoreSettings
from barbershop.database import utc_now
from barbershop.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    NO_SHOW,
    Appointment,
)
from barbershop.scheduling.repository import BookingRepository
from barbershop.scheduling.time_windows import local_instant

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 120

ALLOWED_TRANSITIONS = {
    CONFIRMED: {COMPLETED, CANCELLED, NO_SHOW},
    COMPLETED: set(),
    CANCELLED: set(),
    NO_SHOW: set(),
}


def validate_duration(duration_minutes: int) -> int:
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise errors.ValidationError(
            f'Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.',
            field='duration_minutes',
        )
    return duration_minutes


def _require_aware(value: datetime, field: str) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise errors.ValidationError('Timestamps must include a UTC offset.', field=field)
    return value


def _to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def _get_appointment(repository: BookingRepository, appointment_id: uuid.UUID) -> Appointment:
    appointment = repository.get_appointment(appointment_id)
    if appointment is None:
        raise errors.NotFoundError('Appointment not found.')
    return appointment


def create_appointment(
    repository: BookingRepository,
    *,
    barber_id: uuid.UUID,
    service_id: uuid.UUID,
    client_name: str,
    start_at: datetime,
    duration_minutes: int | None = None,
    client_phone: str | None = None,
    client_email: str | None = None,
    is_walk_in: bool = False,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    start_at = _to_minute(_require_aware(start_at, 'start_at'))

    barber = repository.get_barber(barber_id, active_only=True)
    if barber is None:
        raise errors.NotFoundError('Barber not found.')

    service = repository.get_service(service_id, active_only=True)
    if service is None:
        raise errors.NotFoundError('Service not found.')

    if duration_minutes is None:
        duration_minutes = service.duration_minutes
    validate_duration(duration_minutes)

    now = now or utc_now()
    appointment = Appointment(
        id=uuid.uuid4(),
        barber_id=barber.id,
        service_id=service.id,
        client_name=client_name,
        client_phone=client_phone or None,
        client_email=client_email or None,
        start_at=start_at,
        end_at=start_at + timedelta(minutes=duration_minutes),
        is_walk_in=is_walk_in,
        status=CONFIRMED,
        notes=notes,
        created_at=now,
        updated_at=now,
    )

    try:
        created = repository.insert_appointment(appointment)
    except errors.ConflictError:
        logger.warning(
            'Rejected booking for barber %s at %s: overlaps a confirmed appointment.',
            barber.id,
            start_at.isoformat(),
        )
        raise

    logger.info(
        'Booked appointment %s for barber %s at %s (%s min%s).',
        created.id,
        barber.id,
        created.start_at.isoformat(),
        duration_minutes,
        ', walk-in' if is_walk_in else '',
    )
    return created


def reschedule_appointment(
    repository: BookingRepository,
    appointment_id: uuid.UUID,
    new_start: datetime,
    new_end: datetime,
    now: datetime | None = None,
) -> Appointment:
    new_start = _to_minute(_require_aware(new_start, 'start_at'))
    new_end = _to_minute(_require_aware(new_end, 'end_at'))
    if new_end <= new_start:
        raise errors.ValidationError('end_at must be after start_at.', field='end_at')

    appointment = _get_appointment(repository, appointment_id)
    if appointment.status != CONFIRMED:
        raise errors.ValidationError(
            f'Only confirmed appointments can be rescheduled (this one is {appointment.status}).',
            field='status',
        )

    try:
        moved = repository.update_appointment_times(appointment.id, new_start, new_end, now or utc_now())
    except errors.ConflictError:
        logger.warning('Rejected reschedule of appointment %s: overlaps a confirmed appointment.', appointment_id)
        raise

    logger.info('Rescheduled appointment %s to %s - %s.', moved.id, moved.start_at.isoformat(), moved.end_at.isoformat())
    return moved


def change_status(
    repository: BookingRepository,
    appointment_id: uuid.UUID,
    status: str,
    now: datetime | None = None,
) -> Appointment:
    if status not in APPOINTMENT_STATUSES:
        raise errors.ValidationError('Invalid appointment status.', field='status')

    appointment = _get_appointment(repository, appointment_id)
    if appointment.status == status:
        return appointment

    if status not in ALLOWED_TRANSITIONS.get(appointment.status, set()):
        raise errors.ValidationError(
            f'Cannot change a {appointment.status} appointment to {status}.',
            field='status',
        )

    updated = repository.update_appointment_status(
        appointment.id,
        status,
        now or utc_now(),
        expected_status=appointment.status,
    )
    logger.info('Appointment %s is now %s.', updated.id, status)
    return updated


def cancel_appointment(
    repository: BookingRepository,
    appointment_id: uuid.UUID,
    now: datetime | None = None,
) -> Appointment:
    return change_status(repository, appointment_id, CANCELLED, now=now)


def update_appointment(
    repository: BookingRepository,
    appointment_id: uuid.UUID,
    *,
    start_at: datetime | None = None,
    end_at: datetime | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    if start_at is None and end_at is None and status is None:
        raise errors.ValidationError('Nothing to update.')

    appointment = _get_appointment(repository, appointment_id)

    if start_at is not None or end_at is not None:
        if start_at is None:
            new_start = appointment.start_at
            new_end = end_at
        elif end_at is None:
            new_start = start_at
            new_end = start_at + (appointment.end_at - appointment.start_at)
        else:
            new_start, new_end = start_at, end_at
        appointment = reschedule_appointment(repository, appointment.id, new_start, new_end, now=now)

    if status is not None:
        appointment = change_status(repository, appointment.id, status, now=now)

    return appointment


def list_day_appointments(
    repository: BookingRepository,
    store: StoreSettings,
    day: date,
    barber_id: uuid.UUID | None = None,
) -> list[Appointment]:
    """Confirmed appointments starting between store open and close on ``day``."""
    open_at = local_instant(day, store.open_minutes, store.timezone)
    close_at = local_instant(day, store.close_minutes, store.timezone)
    return repository.list_confirmed_appointments(open_at, close_at, barber_id=barber_id)
