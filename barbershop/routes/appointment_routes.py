import logging
import re
import uuid
from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator

from barbershop.auth.dependencies import get_current_staff
from barbershop.core import config, errors
from barbershop.core.config import StoreSettings
from barbershop.database import utc_now
from barbershop.routes.common import (
    as_http_exception,
    ensure_database_ready,
    get_read_repository,
    get_repository,
    get_store,
    parse_calendar_date,
)
from barbershop.scheduling import lifecycle
from barbershop.scheduling.availability import compute_slots
from barbershop.scheduling.calendar_feed import build_calendar_feed
from barbershop.scheduling.repository import BookingRepository
from barbershop.scheduling.schedule import build_day_schedule
from barbershop.scheduling.time_windows import local_day_bounds

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

MAX_CLIENT_NAME_LENGTH = 200
MAX_CLIENT_PHONE_LENGTH = 50
MAX_APPOINTMENT_NOTES_LENGTH = 600
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class SlotsResponse(BaseModel):
    barber_id: uuid.UUID
    date: date
    duration_minutes: int
    slots: list[datetime]


class CreateAppointmentRequest(BaseModel):
    barber_id: uuid.UUID
    service_id: uuid.UUID
    duration_minutes: int | None = Field(
        default=None,
        ge=lifecycle.MIN_DURATION_MINUTES,
        le=lifecycle.MAX_DURATION_MINUTES,
    )
    client_name: str
    client_phone: str | None = None
    client_email: str | None = None
    start_at: AwareDatetime
    is_walk_in: bool = False
    notes: str | None = None

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Client name is required.')
        if len(normalized) > MAX_CLIENT_NAME_LENGTH:
            raise ValueError(f'Client name must be {MAX_CLIENT_NAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('client_phone')
    @classmethod
    def validate_client_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > MAX_CLIENT_PHONE_LENGTH:
            raise ValueError(f'Phone must be {MAX_CLIENT_PHONE_LENGTH} characters or fewer.')
        return normalized or None

    @field_validator('client_email')
    @classmethod
    def validate_client_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if not normalized:
            return None
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError('Invalid email address.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateAppointmentRequest(BaseModel):
    start_at: AwareDatetime | None = None
    end_at: AwareDatetime | None = None
    status: Literal['confirmed', 'completed', 'cancelled', 'no_show'] | None = None

    @model_validator(mode='after')
    def validate_time_order(self) -> 'UpdateAppointmentRequest':
        if self.start_at is not None and self.end_at is not None and self.end_at <= self.start_at:
            raise ValueError('end_at must be after start_at.')
        return self


class AppointmentResponse(BaseModel):
    id: uuid.UUID
    barber_id: uuid.UUID
    service_id: uuid.UUID
    client_name: str
    client_phone: str | None = None
    client_email: str | None = None
    start_at: datetime
    end_at: datetime
    is_walk_in: bool
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class BarberSummaryResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    avatar_url: str | None = None

    class Config:
        from_attributes = True


class ScheduleColumnResponse(BaseModel):
    index: int
    start_at: datetime
    label: str

    class Config:
        from_attributes = True


class TimelineSegmentResponse(BaseModel):
    kind: str
    start_column: int
    end_column: int
    start_at: datetime
    end_at: datetime
    appointment_ids: list[uuid.UUID]

    class Config:
        from_attributes = True


class BarberTimelineResponse(BaseModel):
    barber: BarberSummaryResponse
    appointments: list[AppointmentResponse]
    segments: list[TimelineSegmentResponse]

    class Config:
        from_attributes = True


class DayScheduleResponse(BaseModel):
    day: date
    open_at: datetime
    close_at: datetime
    slot_minutes: int
    columns: list[ScheduleColumnResponse]
    barbers: list[BarberTimelineResponse]

    class Config:
        from_attributes = True


@router.get('/slots', response_model=SlotsResponse)
def list_slots(
    barber_id: uuid.UUID = Query(...),
    day: str = Query(..., alias='date'),
    duration_minutes: int = Query(..., ge=lifecycle.MIN_DURATION_MINUTES, le=lifecycle.MAX_DURATION_MINUTES),
    repository: BookingRepository = Depends(get_read_repository),
    store: StoreSettings = Depends(get_store),
):
    slot_date = parse_calendar_date(day)
    ensure_database_ready()

    try:
        slots = compute_slots(repository, store, barber_id, slot_date, duration_minutes)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc

    return SlotsResponse(barber_id=barber_id, date=slot_date, duration_minutes=duration_minutes, slots=slots)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    repository: BookingRepository = Depends(get_repository),
):
    ensure_database_ready()

    try:
        return lifecycle.create_appointment(
            repository,
            barber_id=data.barber_id,
            service_id=data.service_id,
            duration_minutes=data.duration_minutes,
            client_name=data.client_name,
            client_phone=data.client_phone,
            client_email=data.client_email,
            start_at=data.start_at,
            is_walk_in=data.is_walk_in,
            notes=data.notes,
        )
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    day: str = Query(..., alias='date'),
    barber_id: uuid.UUID | None = None,
    repository: BookingRepository = Depends(get_read_repository),
    store: StoreSettings = Depends(get_store),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    schedule_date = parse_calendar_date(day)
    ensure_database_ready()

    try:
        return lifecycle.list_day_appointments(repository, store, schedule_date, barber_id=barber_id)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: uuid.UUID,
    data: UpdateAppointmentRequest,
    repository: BookingRepository = Depends(get_repository),
    staff_email: str = Depends(get_current_staff),
):
    ensure_database_ready()

    try:
        appointment = lifecycle.update_appointment(
            repository,
            appointment_id,
            start_at=data.start_at,
            end_at=data.end_at,
            status=data.status,
        )
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc

    logger.info('Appointment %s updated by %s.', appointment.id, staff_email)
    return appointment


@router.get('/schedule', response_model=DayScheduleResponse)
def get_day_schedule(
    day: str = Query(..., alias='date'),
    repository: BookingRepository = Depends(get_read_repository),
    store: StoreSettings = Depends(get_store),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    schedule_date = parse_calendar_date(day)
    ensure_database_ready()

    try:
        barbers = repository.list_barbers(active_only=True)
        appointments = lifecycle.list_day_appointments(repository, store, schedule_date)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc

    schedule = build_day_schedule(barbers, appointments, store, schedule_date)
    return DayScheduleResponse.model_validate(schedule)


@router.get('/calendar')
def export_calendar(
    day: str = Query(..., alias='date'),
    barber_id: uuid.UUID | None = None,
    repository: BookingRepository = Depends(get_read_repository),
    store: StoreSettings = Depends(get_store),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    export_date = parse_calendar_date(day)
    ensure_database_ready()

    try:
        day_start, day_end = local_day_bounds(export_date, store.timezone)
        appointments = repository.list_confirmed_appointments(day_start, day_end, barber_id=barber_id)
        barbers = {barber.id: barber for barber in repository.list_barbers(active_only=False)}
        services = {service.id: service for service in repository.list_services(active_only=False)}
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc

    document = build_calendar_feed(
        appointments,
        barbers,
        services,
        shop_name=config.SHOP_NAME,
        uid_domain=config.CALENDAR_UID_DOMAIN,
        now=utc_now(),
    )
    return Response(
        content=document,
        media_type='text/calendar; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="{config.SHOP_SLUG}-schedule-{export_date.isoformat()}.ics"'},
    )
