import uuid
from datetime import date

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator, model_validator

from barbershop.auth.dependencies import get_current_staff
from barbershop.core import errors
from barbershop.models.availability import AvailabilityWindow
from barbershop.models.time_off import TIME_OFF_KINDS, TimeOff
from barbershop.routes.common import (
    DATE_PATTERN,
    as_http_exception,
    ensure_database_ready,
    get_read_repository,
    get_repository,
)
from barbershop.scheduling.repository import BookingRepository
from barbershop.scheduling.time_windows import MINUTES_PER_DAY, format_minutes_12h

router = APIRouter(tags=['barbers'])

MAX_TIME_OFF_NOTES_LENGTH = 500
DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


class BarberResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    avatar_url: str | None = None
    bio: str | None = None
    sort_order: int

    class Config:
        from_attributes = True


class CreateAvailabilityWindowRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_minutes: int = Field(ge=0, le=MINUTES_PER_DAY - 1)
    end_minutes: int = Field(ge=0, le=MINUTES_PER_DAY)

    @model_validator(mode='after')
    def validate_window_order(self) -> 'CreateAvailabilityWindowRequest':
        if self.end_minutes <= self.start_minutes:
            raise ValueError('End must be after start.')
        return self


class AvailabilityWindowResponse(BaseModel):
    id: uuid.UUID
    barber_id: uuid.UUID
    day_of_week: int
    day_name: str
    start_minutes: int
    end_minutes: int
    start_label: str
    end_label: str


class CreateTimeOffRequest(BaseModel):
    start_date: date
    end_date: date
    kind: str = 'time_off'
    notes: str | None = None

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def validate_date_format(cls, value):
        if isinstance(value, date):
            return value
        if not isinstance(value, str) or not DATE_PATTERN.match(value):
            raise ValueError('Dates must use YYYY-MM-DD.')
        return value

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in TIME_OFF_KINDS:
            raise ValueError(f'Kind must be one of: {", ".join(TIME_OFF_KINDS)}.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > MAX_TIME_OFF_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_TIME_OFF_NOTES_LENGTH} characters or fewer.')
        return normalized or None

    @model_validator(mode='after')
    def validate_date_order(self) -> 'CreateTimeOffRequest':
        if self.end_date < self.start_date:
            raise ValueError('End date must be on or after start date.')
        return self


class TimeOffResponse(BaseModel):
    id: uuid.UUID
    barber_id: uuid.UUID
    start_date: date
    end_date: date
    kind: str
    notes: str | None = None

    class Config:
        from_attributes = True


def to_window_response(window: AvailabilityWindow) -> AvailabilityWindowResponse:
    return AvailabilityWindowResponse(
        id=window.id,
        barber_id=window.barber_id,
        day_of_week=window.day_of_week,
        day_name=DAY_NAMES[window.day_of_week],
        start_minutes=window.start_minutes,
        end_minutes=window.end_minutes,
        start_label=format_minutes_12h(window.start_minutes),
        end_label=format_minutes_12h(window.end_minutes),
    )


def require_barber(repository: BookingRepository, barber_id: uuid.UUID) -> None:
    if repository.get_barber(barber_id) is None:
        raise errors.NotFoundError('Barber not found.')


@router.get('', response_model=list[BarberResponse])
def list_barbers(repository: BookingRepository = Depends(get_read_repository)):
    ensure_database_ready()

    try:
        return repository.list_barbers(active_only=True)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.get('/{barber_id}/availability', response_model=list[AvailabilityWindowResponse])
def list_availability(
    barber_id: uuid.UUID,
    repository: BookingRepository = Depends(get_read_repository),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    ensure_database_ready()

    try:
        require_barber(repository, barber_id)
        return [to_window_response(window) for window in repository.list_availability_windows(barber_id)]
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.post(
    '/{barber_id}/availability',
    response_model=AvailabilityWindowResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_availability(
    barber_id: uuid.UUID,
    data: CreateAvailabilityWindowRequest,
    repository: BookingRepository = Depends(get_repository),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    ensure_database_ready()

    try:
        require_barber(repository, barber_id)
        window = repository.add_availability_window(
            AvailabilityWindow(
                id=uuid.uuid4(),
                barber_id=barber_id,
                day_of_week=data.day_of_week,
                start_minutes=data.start_minutes,
                end_minutes=data.end_minutes,
            )
        )
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc

    return to_window_response(window)


@router.delete('/{barber_id}/availability/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_availability(
    barber_id: uuid.UUID,
    window_id: uuid.UUID,
    repository: BookingRepository = Depends(get_repository),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    ensure_database_ready()

    try:
        repository.delete_availability_window(barber_id, window_id)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.get('/{barber_id}/time-off', response_model=list[TimeOffResponse])
def list_time_off(
    barber_id: uuid.UUID,
    repository: BookingRepository = Depends(get_read_repository),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    ensure_database_ready()

    try:
        require_barber(repository, barber_id)
        return repository.list_time_off(barber_id)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.post('/{barber_id}/time-off', response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
def add_time_off(
    barber_id: uuid.UUID,
    data: CreateTimeOffRequest,
    repository: BookingRepository = Depends(get_repository),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    ensure_database_ready()

    try:
        require_barber(repository, barber_id)
        return repository.add_time_off(
            TimeOff(
                id=uuid.uuid4(),
                barber_id=barber_id,
                start_date=data.start_date,
                end_date=data.end_date,
                kind=data.kind,
                notes=data.notes,
            )
        )
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc


@router.delete('/{barber_id}/time-off/{entry_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_time_off(
    barber_id: uuid.UUID,
    entry_id: uuid.UUID,
    repository: BookingRepository = Depends(get_repository),
    staff_email: str = Depends(get_current_staff),
):
    del staff_email
    ensure_database_ready()

    try:
        repository.delete_time_off(barber_id, entry_id)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc
