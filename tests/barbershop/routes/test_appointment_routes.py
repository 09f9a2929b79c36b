import os
import uuid
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from barbershop.core import errors  # noqa: E402
from barbershop.core.config import StoreSettings  # noqa: E402
from barbershop.models.barber import Barber  # noqa: E402
from barbershop.models.service import Service  # noqa: E402
from barbershop.routes.appointment_routes import (  # noqa: E402
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
    create_appointment,
    export_calendar,
    get_day_schedule,
    list_appointments,
    list_slots,
    update_appointment,
)
from barbershop.routes.common import UNAVAILABLE_DETAIL, as_http_exception, ensure_database_ready  # noqa: E402
from barbershop.scheduling.repository import CONFLICT_MESSAGE, InMemoryBookingRepository  # noqa: E402

STORE = StoreSettings(timezone=ZoneInfo('America/New_York'), open_minutes=9 * 60, close_minutes=20 * 60, slot_minutes=30)
STAFF_EMAIL = 'manager@headz.com'


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 5, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def shop(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('barbershop.routes.appointment_routes.ensure_database_ready', lambda: None)
    repository = InMemoryBookingRepository()
    barber = repository.add_barber(Barber(name='Johan', slug='johan'))
    service = repository.add_service(
        Service(name='Kids Haircut', slug='kids-haircut', duration_minutes=30, price_cents=3000)
    )
    return repository, barber, service


def booking_request(barber: Barber, service: Service, start: datetime, **overrides) -> CreateAppointmentRequest:
    payload = {
        'barber_id': barber.id,
        'service_id': service.id,
        'client_name': 'Marcus',
        'client_phone': '718-555-0100',
        'start_at': start,
    }
    payload.update(overrides)
    return CreateAppointmentRequest(**payload)


def test_create_appointment_request_normalizes_fields() -> None:
    request = CreateAppointmentRequest(
        barber_id=uuid.uuid4(),
        service_id=uuid.uuid4(),
        client_name='  Marcus  ',
        client_email=' Marcus@Example.COM ',
        notes='   ',
        start_at=at(15),
    )

    assert request.client_name == 'Marcus'
    assert request.client_email == 'marcus@example.com'
    assert request.notes is None


@pytest.mark.parametrize(
    'overrides',
    [
        {'client_name': '   '},
        {'client_name': 'x' * 201},
        {'client_email': 'not-an-email'},
        {'duration_minutes': 10},
        {'duration_minutes': 121},
        {'start_at': datetime(2026, 1, 5, 15, 0)},
    ],
)
def test_create_appointment_request_rejects_bad_input(overrides: dict) -> None:
    payload = {
        'barber_id': uuid.uuid4(),
        'service_id': uuid.uuid4(),
        'client_name': 'Marcus',
        'start_at': at(15),
    }
    payload.update(overrides)

    with pytest.raises(ValidationError):
        CreateAppointmentRequest(**payload)


def test_update_appointment_request_rejects_inverted_times() -> None:
    with pytest.raises(ValidationError):
        UpdateAppointmentRequest(start_at=at(16), end_at=at(15))


def test_update_appointment_request_rejects_unknown_status() -> None:
    with pytest.raises(ValidationError):
        UpdateAppointmentRequest(status='pending')


@pytest.mark.parametrize(
    ('value', 'message'),
    [
        ('', 'Invalid or missing date. Use YYYY-MM-DD.'),
        ('01/05/2026', 'Invalid or missing date. Use YYYY-MM-DD.'),
        ('2026-02-30', '2026-02-30 is not a calendar date.'),
    ],
)
def test_list_slots_rejects_bad_dates(shop, value: str, message: str) -> None:
    repository, barber, _ = shop

    with pytest.raises(HTTPException) as exception_info:
        list_slots(barber_id=barber.id, day=value, duration_minutes=30, repository=repository, store=STORE)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == {'field': 'date', 'message': message}


def test_list_slots_returns_404_for_unknown_barber(shop) -> None:
    repository, _, _ = shop

    with pytest.raises(HTTPException) as exception_info:
        list_slots(barber_id=uuid.uuid4(), day='2026-01-05', duration_minutes=30, repository=repository, store=STORE)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Barber not found.'


def test_list_slots_returns_open_starts(shop) -> None:
    repository, barber, service = shop
    create_appointment(booking_request(barber, service, at(14)), repository=repository)

    response = list_slots(barber_id=barber.id, day='2026-01-05', duration_minutes=30, repository=repository, store=STORE)

    assert response.date == date(2026, 1, 5)
    assert response.duration_minutes == 30
    assert len(response.slots) == 21
    assert response.slots[0] == at(14, 30)


def test_create_appointment_returns_confirmed_booking(shop) -> None:
    repository, barber, service = shop

    appointment = create_appointment(booking_request(barber, service, at(15), is_walk_in=True), repository=repository)

    assert appointment.status == 'confirmed'
    assert appointment.is_walk_in is True
    assert appointment.end_at == at(15, 30)


def test_create_appointment_returns_409_on_overlap(shop) -> None:
    repository, barber, service = shop
    create_appointment(booking_request(barber, service, at(15)), repository=repository)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(booking_request(barber, service, at(15, 15), client_name='Dre'), repository=repository)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == CONFLICT_MESSAGE


def test_create_appointment_returns_404_for_unknown_service(shop) -> None:
    repository, barber, _ = shop
    ghost = Service(id=uuid.uuid4(), name='Ghost', slug='ghost', duration_minutes=30, price_cents=0)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(booking_request(barber, ghost, at(15)), repository=repository)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Service not found.'


def test_list_appointments_filters_by_barber(shop) -> None:
    repository, barber, service = shop
    other = repository.add_barber(Barber(name='King Rome', slug='king-rome'))
    create_appointment(booking_request(barber, service, at(15)), repository=repository)
    create_appointment(booking_request(other, service, at(15)), repository=repository)

    everyone = list_appointments(day='2026-01-05', repository=repository, store=STORE, staff_email=STAFF_EMAIL)
    mine = list_appointments(
        day='2026-01-05',
        barber_id=barber.id,
        repository=repository,
        store=STORE,
        staff_email=STAFF_EMAIL,
    )

    assert len(everyone) == 2
    assert [appointment.barber_id for appointment in mine] == [barber.id]


def test_update_appointment_cancels(shop) -> None:
    repository, barber, service = shop
    appointment = create_appointment(booking_request(barber, service, at(15)), repository=repository)

    updated = update_appointment(
        appointment.id,
        UpdateAppointmentRequest(status='cancelled'),
        repository=repository,
        staff_email=STAFF_EMAIL,
    )

    assert updated.status == 'cancelled'


def test_update_appointment_rejects_reopening(shop) -> None:
    repository, barber, service = shop
    appointment = create_appointment(booking_request(barber, service, at(15)), repository=repository)
    update_appointment(
        appointment.id,
        UpdateAppointmentRequest(status='completed'),
        repository=repository,
        staff_email=STAFF_EMAIL,
    )

    with pytest.raises(HTTPException) as exception_info:
        update_appointment(
            appointment.id,
            UpdateAppointmentRequest(status='confirmed'),
            repository=repository,
            staff_email=STAFF_EMAIL,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['field'] == 'status'


def test_update_appointment_returns_404_when_missing(shop) -> None:
    repository, _, _ = shop

    with pytest.raises(HTTPException) as exception_info:
        update_appointment(
            uuid.uuid4(),
            UpdateAppointmentRequest(status='cancelled'),
            repository=repository,
            staff_email=STAFF_EMAIL,
        )

    assert exception_info.value.status_code == 404


def test_update_appointment_reschedule_conflict_returns_409(shop) -> None:
    repository, barber, service = shop
    first = create_appointment(booking_request(barber, service, at(15)), repository=repository)
    create_appointment(booking_request(barber, service, at(16), client_name='Dre'), repository=repository)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment(
            first.id,
            UpdateAppointmentRequest(start_at=at(16)),
            repository=repository,
            staff_email=STAFF_EMAIL,
        )

    assert exception_info.value.status_code == 409
    assert repository.get_appointment(first.id).start_at == at(15)


def test_get_day_schedule_builds_timelines(shop) -> None:
    repository, barber, service = shop
    appointment = create_appointment(booking_request(barber, service, at(15)), repository=repository)

    schedule = get_day_schedule(day='2026-01-05', repository=repository, store=STORE, staff_email=STAFF_EMAIL)

    assert len(schedule.columns) == 22
    assert schedule.barbers[0].barber.name == 'Johan'
    assert [booked.id for booked in schedule.barbers[0].appointments] == [appointment.id]
    blocked = [segment for segment in schedule.barbers[0].segments if segment.kind == 'blocked']
    assert blocked[0].appointment_ids == [appointment.id]
    assert blocked[0].start_column == 2


def test_export_calendar_returns_ics_attachment(shop) -> None:
    repository, barber, service = shop
    appointment = create_appointment(booking_request(barber, service, at(15)), repository=repository)

    response = export_calendar(day='2026-01-05', repository=repository, store=STORE, staff_email=STAFF_EMAIL)

    body = response.body.decode('utf-8')
    assert response.media_type == 'text/calendar; charset=utf-8'
    assert response.headers['content-disposition'] == 'attachment; filename="headz-schedule-2026-01-05.ics"'
    assert f'UID:{appointment.id}@headzaintready.com' in body
    assert 'SUMMARY:Kids Haircut – Marcus @ Johan' in body


def test_export_calendar_includes_late_evening_appointments(shop) -> None:
    repository, barber, service = shop
    evening = datetime(2026, 1, 6, 2, 0, tzinfo=timezone.utc)
    create_appointment(booking_request(barber, service, evening), repository=repository)

    response = export_calendar(day='2026-01-05', repository=repository, store=STORE, staff_email=STAFF_EMAIL)

    assert 'DTSTART:20260106T020000Z' in response.body.decode('utf-8')


def test_as_http_exception_maps_upstream_failures() -> None:
    exception = as_http_exception(errors.UpstreamUnavailableError('down'))

    assert exception.status_code == 503
    assert exception.detail == UNAVAILABLE_DETAIL


def test_ensure_database_ready_returns_503_when_schema_check_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    def unreachable() -> None:
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    monkeypatch.setattr('barbershop.routes.common.ensure_booking_schema', unreachable)

    with pytest.raises(HTTPException) as exception_info:
        ensure_database_ready()

    assert exception_info.value.status_code == 503
