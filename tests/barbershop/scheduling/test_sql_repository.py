import os
import threading
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from barbershop import database  # noqa: E402
from barbershop.core import errors  # noqa: E402
from barbershop.database import DEFERRED_BEGIN_OPTION, Base, build_engine, ensure_booking_schema  # noqa: E402
from barbershop.models.appointment import CANCELLED, COMPLETED, CONFIRMED, Appointment  # noqa: E402
from barbershop.models.availability import AvailabilityWindow  # noqa: E402
from barbershop.models.barber import Barber  # noqa: E402
from barbershop.models.service import Service  # noqa: E402
from barbershop.models.staff import StaffMember  # noqa: E402
from barbershop.models.time_off import TimeOff  # noqa: E402
from barbershop.scheduling import lifecycle  # noqa: E402
from barbershop.scheduling.repository import SqlAlchemyBookingRepository  # noqa: E402


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 5, hour, minute, tzinfo=timezone.utc)


def seed_shop(db) -> tuple[Barber, Service]:
    barber = Barber(name='Johan', slug='johan')
    service = Service(name='Shape Up', slug='shape-up', duration_minutes=30, price_cents=2000)
    db.add_all([barber, service])
    db.commit()
    return barber, service


def make_appointment(barber: Barber, service: Service, start: datetime, minutes: int = 30) -> Appointment:
    return Appointment(
        id=uuid.uuid4(),
        barber_id=barber.id,
        service_id=service.id,
        client_name='Marcus',
        start_at=start,
        end_at=start + timedelta(minutes=minutes),
        status=CONFIRMED,
    )


@pytest.fixture
def booking_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def test_insert_appointment_round_trips_utc(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    eastern = timezone(timedelta(hours=-5))

    created = repository.insert_appointment(
        make_appointment(barber, service, datetime(2026, 1, 5, 10, 0, tzinfo=eastern))
    )

    assert created.start_at == at(15)
    assert created.start_at.tzinfo is not None
    assert created.start_at.utcoffset() == timedelta(0)


def test_insert_appointment_rejects_overlap(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    repository.insert_appointment(make_appointment(barber, service, at(15)))

    with pytest.raises(errors.ConflictError):
        repository.insert_appointment(make_appointment(barber, service, at(15, 15)))

    assert booking_db.query(Appointment).count() == 1


def test_insert_appointment_allows_back_to_back_and_cancelled_overlap(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    first = repository.insert_appointment(make_appointment(barber, service, at(15)))
    repository.update_appointment_status(first.id, CANCELLED, at(12))

    repository.insert_appointment(make_appointment(barber, service, at(15)))
    repository.insert_appointment(make_appointment(barber, service, at(15, 30)))

    assert len(repository.list_confirmed_appointments(at(0), at(23))) == 2


def test_insert_appointment_for_missing_barber_is_not_found(booking_db) -> None:
    _, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    ghost = Barber(id=uuid.uuid4(), name='Ghost', slug='ghost')

    with pytest.raises(errors.NotFoundError):
        repository.insert_appointment(make_appointment(ghost, service, at(15)))


def test_update_appointment_times_conflict_leaves_row_unchanged(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    first = repository.insert_appointment(make_appointment(barber, service, at(15)))
    repository.insert_appointment(make_appointment(barber, service, at(16)))

    with pytest.raises(errors.ConflictError):
        repository.update_appointment_times(first.id, at(15, 45), at(16, 15), at(12))

    booking_db.expire_all()
    stored = repository.get_appointment(first.id)
    assert stored.start_at == at(15)
    assert stored.end_at == at(15, 30)


def test_update_appointment_times_ignores_its_own_interval(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    first = repository.insert_appointment(make_appointment(barber, service, at(15)))

    moved = repository.update_appointment_times(first.id, at(15, 15), at(15, 45), at(12))

    assert moved.start_at == at(15, 15)
    assert moved.updated_at == at(12)


def test_list_confirmed_appointments_filters_by_start_and_barber(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    other = Barber(name='King Rome', slug='king-rome')
    booking_db.add(other)
    booking_db.commit()
    repository = SqlAlchemyBookingRepository(booking_db)
    repository.insert_appointment(make_appointment(barber, service, at(14)))
    repository.insert_appointment(make_appointment(barber, service, at(18)))
    repository.insert_appointment(make_appointment(other, service, at(14)))

    mine = repository.list_confirmed_appointments(at(13), at(17), barber_id=barber.id)
    everyone = repository.list_confirmed_appointments(at(13), at(17))

    assert [appointment.start_at for appointment in mine] == [at(14)]
    assert len(everyone) == 2


def test_time_off_covering_is_inclusive(booking_db) -> None:
    barber, _ = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    repository.add_time_off(
        TimeOff(barber_id=barber.id, start_date=date(2026, 1, 5), end_date=date(2026, 1, 7), kind='time_off')
    )

    assert repository.list_time_off_covering(barber.id, date(2026, 1, 5))
    assert repository.list_time_off_covering(barber.id, date(2026, 1, 7))
    assert not repository.list_time_off_covering(barber.id, date(2026, 1, 8))


def test_delete_availability_window_checks_owner(booking_db) -> None:
    barber, _ = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    window = repository.add_availability_window(
        AvailabilityWindow(barber_id=barber.id, day_of_week=1, start_minutes=540, end_minutes=1020)
    )

    with pytest.raises(errors.NotFoundError):
        repository.delete_availability_window(uuid.uuid4(), window.id)

    repository.delete_availability_window(barber.id, window.id)
    assert repository.list_availability_windows(barber.id) == []


def test_list_barbers_hides_inactive_by_default(booking_db) -> None:
    seed_shop(booking_db)
    booking_db.add(Barber(name='Retired', slug='retired', is_active=False))
    booking_db.commit()
    repository = SqlAlchemyBookingRepository(booking_db)

    assert [barber.name for barber in repository.list_barbers()] == ['Johan']
    assert len(repository.list_barbers(active_only=False)) == 2


def test_is_staff_matches_email_case_insensitively(booking_db) -> None:
    booking_db.add(StaffMember(email='manager@headz.com'))
    booking_db.commit()
    repository = SqlAlchemyBookingRepository(booking_db)

    assert repository.is_staff(' Manager@Headz.com ')
    assert not repository.is_staff('client@example.com')


class UnreachableSession:
    def __init__(self) -> None:
        self.rolled_back = False

    def query(self, *args, **kwargs):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    def rollback(self) -> None:
        self.rolled_back = True


def test_storage_failure_becomes_upstream_unavailable() -> None:
    session = UnreachableSession()
    repository = SqlAlchemyBookingRepository(session)

    with pytest.raises(errors.UpstreamUnavailableError):
        repository.list_barbers()

    assert session.rolled_back


def test_ensure_booking_schema_adds_indexes(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine('sqlite:///:memory:')
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(database, '_booking_schema_checked', False)

    ensure_booking_schema(engine)

    index_names = {index['name'] for index in inspect(engine).get_indexes('appointments')}
    assert 'idx_appointments_barber_start' in index_names
    assert 'idx_appointments_status_start' in index_names


def test_concurrent_sqlite_bookings_only_one_wins(tmp_path) -> None:
    engine = build_engine(f'sqlite:///{tmp_path / "race.db"}')
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = testing_session_local()
    barber, service = seed_shop(setup)
    barber_id, service_id = barber.id, service.id
    setup.close()

    barrier = threading.Barrier(4)
    created = []
    conflicts = []

    def attempt(name: str) -> None:
        db = testing_session_local()
        try:
            barrier.wait()
            created.append(
                lifecycle.create_appointment(
                    SqlAlchemyBookingRepository(db),
                    barber_id=barber_id,
                    service_id=service_id,
                    client_name=name,
                    start_at=at(15),
                ).id
            )
        except errors.ConflictError:
            conflicts.append(name)
        finally:
            db.close()

    threads = [threading.Thread(target=attempt, args=(f'Client {index}',)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(created) == 1
    assert len(conflicts) == 3

    check = testing_session_local()
    try:
        assert check.query(Appointment).count() == 1
    finally:
        check.close()
        engine.dispose()


def test_update_appointment_status_rechecks_stored_status(booking_db) -> None:
    barber, service = seed_shop(booking_db)
    repository = SqlAlchemyBookingRepository(booking_db)
    appointment = repository.insert_appointment(make_appointment(barber, service, at(15)))
    repository.update_appointment_status(appointment.id, CANCELLED, at(12))

    with pytest.raises(errors.ConflictError):
        repository.update_appointment_status(appointment.id, COMPLETED, at(13), expected_status=CONFIRMED)

    booking_db.expire_all()
    assert repository.get_appointment(appointment.id).status == CANCELLED


def test_read_sessions_do_not_take_the_sqlite_write_lock(tmp_path) -> None:
    engine = build_engine(f'sqlite:///{tmp_path / "locks.db"}')
    Base.metadata.create_all(bind=engine)
    writer_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    reader_session_local = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine.execution_options(**{DEFERRED_BEGIN_OPTION: True}),
    )

    setup = writer_session_local()
    seed_shop(setup)
    setup.close()

    statements = []

    @event.listens_for(engine, 'before_cursor_execute')
    def record(connection, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    writer = writer_session_local()
    reader = reader_session_local()
    try:
        writer.query(Barber).count()
        assert statements[0] == 'BEGIN IMMEDIATE'

        statements.clear()
        assert SqlAlchemyBookingRepository(reader).list_barbers()[0].name == 'Johan'
        assert statements[0] == 'BEGIN'
    finally:
        reader.close()
        writer.close()
        engine.dispose()
