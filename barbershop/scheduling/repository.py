"""Storage boundary for the booking engine.

``BookingRepository`` lists the reads and writes the engine needs. The two
guarded writes, ``insert_appointment`` and ``update_appointment_times``, must
re-check for overlaps and write inside one per-barber critical section so two
concurrent bookings for the same chair cannot both succeed.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from threading import Lock

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from barbershop.core import errors
from barbershop.database import APPOINTMENT_EXCLUSION_CONSTRAINT, utc_now
from barbershop.models.appointment import CONFIRMED, Appointment
from barbershop.models.availability import AvailabilityWindow
from barbershop.models.barber import Barber
from barbershop.models.service import Service
from barbershop.models.staff import StaffMember
from barbershop.models.time_off import TimeOff
from barbershop.scheduling.conflicts import find_conflict, overlaps

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = 'That time was just booked. Please pick another slot.'
STATUS_CHANGED_MESSAGE = 'This appointment was just updated. Reload it and try again.'


class BookingRepository(ABC):
    @abstractmethod
    def get_barber(self, barber_id: uuid.UUID, active_only: bool = False) -> Barber | None: ...

    @abstractmethod
    def list_barbers(self, active_only: bool = True) -> list[Barber]: ...

    @abstractmethod
    def get_service(self, service_id: uuid.UUID, active_only: bool = False) -> Service | None: ...

    @abstractmethod
    def list_services(self, active_only: bool = True) -> list[Service]: ...

    @abstractmethod
    def list_availability_windows(
        self, barber_id: uuid.UUID, day_of_week: int | None = None
    ) -> list[AvailabilityWindow]: ...

    @abstractmethod
    def add_availability_window(self, window: AvailabilityWindow) -> AvailabilityWindow: ...

    @abstractmethod
    def delete_availability_window(self, barber_id: uuid.UUID, window_id: uuid.UUID) -> None: ...

    @abstractmethod
    def list_time_off(self, barber_id: uuid.UUID) -> list[TimeOff]: ...

    @abstractmethod
    def list_time_off_covering(self, barber_id: uuid.UUID, day: date) -> list[TimeOff]: ...

    @abstractmethod
    def add_time_off(self, entry: TimeOff) -> TimeOff: ...

    @abstractmethod
    def delete_time_off(self, barber_id: uuid.UUID, entry_id: uuid.UUID) -> None: ...

    @abstractmethod
    def list_confirmed_appointments(
        self, start: datetime, end: datetime, barber_id: uuid.UUID | None = None
    ) -> list[Appointment]:
        """Confirmed appointments whose ``start_at`` lies in ``[start, end)``, earliest first."""

    @abstractmethod
    def get_appointment(self, appointment_id: uuid.UUID) -> Appointment | None: ...

    @abstractmethod
    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Persist a confirmed appointment or raise ``ConflictError``."""

    @abstractmethod
    def update_appointment_times(
        self, appointment_id: uuid.UUID, start_at: datetime, end_at: datetime, updated_at: datetime
    ) -> Appointment:
        """Move an appointment or raise ``ConflictError``, leaving it untouched."""

    @abstractmethod
    def update_appointment_status(
        self,
        appointment_id: uuid.UUID,
        status: str,
        updated_at: datetime,
        expected_status: str | None = None,
    ) -> Appointment:
        """Set the status, or raise ``ConflictError`` if it is no longer ``expected_status``."""

    @abstractmethod
    def is_staff(self, email: str) -> bool: ...


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _storage(self):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Booking storage call failed.')
            raise errors.UpstreamUnavailableError('Booking storage is unavailable.') from exc

    def get_barber(self, barber_id, active_only=False):
        with self._storage():
            query = self.db.query(Barber).filter(Barber.id == barber_id)
            if active_only:
                query = query.filter(Barber.is_active.is_(True))
            return query.first()

    def list_barbers(self, active_only=True):
        with self._storage():
            query = self.db.query(Barber)
            if active_only:
                query = query.filter(Barber.is_active.is_(True))
            return query.order_by(Barber.sort_order.asc(), Barber.name.asc()).all()

    def get_service(self, service_id, active_only=False):
        with self._storage():
            query = self.db.query(Service).filter(Service.id == service_id)
            if active_only:
                query = query.filter(Service.is_active.is_(True))
            return query.first()

    def list_services(self, active_only=True):
        with self._storage():
            query = self.db.query(Service)
            if active_only:
                query = query.filter(Service.is_active.is_(True))
            return query.order_by(Service.sort_order.asc(), Service.name.asc()).all()

    def list_availability_windows(self, barber_id, day_of_week=None):
        with self._storage():
            query = self.db.query(AvailabilityWindow).filter(AvailabilityWindow.barber_id == barber_id)
            if day_of_week is not None:
                query = query.filter(AvailabilityWindow.day_of_week == day_of_week)
            return query.order_by(
                AvailabilityWindow.day_of_week.asc(),
                AvailabilityWindow.start_minutes.asc(),
            ).all()

    def add_availability_window(self, window):
        with self._storage():
            self.db.add(window)
            self.db.commit()
            self.db.refresh(window)
            return window

    def delete_availability_window(self, barber_id, window_id):
        with self._storage():
            window = self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.id == window_id,
                AvailabilityWindow.barber_id == barber_id,
            ).first()
            if window is None:
                raise errors.NotFoundError('Availability window not found.')
            self.db.delete(window)
            self.db.commit()

    def list_time_off(self, barber_id):
        with self._storage():
            return self.db.query(TimeOff).filter(
                TimeOff.barber_id == barber_id,
            ).order_by(TimeOff.start_date.asc()).all()

    def list_time_off_covering(self, barber_id, day):
        with self._storage():
            return self.db.query(TimeOff).filter(
                TimeOff.barber_id == barber_id,
                TimeOff.start_date <= day,
                TimeOff.end_date >= day,
            ).all()

    def add_time_off(self, entry):
        with self._storage():
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            return entry

    def delete_time_off(self, barber_id, entry_id):
        with self._storage():
            entry = self.db.query(TimeOff).filter(
                TimeOff.id == entry_id,
                TimeOff.barber_id == barber_id,
            ).first()
            if entry is None:
                raise errors.NotFoundError('Time off not found.')
            self.db.delete(entry)
            self.db.commit()

    def list_confirmed_appointments(self, start, end, barber_id=None):
        with self._storage():
            query = self.db.query(Appointment).filter(
                Appointment.status == CONFIRMED,
                Appointment.start_at >= start,
                Appointment.start_at < end,
            )
            if barber_id is not None:
                query = query.filter(Appointment.barber_id == barber_id)
            return query.order_by(Appointment.start_at.asc()).all()

    def get_appointment(self, appointment_id):
        with self._storage():
            return self.db.get(Appointment, appointment_id)

    def _lock_barber(self, barber_id) -> None:
        locked = self.db.query(Barber.id).filter(Barber.id == barber_id).with_for_update().first()
        if locked is None:
            self.db.rollback()
            raise errors.NotFoundError('Barber not found.')

    def _confirmed_overlap(self, barber_id, start_at, end_at, exclude_id=None) -> Appointment | None:
        query = self.db.query(Appointment).filter(
            Appointment.barber_id == barber_id,
            Appointment.status == CONFIRMED,
            overlaps(Appointment.start_at, Appointment.end_at, start_at, end_at),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_at.asc()).first()

    def _commit_guarded(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if APPOINTMENT_EXCLUSION_CONSTRAINT in str(exc.orig):
                raise errors.ConflictError(CONFLICT_MESSAGE) from exc
            raise

    def insert_appointment(self, appointment):
        with self._storage():
            self._lock_barber(appointment.barber_id)
            conflict = self._confirmed_overlap(appointment.barber_id, appointment.start_at, appointment.end_at)
            if conflict is not None:
                self.db.rollback()
                raise errors.ConflictError(CONFLICT_MESSAGE)

            self.db.add(appointment)
            self._commit_guarded()
            self.db.refresh(appointment)
            return appointment

    def update_appointment_times(self, appointment_id, start_at, end_at, updated_at):
        with self._storage():
            appointment = self.db.get(Appointment, appointment_id)
            if appointment is None:
                raise errors.NotFoundError('Appointment not found.')

            self._lock_barber(appointment.barber_id)
            conflict = self._confirmed_overlap(appointment.barber_id, start_at, end_at, exclude_id=appointment.id)
            if conflict is not None:
                self.db.rollback()
                raise errors.ConflictError(CONFLICT_MESSAGE)

            appointment.start_at = start_at
            appointment.end_at = end_at
            appointment.updated_at = updated_at
            self._commit_guarded()
            self.db.refresh(appointment)
            return appointment

    def update_appointment_status(self, appointment_id, status, updated_at, expected_status=None):
        with self._storage():
            appointment = self.db.get(Appointment, appointment_id)
            if appointment is None:
                raise errors.NotFoundError('Appointment not found.')

            self._lock_barber(appointment.barber_id)
            self.db.refresh(appointment)
            current = appointment.status
            if expected_status is not None and current != expected_status:
                self.db.rollback()
                if current == status:
                    return appointment
                raise errors.ConflictError(STATUS_CHANGED_MESSAGE)

            appointment.status = status
            appointment.updated_at = updated_at
            self.db.commit()
            self.db.refresh(appointment)
            return appointment

    def is_staff(self, email):
        with self._storage():
            return self.db.get(StaffMember, email.strip().lower()) is not None


class InMemoryBookingRepository(BookingRepository):
    """Process-local repository for tests and local experiments."""

    def __init__(self):
        self.barbers: dict[uuid.UUID, Barber] = {}
        self.services: dict[uuid.UUID, Service] = {}
        self.windows: dict[uuid.UUID, AvailabilityWindow] = {}
        self.time_off: dict[uuid.UUID, TimeOff] = {}
        self.appointments: dict[uuid.UUID, Appointment] = {}
        self.staff_emails: set[str] = set()
        self._locks_guard = Lock()
        self._barber_locks: dict[uuid.UUID, Lock] = defaultdict(Lock)

    @staticmethod
    def _with_defaults(record):
        if record.id is None:
            record.id = uuid.uuid4()
        if getattr(record, 'created_at', None) is None:
            record.created_at = utc_now()
        if getattr(record, 'updated_at', None) is None:
            record.updated_at = record.created_at
        return record

    def _barber_lock(self, barber_id) -> Lock:
        with self._locks_guard:
            return self._barber_locks[barber_id]

    def add_barber(self, barber: Barber) -> Barber:
        if barber.is_active is None:
            barber.is_active = True
        if barber.sort_order is None:
            barber.sort_order = 0
        self.barbers[self._with_defaults(barber).id] = barber
        return barber

    def add_service(self, service: Service) -> Service:
        if service.is_active is None:
            service.is_active = True
        if service.sort_order is None:
            service.sort_order = 0
        self.services[self._with_defaults(service).id] = service
        return service

    def add_staff(self, email: str) -> None:
        self.staff_emails.add(email.strip().lower())

    def get_barber(self, barber_id, active_only=False):
        barber = self.barbers.get(barber_id)
        if barber is None or (active_only and not barber.is_active):
            return None
        return barber

    def list_barbers(self, active_only=True):
        barbers = [barber for barber in self.barbers.values() if barber.is_active or not active_only]
        return sorted(barbers, key=lambda barber: (barber.sort_order, barber.name))

    def get_service(self, service_id, active_only=False):
        service = self.services.get(service_id)
        if service is None or (active_only and not service.is_active):
            return None
        return service

    def list_services(self, active_only=True):
        services = [service for service in self.services.values() if service.is_active or not active_only]
        return sorted(services, key=lambda service: (service.sort_order, service.name))

    def list_availability_windows(self, barber_id, day_of_week=None):
        windows = [
            window
            for window in self.windows.values()
            if window.barber_id == barber_id and (day_of_week is None or window.day_of_week == day_of_week)
        ]
        return sorted(windows, key=lambda window: (window.day_of_week, window.start_minutes))

    def add_availability_window(self, window):
        self.windows[self._with_defaults(window).id] = window
        return window

    def delete_availability_window(self, barber_id, window_id):
        window = self.windows.get(window_id)
        if window is None or window.barber_id != barber_id:
            raise errors.NotFoundError('Availability window not found.')
        del self.windows[window_id]

    def list_time_off(self, barber_id):
        entries = [entry for entry in self.time_off.values() if entry.barber_id == barber_id]
        return sorted(entries, key=lambda entry: entry.start_date)

    def list_time_off_covering(self, barber_id, day):
        return [entry for entry in self.list_time_off(barber_id) if entry.start_date <= day <= entry.end_date]

    def add_time_off(self, entry):
        if entry.kind is None:
            entry.kind = 'time_off'
        self.time_off[self._with_defaults(entry).id] = entry
        return entry

    def delete_time_off(self, barber_id, entry_id):
        entry = self.time_off.get(entry_id)
        if entry is None or entry.barber_id != barber_id:
            raise errors.NotFoundError('Time off not found.')
        del self.time_off[entry_id]

    def list_confirmed_appointments(self, start, end, barber_id=None):
        appointments = [
            appointment
            for appointment in self.appointments.values()
            if appointment.status == CONFIRMED
            and start <= appointment.start_at < end
            and (barber_id is None or appointment.barber_id == barber_id)
        ]
        return sorted(appointments, key=lambda appointment: appointment.start_at)

    def get_appointment(self, appointment_id):
        return self.appointments.get(appointment_id)

    def _barber_appointments(self, barber_id) -> list[Appointment]:
        return [appointment for appointment in self.appointments.values() if appointment.barber_id == barber_id]

    def insert_appointment(self, appointment):
        if appointment.barber_id not in self.barbers:
            raise errors.NotFoundError('Barber not found.')

        with self._barber_lock(appointment.barber_id):
            conflict = find_conflict(
                appointment.start_at,
                appointment.end_at,
                self._barber_appointments(appointment.barber_id),
            )
            if conflict is not None:
                raise errors.ConflictError(CONFLICT_MESSAGE)
            self.appointments[self._with_defaults(appointment).id] = appointment
            return appointment

    def update_appointment_times(self, appointment_id, start_at, end_at, updated_at):
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise errors.NotFoundError('Appointment not found.')

        with self._barber_lock(appointment.barber_id):
            conflict = find_conflict(
                start_at,
                end_at,
                self._barber_appointments(appointment.barber_id),
                exclude_id=appointment.id,
            )
            if conflict is not None:
                raise errors.ConflictError(CONFLICT_MESSAGE)
            appointment.start_at = start_at
            appointment.end_at = end_at
            appointment.updated_at = updated_at
            return appointment

    def update_appointment_status(self, appointment_id, status, updated_at, expected_status=None):
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise errors.NotFoundError('Appointment not found.')

        with self._barber_lock(appointment.barber_id):
            if expected_status is not None and appointment.status != expected_status:
                if appointment.status == status:
                    return appointment
                raise errors.ConflictError(STATUS_CHANGED_MESSAGE)
            appointment.status = status
            appointment.updated_at = updated_at
            return appointment

    def is_staff(self, email):
        return email.strip().lower() in self.staff_emails
