import logging
from datetime import datetime, timezone
from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import DateTime, TypeDecorator

from barbershop.core import config

logger = logging.getLogger(__name__)


DEFERRED_BEGIN_OPTION = 'sqlite_deferred_begin'


def enable_sqlite_write_locking(target: Engine) -> None:
    """Make SQLite transactions take the database write lock up front.

    pysqlite defers BEGIN until the first write, so a check-then-insert would
    otherwise read outside any lock. Connections carrying the
    ``sqlite_deferred_begin`` execution option only read and keep a plain BEGIN.
    """

    @event.listens_for(target, 'connect')
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, 'begin')
    def _begin_immediate(connection):
        if connection.get_execution_options().get(DEFERRED_BEGIN_OPTION):
            connection.exec_driver_sql('BEGIN')
        else:
            connection.exec_driver_sql('BEGIN IMMEDIATE')


def build_engine(database_url: str) -> Engine:
    if database_url.startswith('sqlite'):
        sqlite_engine = create_engine(
            database_url,
            echo=config.DATABASE_ECHO,
            connect_args={'check_same_thread': False},
        )
        enable_sqlite_write_locking(sqlite_engine)
        return sqlite_engine

    return create_engine(database_url, echo=config.DATABASE_ECHO, pool_pre_ping=True)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Slot listings, catalogs and staff views never write.
ReadSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine.execution_options(**{DEFERRED_BEGIN_OPTION: True}),
)

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    SQLite has no zone support, so values are stored as naive UTC there and
    re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError('Naive datetimes cannot be stored; attach a timezone first.')
        value = value.astimezone(timezone.utc)
        if dialect.name == 'sqlite':
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


_schema_lock = Lock()
_booking_schema_checked = False

APPOINTMENT_EXCLUSION_CONSTRAINT = 'appointments_no_confirmed_overlap'


def ensure_booking_schema(target: Engine | None = None) -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        bind = target or engine
        inspector = inspect(bind)

        if 'appointments' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        with bind.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_barber_start ON appointments(barber_id, start_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_status_start ON appointments(status, start_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_windows_barber_day ON availability_windows(barber_id, day_of_week)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_time_off_barber_dates ON time_off(barber_id, start_date, end_date)')
            )

        if bind.dialect.name == 'postgresql':
            ensure_appointment_exclusion_constraint(bind)

        _booking_schema_checked = True


def ensure_appointment_exclusion_constraint(bind: Engine) -> None:
    """Let PostgreSQL itself reject overlapping confirmed appointments per barber."""
    try:
        with bind.begin() as connection:
            exists = connection.execute(
                text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
                {'name': APPOINTMENT_EXCLUSION_CONSTRAINT},
            ).first()
            if exists:
                return
            connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
            connection.execute(
                text(
                    f'ALTER TABLE appointments ADD CONSTRAINT {APPOINTMENT_EXCLUSION_CONSTRAINT} '
                    "EXCLUDE USING gist (barber_id WITH =, tstzrange(start_at, end_at, '[)') WITH &&) "
                    "WHERE (status = 'confirmed')"
                )
            )
    except SQLAlchemyError:
        logger.warning(
            'Could not install %s; overlapping bookings are still serialized by barber row locks.',
            APPOINTMENT_EXCLUSION_CONSTRAINT,
            exc_info=True,
        )
