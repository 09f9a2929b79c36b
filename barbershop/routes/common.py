import logging
import re
from datetime import date

from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barbershop.core import config, errors
from barbershop.core.config import StoreSettings, get_store_settings
from barbershop.database import ReadSessionLocal, SessionLocal, ensure_booking_schema
from barbershop.scheduling.repository import BookingRepository, SqlAlchemyBookingRepository

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

UNAVAILABLE_DETAIL = f'Online booking is temporarily unavailable. Please call us at {config.SHOP_PHONE}.'


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_read_db():
    db = ReadSessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_repository(db: Session = Depends(get_db)) -> BookingRepository:
    return SqlAlchemyBookingRepository(db)


def get_read_repository(db: Session = Depends(get_read_db)) -> BookingRepository:
    return SqlAlchemyBookingRepository(db)


def get_store() -> StoreSettings:
    return get_store_settings()


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        logger.exception('Booking schema check failed.')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UNAVAILABLE_DETAIL,
        ) from exc


def parse_calendar_date(value: str | None, field: str = 'date') -> date:
    if not value or not DATE_PATTERN.match(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={'field': field, 'message': 'Invalid or missing date. Use YYYY-MM-DD.'},
        )
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={'field': field, 'message': f'{value} is not a calendar date.'},
        ) from exc


def as_http_exception(exc: errors.BookingError) -> HTTPException:
    if isinstance(exc, errors.ValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={'field': exc.field, 'message': str(exc)},
        )
    if isinstance(exc, errors.NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, errors.ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, errors.UpstreamUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='Internal server error')
