import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from barbershop.core import errors
from barbershop.routes.common import as_http_exception, ensure_database_ready, get_read_repository
from barbershop.scheduling.repository import BookingRepository

router = APIRouter(tags=['services'])


class ServiceResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: str | None = None
    duration_minutes: int
    price_cents: int
    category: str | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[ServiceResponse])
def list_services(repository: BookingRepository = Depends(get_read_repository)):
    ensure_database_ready()

    try:
        return repository.list_services(active_only=True)
    except errors.BookingError as exc:
        raise as_http_exception(exc) from exc
