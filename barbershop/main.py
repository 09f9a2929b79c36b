import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barbershop.core import config
from barbershop.database import Base, engine, ensure_booking_schema
from barbershop.models import appointment, availability, barber, service, staff, time_off  # noqa: F401
from barbershop.routes import appointment_routes, barber_routes, service_routes
from barbershop.routes.common import get_db

app = FastAPI(title=f'{config.SHOP_NAME} Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': f'{config.SHOP_NAME} Booking API Running'}


@app.get('/health')
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text('SELECT 1'))
    except SQLAlchemyError:
        logger.exception('Health check could not reach the database.')
        return JSONResponse(status_code=503, content={'ok': False, 'database_ok': False})
    return {'ok': True, 'database_ok': True}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(barber_routes.router, prefix='/barbers')
app.include_router(service_routes.router, prefix='/services')
