"""Load the shop's services, barbers and staff allow-list.

Usage:
    python -m barbershop.seed

Existing rows (matched by slug or email) are left alone, so it is safe to run
again after editing the lists below.
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from barbershop.core import config
from barbershop.database import Base, SessionLocal, engine, ensure_booking_schema
from barbershop.models import appointment, availability, time_off  # noqa: F401
from barbershop.models.barber import Barber
from barbershop.models.service import Service
from barbershop.models.staff import StaffMember

logger = logging.getLogger(__name__)

SERVICES = [
    {'name': 'Kids Haircut', 'slug': 'kids-haircut', 'duration_minutes': 30, 'price_cents': 3000, 'category': 'kids'},
    {'name': 'Shape Up', 'slug': 'shape-up', 'duration_minutes': 30, 'price_cents': 2000, 'category': 'adults'},
    {'name': 'Shape Up & Beard', 'slug': 'shape-up-beard', 'duration_minutes': 30, 'price_cents': 3000, 'category': 'adults'},
    {'name': 'Senior Citizens', 'slug': 'senior-citizens', 'duration_minutes': 30, 'price_cents': 3000, 'category': 'seniors'},
    {'name': 'Haircut Adult', 'slug': 'haircut-adult', 'duration_minutes': 30, 'price_cents': 4000, 'category': 'adults'},
    {'name': 'Haircut & Beard', 'slug': 'haircut-beard', 'duration_minutes': 30, 'price_cents': 5000, 'category': 'adults'},
    {'name': 'Haircut / Beard / Hot Towel', 'slug': 'haircut-beard-hot-towel', 'duration_minutes': 30, 'price_cents': 5500, 'category': 'adults'},
    {'name': 'Enhancement beard color black/brown', 'slug': 'enhancement-beard-color', 'duration_minutes': 30, 'price_cents': 0, 'category': 'adults'},
    {'name': 'Braids', 'slug': 'braids', 'duration_minutes': 30, 'price_cents': 5000, 'category': 'adults'},
]

BARBERS = [
    {'name': 'Louie Live', 'slug': 'louie-live'},
    {'name': 'Johan', 'slug': 'johan'},
    {'name': 'King Rome', 'slug': 'king-rome'},
    {'name': 'Jesus', 'slug': 'jesus'},
    {'name': 'Angel', 'slug': 'angel'},
    {'name': 'Victor', 'slug': 'victor'},
    {'name': 'Liseth', 'slug': 'liseth'},
    {'name': 'Carlos', 'slug': 'carlos'},
]


def seed(db, staff_emails: list[str]) -> dict[str, int]:
    inserted = {'services': 0, 'barbers': 0, 'staff': 0}

    existing_services = {slug for (slug,) in db.query(Service.slug).all()}
    for sort_order, row in enumerate(SERVICES):
        if row['slug'] not in existing_services:
            db.add(Service(sort_order=sort_order, **row))
            inserted['services'] += 1

    existing_barbers = {slug for (slug,) in db.query(Barber.slug).all()}
    for sort_order, row in enumerate(BARBERS):
        if row['slug'] not in existing_barbers:
            db.add(Barber(sort_order=sort_order, **row))
            inserted['barbers'] += 1

    for email in {email.strip().lower() for email in staff_emails if email.strip()}:
        if db.get(StaffMember, email) is None:
            db.add(StaffMember(email=email))
            inserted['staff'] += 1

    db.commit()
    return inserted


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
        inserted = seed(db, config.STAFF_EMAILS)
    except SQLAlchemyError:
        logger.exception('Seeding failed. Check DATABASE_URL.')
        sys.exit(1)
    finally:
        db.close()

    logger.info(
        'Inserted %s services, %s barbers, %s staff emails.',
        inserted['services'],
        inserted['barbers'],
        inserted['staff'],
    )


if __name__ == '__main__':
    main()
