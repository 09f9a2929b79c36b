"""Print a staff bearer token for an allow-listed email.

Usage:
    python -m barbershop.issue_staff_token manager@example.com
"""
import sys

from barbershop.auth.jwt_handler import create_access_token
from barbershop.database import SessionLocal
from barbershop.scheduling.repository import SqlAlchemyBookingRepository


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print('Usage: python -m barbershop.issue_staff_token <email>', file=sys.stderr)
        sys.exit(2)

    email = args[0].strip().lower()
    db = SessionLocal()
    try:
        allowed = SqlAlchemyBookingRepository(db).is_staff(email)
    finally:
        db.close()

    if not allowed:
        print(f'{email} is not on the staff allow-list.', file=sys.stderr)
        sys.exit(1)

    print(create_access_token(subject=email))


if __name__ == '__main__':
    main()
