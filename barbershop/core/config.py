import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barbershop.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

# Store hours are whole hours in the store's own zone, e.g. 9 = 9am, 20 = 8pm close.
STORE_TIMEZONE = os.getenv("STORE_TIMEZONE", "America/New_York")
STORE_OPEN_HOUR = int(os.getenv("STORE_OPEN_HOUR", "9"))
STORE_CLOSE_HOUR = int(os.getenv("STORE_CLOSE_HOUR", "20"))
SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))

SHOP_NAME = os.getenv("SHOP_NAME", "Headz Ain't Ready")
SHOP_SLUG = os.getenv("SHOP_SLUG", "headz")
SHOP_PHONE = os.getenv("SHOP_PHONE", "(718) 429-6841")
CALENDAR_UID_DOMAIN = os.getenv("CALENDAR_UID_DOMAIN", "headzaintready.com")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS")) or ["http://localhost:3000"]

STAFF_EMAILS = _get_list(os.getenv("STAFF_EMAILS"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "720"))


@dataclass(frozen=True)
class StoreSettings:
    """Everything the booking engine needs to know about the shop's clock."""

    timezone: ZoneInfo
    open_minutes: int
    close_minutes: int
    slot_minutes: int = 30


def get_store_settings() -> StoreSettings:
    return StoreSettings(
        timezone=ZoneInfo(STORE_TIMEZONE),
        open_minutes=STORE_OPEN_HOUR * 60,
        close_minutes=STORE_CLOSE_HOUR * 60,
        slot_minutes=SLOT_MINUTES,
    )


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not 0 <= STORE_OPEN_HOUR < STORE_CLOSE_HOUR <= 24:
        raise RuntimeError("STORE_OPEN_HOUR must be before STORE_CLOSE_HOUR (0-24).")
    if SLOT_MINUTES <= 0:
        raise RuntimeError("SLOT_MINUTES must be positive.")
    ZoneInfo(STORE_TIMEZONE)
