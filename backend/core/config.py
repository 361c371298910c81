import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

# Booking window, in days from today.
ENFORCE_BOOKING_WINDOW = _get_bool(os.getenv("ENFORCE_BOOKING_WINDOW"), default=True)
MIN_ADVANCE_BOOKING_DAYS = int(os.getenv("MIN_ADVANCE_BOOKING_DAYS", "0"))
MAX_ADVANCE_BOOKING_DAYS = int(os.getenv("MAX_ADVANCE_BOOKING_DAYS", "90"))

MAX_RESOLVE_RANGE_DAYS = int(os.getenv("MAX_RESOLVE_RANGE_DAYS", "42"))

DEFAULT_SLOT_DURATION = int(os.getenv("DEFAULT_SLOT_DURATION", "30"))

def validate_runtime_config() -> None:
    if MIN_ADVANCE_BOOKING_DAYS < 0:
        raise RuntimeError("MIN_ADVANCE_BOOKING_DAYS must not be negative.")
    if MAX_ADVANCE_BOOKING_DAYS < MIN_ADVANCE_BOOKING_DAYS:
        raise RuntimeError("MAX_ADVANCE_BOOKING_DAYS must be at least MIN_ADVANCE_BOOKING_DAYS.")
    if MAX_RESOLVE_RANGE_DAYS < 1:
        raise RuntimeError("MAX_RESOLVE_RANGE_DAYS must be at least 1.")
    if DEFAULT_SLOT_DURATION < 1:
        raise RuntimeError("DEFAULT_SLOT_DURATION must be at least 1.")
    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at a server database in production.")
