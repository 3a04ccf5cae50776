import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    database_url: str
    service_url: str
    service_key: str
    photo_bucket: str = "player-photos"
    timezone: str = "Pacific/Auckland"
    default_currency: str = "NZD"


TERM_COOKIE = "kauri_term_id"

MAX_PHOTO_SIZE_MB = 5
MAX_PHOTO_SIZE_BYTES = MAX_PHOTO_SIZE_MB * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
SIGNED_URL_EXPIRY_SECONDS = 3600

REGISTRATION_BATCH_SIZE = 200

EVENT_TYPES = ("training", "game", "tournament")
ATTENDANCE_STATUSES = ("present", "absent", "late")
MEMBERSHIP_ROLES = ("player", "captain")
PLAYER_STATUSES = ("prospect", "active", "inactive", "alumni")
CURRENCIES = ("NZD", "AUD", "USD")

DURATION_PRESETS = (60, 75, 90, 105, 120)
DEFAULT_DURATION = 90
START_PRESETS = {
    "Today 4:00p": (0, "16:00"),
    "Today 5:00p": (0, "17:00"),
    "Today 6:00p": (0, "18:00"),
    "Tomorrow 5:00p": (1, "17:00"),
}


def _normalize_database_url(value: Optional[str]) -> str:
    if not value:
        return "postgresql://localhost:5432/clubhouse"
    normalized = value.strip()
    if normalized.startswith("postgres://"):
        return "postgresql://" + normalized[len("postgres://"):]
    return normalized


def _first_env(*keys: str, default: str = "") -> str:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value.strip()
    return default


def load_settings() -> Settings:
    return Settings(
        database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
        service_url=_first_env("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL").rstrip("/"),
        service_key=_first_env("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
        photo_bucket=_first_env("PLAYER_PHOTOS_BUCKET", default="player-photos"),
        timezone=_first_env("CLUB_TIMEZONE", default="Pacific/Auckland"),
        default_currency=_first_env("DEFAULT_CURRENCY", default="NZD").upper(),
    )
