import re
from datetime import date
from decimal import Decimal, InvalidOperation

from clubhouse.errors import ClubError

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_uuid(value: str | None) -> bool:
    return bool(value) and bool(UUID_PATTERN.match(value))


def is_valid_email(value: str | None) -> bool:
    if not value:
        return False
    return bool(EMAIL_PATTERN.match(value.strip()))


def sanitize_string(value: str | None, max_length: int = 255) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.strip())[:max_length]


def sanitize_email(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip().lower()
    return trimmed if is_valid_email(trimmed) else None


def format_error(error: object) -> str:
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    return "An unexpected error occurred"


def optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def parse_optional_int(value: str | None, label: str = "Number") -> int | None:
    cleaned = (value or "").strip()
    if not cleaned:
        return None
    try:
        return int(cleaned)
    except ValueError:
        raise ClubError(f"{label} must be a whole number.") from None


def parse_optional_date(value: str | None, label: str = "Date") -> date | None:
    cleaned = (value or "").strip()
    if not cleaned:
        return None
    try:
        return date.fromisoformat(cleaned[:10])
    except ValueError:
        raise ClubError(f"{label} must be a date (YYYY-MM-DD).") from None


def parse_money(value: str | None, default: Decimal | None = None) -> Decimal:
    cleaned = (value or "").strip()
    if not cleaned:
        if default is None:
            raise ClubError("Fee amount must be a non-negative number")
        return default
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ClubError("Fee amount must be a non-negative number") from None
    if not amount.is_finite() or amount < 0:
        raise ClubError("Fee amount must be a non-negative number")
    return amount.quantize(Decimal("0.01"))


def css_classes(*parts: str | None | bool) -> str:
    return " ".join(part for part in parts if part and isinstance(part, str))
