from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from clubhouse.errors import ClubError
from clubhouse.settings import DEFAULT_DURATION, EVENT_TYPES, START_PRESETS
from clubhouse.validation import optional_text


def combine_local(date_str: str, time_str: str, timezone: str) -> datetime:
    try:
        day = date.fromisoformat(date_str.strip())
        clock = time.fromisoformat(time_str.strip()[:5])
    except (AttributeError, ValueError):
        raise ClubError("Error: start and end are required.") from None
    return datetime.combine(day, clock, tzinfo=ZoneInfo(timezone))


def resolve_event_window(
    start_date: str,
    start_time: str,
    end_date: str,
    end_time: str,
    duration: int | None,
    timezone: str,
) -> tuple[datetime, datetime]:
    if not (start_date and start_time):
        raise ClubError("Error: start and end are required.")
    starts = combine_local(start_date, start_time, timezone)
    if end_date and end_time:
        ends = combine_local(end_date, end_time, timezone)
    elif duration:
        ends = starts + timedelta(minutes=duration)
    else:
        raise ClubError("Error: start and end are required.")
    if ends <= starts:
        raise ClubError("Error: End must be after start.")
    return starts, ends


def split_local(value: datetime, timezone: str) -> tuple[str, str]:
    local = value.astimezone(ZoneInfo(timezone))
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


def format_when(value: datetime | None, timezone: str) -> str:
    if not value:
        return ""
    local = value.astimezone(ZoneInfo(timezone))
    return f"{local:%a} {local.day} {local:%b}, {local:%I:%M} {local.strftime('%p').lower()}"


def event_title(event: dict) -> str:
    return event.get("title") or (event.get("type") or "").capitalize() or "Event"


def default_window(now: datetime, timezone: str) -> dict:
    local = now.astimezone(ZoneInfo(timezone))
    starts = datetime.combine(local.date(), time(17, 0), tzinfo=ZoneInfo(timezone))
    ends = starts + timedelta(minutes=DEFAULT_DURATION)
    return {
        "start_date": starts.strftime("%Y-%m-%d"),
        "start_time": starts.strftime("%H:%M"),
        "end_date": ends.strftime("%Y-%m-%d"),
        "end_time": ends.strftime("%H:%M"),
        "duration": DEFAULT_DURATION,
    }


def apply_start_preset(start_date: str, preset: str) -> tuple[str, str]:
    if preset not in START_PRESETS:
        raise ClubError(f"Unknown start preset: {preset}")
    days, clock = START_PRESETS[preset]
    day = date.fromisoformat(start_date) + timedelta(days=days)
    return day.isoformat(), clock


def parse_event_form(
    team_id: str,
    event_type: str,
    title: str,
    location: str,
    start_date: str,
    start_time: str,
    end_date: str,
    end_time: str,
    duration: str,
    timezone: str,
) -> dict:
    cleaned_type = (event_type or "training").strip().lower()
    if cleaned_type not in EVENT_TYPES:
        raise ClubError(f"Error: type must be one of {', '.join(EVENT_TYPES)}.")
    try:
        minutes = int(duration) if duration else None
    except ValueError:
        minutes = None
    starts, ends = resolve_event_window(
        start_date, start_time, end_date, end_time, minutes, timezone
    )
    return {
        "team_id": optional_text(team_id),
        "event_type": cleaned_type,
        "title": optional_text(title),
        "location": optional_text(location),
        "starts_at": starts,
        "ends_at": ends,
    }
