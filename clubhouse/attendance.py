import logging
from zoneinfo import ZoneInfo

from clubhouse import db
from clubhouse.errors import ClubError
from clubhouse.players import display_name, filter_players
from clubhouse.schedule import event_title, format_when
from clubhouse.settings import ATTENDANCE_STATUSES
from clubhouse.terms import term_for_date
from clubhouse.validation import optional_text

logger = logging.getLogger(__name__)


def _roll_team_term_ids(database_url: str, event: dict, timezone: str) -> list[str]:
    team_terms = db.fetch_team_terms_for_team(database_url, event["team_id"])
    if not team_terms:
        return []
    starts_at = event.get("starts_at")
    if starts_at:
        event_day = starts_at.astimezone(ZoneInfo(timezone)).date()
        term = term_for_date(db.fetch_terms(database_url), event_day)
        if term:
            scoped = [tt["id"] for tt in team_terms if tt["term_id"] == term["id"]]
            if scoped:
                return scoped
    return [tt["id"] for tt in team_terms]


def load_roll(database_url: str, event_id: str, timezone: str) -> dict | None:
    event = db.fetch_event(database_url, event_id)
    if not event:
        return None
    roll = {
        "event": event,
        "title": event_title(event),
        "when": format_when(event.get("starts_at"), timezone),
        "rows": [],
    }
    if not event.get("team_id"):
        return roll

    members = db.fetch_team_members(
        database_url, _roll_team_term_ids(database_url, event, timezone)
    )
    recorded = {
        row["player_term_id"]: row for row in db.fetch_attendance(database_url, event_id)
    }
    rows = []
    seen: set[str] = set()
    for member in members:
        ptid = member["player_term_id"]
        if ptid in seen:
            continue
        seen.add(ptid)
        mark = recorded.get(ptid) or {}
        rows.append(
            {
                "player_term_id": ptid,
                "first_name": member["first_name"],
                "last_name": member["last_name"],
                "preferred_name": member.get("preferred_name"),
                "jersey_no": member.get("jersey_no"),
                "display_name": display_name(member),
                "status": mark.get("status"),
                "notes": mark.get("notes"),
            }
        )
    roll["rows"] = sorted(rows, key=lambda row: row["display_name"].lower())
    return roll


def filter_roll(rows: list[dict], query: str | None) -> list[dict]:
    return filter_players(rows, query)


def bulk_status(rows: list[dict], status: str | None) -> list[dict]:
    if status is not None and status not in ATTENDANCE_STATUSES:
        raise ClubError(f"Unknown attendance status: {status}")
    return [{**row, "status": status} for row in rows]


def save_roll(database_url: str, event_id: str, entries: list[dict]) -> int:
    """Upsert every entry that carries a status; entries without one are skipped."""
    rows = []
    for entry in entries:
        status = (entry.get("status") or "").strip().lower() or None
        if status is None:
            continue
        if status not in ATTENDANCE_STATUSES:
            raise ClubError(f"Unknown attendance status: {status}")
        rows.append(
            {
                "player_term_id": entry["player_term_id"],
                "status": status,
                "notes": optional_text(entry.get("notes")),
            }
        )
    if rows:
        db.upsert_attendance(database_url, event_id, rows)
        logger.info("Saved %s attendance marks for event %s", len(rows), event_id)
    return len(rows)
