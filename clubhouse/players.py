import logging
import re
from datetime import date

from clubhouse import db
from clubhouse.errors import ClubError
from clubhouse.settings import PLAYER_STATUSES
from clubhouse.validation import (
    optional_text,
    parse_optional_date,
    parse_optional_int,
    sanitize_email,
    sanitize_string,
)

logger = logging.getLogger(__name__)

AGE_GROUP_TONES = {
    "U9": "emerald",
    "U10": "emerald",
    "U11": "sky",
    "U12": "sky",
    "U13": "violet",
    "U14": "violet",
    "U15": "amber",
    "U16": "amber",
    "U17": "rose",
    "U18": "rose",
    "U19": "rose",
    "Seniors": "neutral",
}


def display_name(player: dict) -> str:
    preferred = player.get("preferred_name")
    if preferred:
        return preferred
    return f"{player.get('first_name', '')} {player.get('last_name', '')}".strip()


def calc_age(dob: date | None, today: date | None = None) -> int | None:
    if not dob:
        return None
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def age_group_from_name(name: str) -> str:
    upper = (name or "").upper()
    match = re.search(r"\bU(\d{1,2})\b", upper)
    if match:
        return f"U{match.group(1)}"
    if re.search(r"\bSENIORS?\b|OPEN|PREMIER|FIRSTS", upper):
        return "Seniors"
    return "Mixed"


def age_group_tone(group: str) -> str:
    return AGE_GROUP_TONES.get(group, "blue")


def filter_players(rows: list[dict], query: str | None) -> list[dict]:
    term = (query or "").strip().lower()
    if not term:
        return rows
    filtered = []
    for row in rows:
        name = (
            f"{row.get('first_name', '')} {row.get('last_name', '')} "
            f"{row.get('preferred_name') or ''}"
        ).lower()
        jersey = "" if row.get("jersey_no") is None else str(row["jersey_no"])
        if term in name or term in jersey:
            filtered.append(row)
    return filtered


def parse_player_form(
    first_name: str,
    last_name: str,
    preferred_name: str = "",
    dob: str = "",
    jersey_no: str = "",
    status: str = "active",
    notes: str = "",
) -> dict:
    first = sanitize_string(first_name)
    last = sanitize_string(last_name)
    if not first or not last:
        raise ClubError("First and last name are required.")
    jersey = parse_optional_int(jersey_no, "Jersey #")
    if jersey is not None and jersey < 0:
        raise ClubError("Jersey # must be zero or more.")
    cleaned_status = (status or "active").strip().lower()
    if cleaned_status not in PLAYER_STATUSES:
        raise ClubError(f"Status must be one of: {', '.join(PLAYER_STATUSES)}.")
    return {
        "first_name": first,
        "last_name": last,
        "preferred_name": optional_text(preferred_name),
        "dob": parse_optional_date(dob, "Date of birth"),
        "jersey_no": jersey,
        "status": cleaned_status,
        "notes": optional_text(notes),
    }


def create_player(
    database_url: str,
    form: dict,
    guardian_name: str = "",
    guardian_email: str = "",
    guardian_phone: str = "",
) -> str:
    first = sanitize_string(form.get("first_name"))
    last = sanitize_string(form.get("last_name"))
    if not first or not last:
        raise ClubError("First and last name are required.")
    player_id = db.insert_player(
        database_url,
        first,
        last,
        form.get("preferred_name"),
        form.get("dob"),
        form.get("jersey_no"),
        form.get("status") or "active",
        form.get("notes"),
    )
    logger.info("Created player %s", player_id)

    name = sanitize_string(guardian_name)
    email = (guardian_email or "").strip()
    phone = optional_text(guardian_phone)
    if name or email or phone:
        guardian_id = db.insert_guardian(
            database_url,
            name,
            sanitize_email(email) if email else None,
            phone,
        )
        db.link_guardian(database_url, player_id, guardian_id, primary_contact=True)
    return player_id


def update_player(database_url: str, player_id: str, form: dict, photo_url: str = "") -> None:
    updated = db.update_player(
        database_url,
        player_id,
        form["first_name"],
        form["last_name"],
        form["preferred_name"],
        form["dob"],
        form["jersey_no"],
        form["status"],
        form.get("notes"),
        optional_text(photo_url),
    )
    if not updated:
        raise ClubError("Player not found.")


def load_profile(database_url: str, player_id: str, term_id: str | None) -> dict | None:
    player = db.fetch_player(database_url, player_id)
    if not player:
        return None
    memberships = []
    if term_id:
        for row in db.fetch_player_memberships(database_url, player_id, term_id):
            group = age_group_from_name(row["team_name"])
            memberships.append(
                {
                    **row,
                    "age_group": group,
                    "tone": age_group_tone(group),
                    "is_captain": (row.get("role") or "").lower() == "captain",
                }
            )
    return {
        "player": player,
        "display_name": display_name(player),
        "age": calc_age(player.get("dob")),
        "memberships": memberships,
        "guardians": db.fetch_player_guardians(database_url, player_id),
    }


def remove_membership(database_url: str, membership_id: str) -> None:
    if not db.delete_membership(database_url, membership_id):
        raise ClubError("Membership not found.")


def delete_player(database_url: str, player_id: str) -> str | None:
    """Delete the player and return the stored photo path, if any, for cleanup."""
    player = db.fetch_player(database_url, player_id)
    if not player:
        raise ClubError("Player not found.")
    db.delete_player(database_url, player_id)
    logger.info("Deleted player %s", player_id)
    return player.get("photo_storage_path")
