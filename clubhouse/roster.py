"""Team assignment for a term.

Every step is a sequence of store calls: look up the term-scoped rows, create
the ones that are missing, then write the membership links. Duplicate links
are prevented by the unique (player_term, team_term) key on the store, so
re-running any of these functions is harmless.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable

from clubhouse import db
from clubhouse.errors import ClubError
from clubhouse.players import create_player, display_name
from clubhouse.settings import MEMBERSHIP_ROLES, REGISTRATION_BATCH_SIZE

logger = logging.getLogger(__name__)

NO_TERM_MESSAGE = "Select a term in the header."


def _require_term(term_id: str | None) -> str:
    if not term_id:
        raise ClubError(NO_TERM_MESSAGE)
    return term_id


def ensure_team_term(database_url: str, team_id: str, term_id: str) -> str:
    existing = db.fetch_team_term(database_url, team_id, term_id)
    if existing:
        return existing["id"]
    team_term_id = db.insert_team_term(database_url, team_id, term_id)
    if not team_term_id:
        raise ClubError("Failed to create team shell")
    logger.info("Created team term %s for team %s", team_term_id, team_id)
    return team_term_id


def ensure_player_term(database_url: str, player_id: str, term_id: str) -> str:
    existing = db.fetch_player_term(database_url, player_id, term_id)
    if existing:
        return existing["id"]
    inserted = db.insert_player_terms(database_url, [player_id], term_id)
    if not inserted:
        # Lost a race with another registration; the row exists now.
        existing = db.fetch_player_term(database_url, player_id, term_id)
        if not existing:
            raise ClubError("Register player failed")
        return existing["id"]
    return inserted[0]["id"]


def register_missing_players(
    database_url: str,
    term_id: str,
    player_ids: Iterable[str],
    batch_size: int = REGISTRATION_BATCH_SIZE,
) -> dict[str, str]:
    """Return player_id -> player_term_id for every player, registering the missing."""
    registered = {
        row["player_id"]: row["id"]
        for row in db.fetch_player_terms_for_term(database_url, term_id)
    }
    missing = [pid for pid in dict.fromkeys(player_ids) if pid not in registered]
    for start in range(0, len(missing), batch_size):
        batch = missing[start:start + batch_size]
        for row in db.insert_player_terms(database_url, batch, term_id):
            registered[row["player_id"]] = row["id"]
    if missing:
        logger.info("Registered %s players into term %s", len(missing), term_id)
        unresolved = [pid for pid in missing if pid not in registered]
        if unresolved:
            # Inserted concurrently by someone else; pick up their ids.
            for row in db.fetch_player_terms_for_term(database_url, term_id):
                registered.setdefault(row["player_id"], row["id"])
    return registered


def _player_row(player: dict, player_term_id: str | None) -> dict:
    return {
        "player_term_id": player_term_id,
        "player_id": player["id"],
        "first_name": player["first_name"],
        "last_name": player["last_name"],
        "preferred_name": player.get("preferred_name"),
        "jersey_no": player.get("jersey_no"),
        "display_name": display_name(player),
        "status": "registered",
    }


def load_team_assignment(database_url: str, team_id: str, term_id: str | None) -> dict:
    term_id = _require_term(term_id)
    team = db.fetch_team(database_url, team_id)
    team_term_id = ensure_team_term(database_url, team_id, term_id)

    players = sorted(
        db.fetch_players(database_url),
        key=lambda item: (item["first_name"].lower(), item["last_name"].lower()),
    )
    registered = register_missing_players(
        database_url, term_id, [player["id"] for player in players]
    )
    rows = [_player_row(player, registered.get(player["id"])) for player in players]
    selected = {
        row["player_term_id"]
        for row in db.fetch_memberships_for_team_term(database_url, team_term_id)
    }
    return {
        "team_name": team["name"] if team else "Team",
        "team_term_id": team_term_id,
        "players": rows,
        "selected": selected,
    }


def save_team_assignment(
    database_url: str, team_term_id: str | None, selected: Iterable[str]
) -> dict:
    if not team_term_id:
        raise ClubError("Missing team-term. Reload.")
    wanted = {ptid for ptid in selected if ptid}
    current = {
        row["player_term_id"]
        for row in db.fetch_memberships_for_team_term(database_url, team_term_id)
    }
    to_add = sorted(wanted - current)
    to_remove = sorted(current - wanted)
    if to_add:
        db.insert_memberships(
            database_url,
            [
                {"player_term_id": ptid, "team_term_id": team_term_id, "role": "player"}
                for ptid in to_add
            ],
        )
    if to_remove:
        db.delete_memberships(database_url, team_term_id, to_remove)
    logger.info(
        "Team term %s: added %s, removed %s", team_term_id, len(to_add), len(to_remove)
    )
    return {"added": to_add, "removed": to_remove}


def quick_add_player(database_url: str, term_id: str | None, form: dict) -> dict:
    term_id = _require_term(term_id)
    player_id = create_player(database_url, form)
    player_term_id = ensure_player_term(database_url, player_id, term_id)
    player = {"id": player_id, **form}
    return _player_row(player, player_term_id)


def assign_player_to_teams(
    database_url: str,
    player_id: str,
    term_id: str | None,
    team_ids: Iterable[str],
    role: str = "player",
    registered_at: date | None = None,
) -> list[str]:
    teams = [team_id for team_id in dict.fromkeys(team_ids) if team_id]
    if not teams:
        raise ClubError("Select at least one team.")
    term_id = _require_term(term_id)
    if role not in MEMBERSHIP_ROLES:
        raise ClubError(f"Role must be one of: {', '.join(MEMBERSHIP_ROLES)}.")

    player_term_id = ensure_player_term(database_url, player_id, term_id)
    team_term_ids = [ensure_team_term(database_url, team_id, term_id) for team_id in teams]

    existing = {
        row["team_term_id"]
        for row in db.fetch_memberships_for_player_term(database_url, player_term_id)
    }
    rows = [
        {"player_term_id": player_term_id, "team_term_id": ttid, "role": role}
        for ttid in team_term_ids
        if ttid not in existing
    ]
    if rows:
        db.insert_memberships(database_url, rows)
    if registered_at:
        db.update_player_term_registered_at(database_url, player_term_id, registered_at)
    return [row["team_term_id"] for row in rows]


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def build_roster(database_url: str, team_id: str, term_id: str | None) -> dict:
    term_id = _require_term(term_id)
    team_term = db.fetch_team_term(database_url, team_id, term_id)
    roster = {
        "team_term": team_term,
        "fee": None,
        "currency": None,
        "rows": [],
        "paid_count": 0,
        "total_paid": Decimal("0"),
        "total_due": Decimal("0"),
    }
    if not team_term:
        return roster

    fee = team_term.get("fee_amount")
    roster["fee"] = _money(fee) if fee is not None else None
    roster["currency"] = team_term.get("fee_currency")

    members = db.fetch_team_members(database_url, [team_term["id"]])
    payments = {
        row["player_term_id"]: row
        for row in db.fetch_payments_for_team_terms(database_url, [team_term["id"]])
    }
    rows = []
    for member in members:
        payment = payments.get(member["player_term_id"])
        rows.append(
            {
                "membership_id": member["membership_id"],
                "player_term_id": member["player_term_id"],
                "player_id": member["player_id"],
                "first_name": member["first_name"],
                "last_name": member["last_name"],
                "preferred_name": member.get("preferred_name"),
                "display_name": display_name(member),
                "jersey_no": member.get("jersey_no"),
                "role": member.get("role") or "player",
                "payment_id": payment["id"] if payment else None,
                "paid": bool(payment and payment["paid"]),
                "amount_paid": _money(payment["amount_paid"]) if payment else Decimal("0"),
                "payment_date": payment["payment_date"] if payment else None,
            }
        )
    roster["rows"] = rows
    roster["paid_count"] = sum(1 for row in rows if row["paid"])
    if roster["fee"] is not None:
        roster["total_paid"] = roster["paid_count"] * roster["fee"]
        roster["total_due"] = len(rows) * roster["fee"]
    return roster


def toggle_payment(
    database_url: str,
    team_id: str,
    term_id: str | None,
    player_term_id: str,
    today: date | None = None,
) -> bool:
    """Flip the paid flag for one roster row and return the new state."""
    term_id = _require_term(term_id)
    team_term = db.fetch_team_term(database_url, team_id, term_id)
    if not team_term:
        raise ClubError("This team has no players for the selected term.")
    fee = _money(team_term.get("fee_amount"))
    current = next(
        (
            row
            for row in db.fetch_payments_for_team_terms(database_url, [team_term["id"]])
            if row["player_term_id"] == player_term_id
        ),
        None,
    )
    now_paid = not (current and current["paid"])
    db.upsert_payment_status(
        database_url,
        player_term_id,
        team_term["id"],
        paid=now_paid,
        amount_due=fee,
        amount_paid=fee if now_paid else Decimal("0"),
        payment_date=(today or date.today()) if now_paid else None,
    )
    return now_paid
