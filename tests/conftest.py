import itertools
import uuid
from datetime import date
from decimal import Decimal

import psycopg
import pytest
from fastapi.testclient import TestClient

from clubhouse import db

DB_FUNCTIONS = (
    "ensure_schema",
    "fetch_players",
    "fetch_player",
    "insert_player",
    "update_player",
    "update_player_photo",
    "delete_player",
    "insert_guardian",
    "link_guardian",
    "fetch_player_guardians",
    "fetch_teams",
    "fetch_team",
    "insert_team",
    "update_team",
    "delete_team",
    "fetch_terms",
    "fetch_term",
    "insert_term",
    "update_term",
    "delete_term",
    "fetch_team_term",
    "fetch_team_term_by_id",
    "fetch_team_terms_for_term",
    "fetch_team_terms_for_team",
    "insert_team_term",
    "update_team_term_fee",
    "fetch_player_term",
    "fetch_player_terms_for_term",
    "insert_player_terms",
    "update_player_term_registered_at",
    "fetch_memberships_for_team_term",
    "fetch_memberships_for_player_term",
    "insert_memberships",
    "delete_memberships",
    "delete_membership",
    "fetch_player_memberships",
    "fetch_team_members",
    "fetch_upcoming_events",
    "fetch_event",
    "insert_event",
    "update_event",
    "delete_event",
    "fetch_attendance",
    "upsert_attendance",
    "fetch_payments_for_team_terms",
    "fetch_payment",
    "upsert_payment_dues",
    "update_payment_amount",
    "upsert_payment_status",
)


def _new_id() -> str:
    return str(uuid.uuid4())


class FakeDatabase:
    """In-memory stand-in for clubhouse.db with the same unique keys."""

    def __init__(self):
        self.players: dict[str, dict] = {}
        self.guardians: dict[str, dict] = {}
        self.guardian_links: list[dict] = []
        self.teams: dict[str, dict] = {}
        self.terms: dict[str, dict] = {}
        self.team_terms: dict[str, dict] = {}
        self.player_terms: dict[str, dict] = {}
        self.memberships: dict[str, dict] = {}
        self.events: dict[str, dict] = {}
        self.attendance: dict[tuple[str, str], dict] = {}
        self.payments: dict[str, dict] = {}
        self.calls: list[str] = []
        self._clock = itertools.count(1)

    def install(self, monkeypatch) -> None:
        for name in DB_FUNCTIONS:
            monkeypatch.setattr(db, name, self._track(name, getattr(self, name)))

    def _track(self, name, method):
        def wrapper(*args, **kwargs):
            self.calls.append(name)
            return method(*args, **kwargs)

        return wrapper

    # seeding helpers

    def add_player(self, first_name, last_name, **fields) -> str:
        return self.insert_player(
            "",
            first_name,
            last_name,
            fields.get("preferred_name"),
            fields.get("dob"),
            fields.get("jersey_no"),
            fields.get("status", "active"),
            fields.get("notes"),
        )

    def add_team(self, name) -> str:
        return self.insert_team("", name)

    def add_term(self, year, term, start_date=None, end_date=None) -> str:
        return self.insert_term("", year, term, start_date, end_date)

    # schema

    def ensure_schema(self, _url):
        return None

    # players

    def fetch_players(self, _url):
        return sorted(
            (dict(row) for row in self.players.values()),
            key=lambda row: row["created_at"],
            reverse=True,
        )

    def fetch_player(self, _url, player_id):
        row = self.players.get(player_id)
        return dict(row) if row else None

    def insert_player(self, _url, first_name, last_name, preferred_name, dob, jersey_no, status, notes=None):
        player_id = _new_id()
        self.players[player_id] = {
            "id": player_id,
            "first_name": first_name,
            "last_name": last_name,
            "preferred_name": preferred_name,
            "dob": dob,
            "jersey_no": jersey_no,
            "status": status,
            "notes": notes,
            "photo_url": None,
            "photo_storage_path": None,
            "created_at": next(self._clock),
        }
        return player_id

    def update_player(
        self, _url, player_id, first_name, last_name, preferred_name, dob, jersey_no, status, notes, photo_url
    ):
        row = self.players.get(player_id)
        if not row:
            return False
        row.update(
            first_name=first_name,
            last_name=last_name,
            preferred_name=preferred_name,
            dob=dob,
            jersey_no=jersey_no,
            status=status,
            notes=notes,
            photo_url=photo_url,
        )
        return True

    def update_player_photo(self, _url, player_id, storage_path, photo_url):
        row = self.players.get(player_id)
        if not row:
            return False
        row.update(photo_storage_path=storage_path, photo_url=photo_url)
        return True

    def delete_player(self, _url, player_id):
        self.players.pop(player_id, None)
        for ptid in [k for k, v in self.player_terms.items() if v["player_id"] == player_id]:
            self._drop_player_term(ptid)
        self.guardian_links = [link for link in self.guardian_links if link["player_id"] != player_id]

    # guardians

    def insert_guardian(self, _url, name, email, phone):
        guardian_id = _new_id()
        self.guardians[guardian_id] = {"id": guardian_id, "name": name, "email": email, "phone": phone}
        return guardian_id

    def link_guardian(self, _url, player_id, guardian_id, primary_contact=True):
        for link in self.guardian_links:
            if link["player_id"] == player_id and link["guardian_id"] == guardian_id:
                link["primary_contact"] = primary_contact
                return
        self.guardian_links.append(
            {"player_id": player_id, "guardian_id": guardian_id, "primary_contact": primary_contact}
        )

    def fetch_player_guardians(self, _url, player_id):
        rows = [
            {**self.guardians[link["guardian_id"]], "primary_contact": link["primary_contact"]}
            for link in self.guardian_links
            if link["player_id"] == player_id
        ]
        return sorted(rows, key=lambda row: (not row["primary_contact"], row["name"]))

    # teams

    def fetch_teams(self, _url):
        return sorted((dict(row) for row in self.teams.values()), key=lambda row: row["name"])

    def fetch_team(self, _url, team_id):
        row = self.teams.get(team_id)
        return dict(row) if row else None

    def insert_team(self, _url, name):
        if any(row["name"] == name for row in self.teams.values()):
            raise psycopg.errors.UniqueViolation('duplicate key value violates unique constraint "teams_name_key"')
        team_id = _new_id()
        self.teams[team_id] = {"id": team_id, "name": name}
        return team_id

    def update_team(self, _url, team_id, name):
        if team_id not in self.teams:
            return False
        if any(row["name"] == name and key != team_id for key, row in self.teams.items()):
            raise psycopg.errors.UniqueViolation('duplicate key value violates unique constraint "teams_name_key"')
        self.teams[team_id]["name"] = name
        return True

    def delete_team(self, _url, team_id):
        self.teams.pop(team_id, None)
        for ttid in [k for k, v in self.team_terms.items() if v["team_id"] == team_id]:
            self._drop_team_term(ttid)
        for event in self.events.values():
            if event["team_id"] == team_id:
                event["team_id"] = None

    # terms

    def fetch_terms(self, _url):
        return sorted(
            (dict(row) for row in self.terms.values()),
            key=lambda row: (-row["year"], row["term"]),
        )

    def fetch_term(self, _url, term_id):
        row = self.terms.get(term_id)
        return dict(row) if row else None

    def insert_term(self, _url, year, term, start_date, end_date):
        if any(row["year"] == year and row["term"] == term for row in self.terms.values()):
            raise psycopg.errors.UniqueViolation('duplicate key value violates unique constraint "terms_year_term_key"')
        term_id = _new_id()
        self.terms[term_id] = {
            "id": term_id,
            "year": year,
            "term": term,
            "start_date": start_date,
            "end_date": end_date,
        }
        return term_id

    def update_term(self, _url, term_id, year, term, start_date, end_date):
        row = self.terms.get(term_id)
        if not row:
            return False
        row.update(year=year, term=term, start_date=start_date, end_date=end_date)
        return True

    def delete_term(self, _url, term_id):
        self.terms.pop(term_id, None)
        for ttid in [k for k, v in self.team_terms.items() if v["term_id"] == term_id]:
            self._drop_team_term(ttid)
        for ptid in [k for k, v in self.player_terms.items() if v["term_id"] == term_id]:
            self._drop_player_term(ptid)

    # team terms

    def _team_term_row(self, row):
        return {**row, "team_name": self.teams[row["team_id"]]["name"]}

    def fetch_team_term(self, _url, team_id, term_id):
        for row in self.team_terms.values():
            if row["team_id"] == team_id and row["term_id"] == term_id:
                return self._team_term_row(row)
        return None

    def fetch_team_term_by_id(self, _url, team_term_id):
        row = self.team_terms.get(team_term_id)
        return self._team_term_row(row) if row else None

    def fetch_team_terms_for_term(self, _url, term_id):
        rows = [self._team_term_row(row) for row in self.team_terms.values() if row["term_id"] == term_id]
        return sorted(rows, key=lambda row: row["team_name"])

    def fetch_team_terms_for_team(self, _url, team_id):
        return [self._team_term_row(row) for row in self.team_terms.values() if row["team_id"] == team_id]

    def insert_team_term(self, _url, team_id, term_id):
        existing = self.fetch_team_term(_url, team_id, term_id)
        if existing:
            return existing["id"]
        team_term_id = _new_id()
        self.team_terms[team_term_id] = {
            "id": team_term_id,
            "team_id": team_id,
            "term_id": term_id,
            "fee_amount": None,
            "fee_due_date": None,
            "fee_currency": None,
            "fee_notes": None,
        }
        return team_term_id

    def update_team_term_fee(self, _url, team_term_id, amount, due_date, currency, notes):
        row = self.team_terms.get(team_term_id)
        if not row:
            return False
        row.update(
            fee_amount=amount,
            fee_due_date=due_date,
            fee_currency=currency or row["fee_currency"],
            fee_notes=notes,
        )
        return True

    def _drop_team_term(self, team_term_id):
        self.team_terms.pop(team_term_id, None)
        for mid in [k for k, v in self.memberships.items() if v["team_term_id"] == team_term_id]:
            del self.memberships[mid]
        for pid in [k for k, v in self.payments.items() if v["team_term_id"] == team_term_id]:
            del self.payments[pid]

    # player terms

    def fetch_player_term(self, _url, player_id, term_id):
        for row in self.player_terms.values():
            if row["player_id"] == player_id and row["term_id"] == term_id:
                return dict(row)
        return None

    def fetch_player_terms_for_term(self, _url, term_id):
        return [
            {"id": row["id"], "player_id": row["player_id"]}
            for row in self.player_terms.values()
            if row["term_id"] == term_id
        ]

    def insert_player_terms(self, _url, player_ids, term_id, status="registered"):
        inserted = []
        for player_id in player_ids:
            if self.fetch_player_term(_url, player_id, term_id):
                continue
            ptid = _new_id()
            self.player_terms[ptid] = {
                "id": ptid,
                "player_id": player_id,
                "term_id": term_id,
                "status": status,
                "registered_at": None,
            }
            inserted.append({"id": ptid, "player_id": player_id})
        return inserted

    def update_player_term_registered_at(self, _url, player_term_id, registered_at):
        if player_term_id in self.player_terms:
            self.player_terms[player_term_id]["registered_at"] = registered_at

    def _drop_player_term(self, player_term_id):
        self.player_terms.pop(player_term_id, None)
        for mid in [k for k, v in self.memberships.items() if v["player_term_id"] == player_term_id]:
            del self.memberships[mid]
        for pid in [k for k, v in self.payments.items() if v["player_term_id"] == player_term_id]:
            del self.payments[pid]
        for key in [k for k in self.attendance if k[1] == player_term_id]:
            del self.attendance[key]

    # memberships

    def fetch_memberships_for_team_term(self, _url, team_term_id):
        return [dict(row) for row in self.memberships.values() if row["team_term_id"] == team_term_id]

    def fetch_memberships_for_player_term(self, _url, player_term_id):
        return [dict(row) for row in self.memberships.values() if row["player_term_id"] == player_term_id]

    def insert_memberships(self, _url, rows):
        for row in rows:
            exists = any(
                m["player_term_id"] == row["player_term_id"] and m["team_term_id"] == row["team_term_id"]
                for m in self.memberships.values()
            )
            if exists:
                continue
            membership_id = _new_id()
            self.memberships[membership_id] = {
                "id": membership_id,
                "player_term_id": row["player_term_id"],
                "team_term_id": row["team_term_id"],
                "role": row.get("role", "player"),
            }
        return len(rows)

    def delete_memberships(self, _url, team_term_id, player_term_ids):
        targets = set(player_term_ids)
        doomed = [
            k
            for k, v in self.memberships.items()
            if v["team_term_id"] == team_term_id and v["player_term_id"] in targets
        ]
        for key in doomed:
            del self.memberships[key]
        return len(doomed)

    def delete_membership(self, _url, membership_id):
        return self.memberships.pop(membership_id, None) is not None

    def fetch_player_memberships(self, _url, player_id, term_id):
        rows = []
        for membership in self.memberships.values():
            player_term = self.player_terms[membership["player_term_id"]]
            if player_term["player_id"] != player_id or player_term["term_id"] != term_id:
                continue
            team_term = self.team_terms[membership["team_term_id"]]
            rows.append(
                {
                    "id": membership["id"],
                    "team_id": team_term["team_id"],
                    "team_name": self.teams[team_term["team_id"]]["name"],
                    "role": membership["role"],
                }
            )
        return sorted(rows, key=lambda row: row["team_name"])

    def fetch_team_members(self, _url, team_term_ids):
        ids = set(team_term_ids)
        rows = []
        for membership in self.memberships.values():
            if membership["team_term_id"] not in ids:
                continue
            player = self.players[self.player_terms[membership["player_term_id"]]["player_id"]]
            rows.append(
                {
                    "membership_id": membership["id"],
                    "player_term_id": membership["player_term_id"],
                    "team_term_id": membership["team_term_id"],
                    "role": membership["role"],
                    "player_id": player["id"],
                    "first_name": player["first_name"],
                    "last_name": player["last_name"],
                    "preferred_name": player["preferred_name"],
                    "jersey_no": player["jersey_no"],
                }
            )
        return sorted(rows, key=lambda row: (row["first_name"], row["last_name"]))

    # events

    def fetch_upcoming_events(self, _url, since):
        rows = [dict(row) for row in self.events.values() if row["starts_at"] >= since]
        return sorted(rows, key=lambda row: row["starts_at"])

    def fetch_event(self, _url, event_id):
        row = self.events.get(event_id)
        return dict(row) if row else None

    def insert_event(self, _url, team_id, event_type, title, location, starts_at, ends_at):
        event_id = _new_id()
        self.events[event_id] = {
            "id": event_id,
            "team_id": team_id,
            "type": event_type,
            "title": title,
            "location": location,
            "starts_at": starts_at,
            "ends_at": ends_at,
        }
        return event_id

    def update_event(self, _url, event_id, team_id, event_type, title, location, starts_at, ends_at):
        row = self.events.get(event_id)
        if not row:
            return False
        row.update(
            team_id=team_id,
            type=event_type,
            title=title,
            location=location,
            starts_at=starts_at,
            ends_at=ends_at,
        )
        return True

    def delete_event(self, _url, event_id):
        self.events.pop(event_id, None)
        for key in [k for k in self.attendance if k[0] == event_id]:
            del self.attendance[key]

    # attendance

    def fetch_attendance(self, _url, event_id):
        return [
            {"player_term_id": ptid, "status": row["status"], "notes": row["notes"]}
            for (eid, ptid), row in self.attendance.items()
            if eid == event_id
        ]

    def upsert_attendance(self, _url, event_id, rows):
        for row in rows:
            self.attendance[(event_id, row["player_term_id"])] = {
                "status": row["status"],
                "notes": row.get("notes"),
            }
        return len(rows)

    # payments

    def _find_payment(self, player_term_id, team_term_id):
        for row in self.payments.values():
            if row["player_term_id"] == player_term_id and row["team_term_id"] == team_term_id:
                return row
        return None

    def fetch_payments_for_team_terms(self, _url, team_term_ids):
        ids = set(team_term_ids)
        rows = []
        for payment in self.payments.values():
            if payment["team_term_id"] not in ids:
                continue
            player = self.players[self.player_terms[payment["player_term_id"]]["player_id"]]
            team = self.teams[self.team_terms[payment["team_term_id"]]["team_id"]]
            rows.append(
                {
                    **payment,
                    "player_id": player["id"],
                    "first_name": player["first_name"],
                    "last_name": player["last_name"],
                    "preferred_name": player["preferred_name"],
                    "team_name": team["name"],
                }
            )
        return sorted(rows, key=lambda row: (row["team_name"], row["first_name"], row["last_name"]))

    def fetch_payment(self, _url, payment_id):
        row = self.payments.get(payment_id)
        return dict(row) if row else None

    def upsert_payment_dues(self, _url, team_term_id, player_term_ids, amount_due):
        count = 0
        for ptid in player_term_ids:
            row = self._find_payment(ptid, team_term_id)
            if row is None:
                payment_id = _new_id()
                self.payments[payment_id] = {
                    "id": payment_id,
                    "player_term_id": ptid,
                    "team_term_id": team_term_id,
                    "amount_due": amount_due,
                    "amount_paid": Decimal("0"),
                    "paid": False,
                    "payment_date": None,
                }
            else:
                row["amount_due"] = amount_due
                row["paid"] = row["amount_paid"] >= amount_due and amount_due > 0
            count += 1
        return count

    def update_payment_amount(self, _url, payment_id, amount_paid, payment_date):
        row = self.payments.get(payment_id)
        if not row:
            return False
        row["amount_paid"] = amount_paid
        row["paid"] = amount_paid >= row["amount_due"] and row["amount_due"] > 0
        row["payment_date"] = (row["payment_date"] or payment_date) if amount_paid > 0 else None
        return True

    def upsert_payment_status(
        self, _url, player_term_id, team_term_id, paid, amount_due, amount_paid, payment_date
    ):
        row = self._find_payment(player_term_id, team_term_id)
        if row is None:
            payment_id = _new_id()
            row = {"id": payment_id, "player_term_id": player_term_id, "team_term_id": team_term_id}
            self.payments[payment_id] = row
        row.update(amount_due=amount_due, amount_paid=amount_paid, paid=paid, payment_date=payment_date)
        return row["id"]


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeDatabase()
    fake.install(monkeypatch)
    return fake


@pytest.fixture
def term_id(fake_db):
    return fake_db.add_term(2025, 2, date(2025, 4, 28), date(2025, 7, 4))


@pytest.fixture
def client(fake_db):
    import clubhouse.main as main

    return TestClient(main.app)
