from datetime import date
from decimal import Decimal

import pytest

from clubhouse import roster
from clubhouse.errors import ClubError


def _seed_players(fake_db, count):
    return [fake_db.add_player(f"Player{idx:02d}", "Test", jersey_no=idx) for idx in range(count)]


def test_ensure_team_term_is_idempotent(fake_db, term_id):
    team_id = fake_db.add_team("U12 Girls")
    first = roster.ensure_team_term("db", team_id, term_id)
    second = roster.ensure_team_term("db", team_id, term_id)
    assert first == second
    assert len(fake_db.team_terms) == 1


def test_ensure_player_term_registers_once(fake_db, term_id):
    player_id = fake_db.add_player("Mere", "Walker")
    ptid = roster.ensure_player_term("db", player_id, term_id)
    assert roster.ensure_player_term("db", player_id, term_id) == ptid
    assert fake_db.player_terms[ptid]["status"] == "registered"


def test_register_missing_players_batches_inserts(fake_db, term_id):
    player_ids = _seed_players(fake_db, 5)
    already = fake_db.insert_player_terms("db", player_ids[:1], term_id)[0]["id"]
    fake_db.calls.clear()

    mapping = roster.register_missing_players("db", term_id, player_ids, batch_size=2)

    assert set(mapping) == set(player_ids)
    assert mapping[player_ids[0]] == already
    assert fake_db.calls.count("insert_player_terms") == 2
    assert len(fake_db.player_terms) == 5


def test_register_missing_players_skips_insert_when_all_registered(fake_db, term_id):
    player_ids = _seed_players(fake_db, 3)
    roster.register_missing_players("db", term_id, player_ids)
    fake_db.calls.clear()
    roster.register_missing_players("db", term_id, player_ids)
    assert "insert_player_terms" not in fake_db.calls


def test_load_team_assignment_requires_term(fake_db):
    team_id = fake_db.add_team("U12 Girls")
    with pytest.raises(ClubError, match="Select a term in the header."):
        roster.load_team_assignment("db", team_id, None)


def test_load_team_assignment_registers_everyone(fake_db, term_id):
    team_id = fake_db.add_team("U12 Girls")
    fake_db.add_player("Zoe", "Adams")
    fake_db.add_player("Ana", "Brown", preferred_name="Annie")

    assignment = roster.load_team_assignment("db", team_id, term_id)

    assert assignment["team_name"] == "U12 Girls"
    assert assignment["team_term_id"] in fake_db.team_terms
    assert [row["display_name"] for row in assignment["players"]] == ["Annie", "Zoe Adams"]
    assert all(row["player_term_id"] for row in assignment["players"])
    assert assignment["selected"] == set()


def test_save_team_assignment_adds_and_removes(fake_db, term_id):
    team_id = fake_db.add_team("U12 Girls")
    _seed_players(fake_db, 3)
    assignment = roster.load_team_assignment("db", team_id, term_id)
    ttid = assignment["team_term_id"]
    ptids = [row["player_term_id"] for row in assignment["players"]]

    result = roster.save_team_assignment("db", ttid, ptids[:2])
    assert sorted(result["added"]) == sorted(ptids[:2])
    assert result["removed"] == []

    result = roster.save_team_assignment("db", ttid, ptids[1:])
    assert result["added"] == [ptids[2]]
    assert result["removed"] == [ptids[0]]
    current = {row["player_term_id"] for row in fake_db.fetch_memberships_for_team_term("db", ttid)}
    assert current == set(ptids[1:])


def test_save_team_assignment_twice_does_not_duplicate(fake_db, term_id):
    team_id = fake_db.add_team("U12 Girls")
    _seed_players(fake_db, 2)
    assignment = roster.load_team_assignment("db", team_id, term_id)
    ptids = [row["player_term_id"] for row in assignment["players"]]
    roster.save_team_assignment("db", assignment["team_term_id"], ptids)
    result = roster.save_team_assignment("db", assignment["team_term_id"], ptids)
    assert result == {"added": [], "removed": []}
    assert len(fake_db.memberships) == 2


def test_save_team_assignment_needs_team_term(fake_db):
    with pytest.raises(ClubError, match="Missing team-term. Reload."):
        roster.save_team_assignment("db", None, [])


def test_quick_add_player_registers_into_term(fake_db, term_id):
    form = {
        "first_name": "New",
        "last_name": "Kid",
        "preferred_name": None,
        "dob": None,
        "jersey_no": 21,
        "status": "active",
        "notes": None,
    }
    row = roster.quick_add_player("db", term_id, form)
    assert row["display_name"] == "New Kid"
    assert fake_db.player_terms[row["player_term_id"]]["term_id"] == term_id


def test_quick_add_player_rejects_blank_last_name(fake_db, term_id):
    with pytest.raises(ClubError):
        roster.quick_add_player("db", term_id, {"first_name": "New", "last_name": ""})
    assert fake_db.players == {}
    assert fake_db.player_terms == {}


def test_assign_player_to_teams(fake_db, term_id):
    player_id = fake_db.add_player("Mere", "Walker")
    first = fake_db.add_team("U12 Girls")
    second = fake_db.add_team("U13 Girls")

    with pytest.raises(ClubError, match="Select at least one team."):
        roster.assign_player_to_teams("db", player_id, term_id, [])

    added = roster.assign_player_to_teams(
        "db", player_id, term_id, [first, second, first], role="captain", registered_at=date(2025, 4, 30)
    )
    assert len(added) == 2
    assert {row["role"] for row in fake_db.memberships.values()} == {"captain"}
    player_term = fake_db.fetch_player_term("db", player_id, term_id)
    assert player_term["registered_at"] == date(2025, 4, 30)

    assert roster.assign_player_to_teams("db", player_id, term_id, [first]) == []
    assert len(fake_db.memberships) == 2


def test_assign_player_to_teams_requires_term(fake_db):
    player_id = fake_db.add_player("Mere", "Walker")
    team_id = fake_db.add_team("U12 Girls")
    with pytest.raises(ClubError, match="Select a term in the header."):
        roster.assign_player_to_teams("db", player_id, None, [team_id])


def _team_with_members(fake_db, term_id, fee=None):
    team_id = fake_db.add_team("U12 Girls")
    player_ids = _seed_players(fake_db, 3)
    roster.assign_player_to_teams("db", player_ids[0], term_id, [team_id])
    roster.assign_player_to_teams("db", player_ids[1], term_id, [team_id])
    roster.assign_player_to_teams("db", player_ids[2], term_id, [team_id])
    ttid = fake_db.fetch_team_term("db", team_id, term_id)["id"]
    if fee is not None:
        fake_db.update_team_term_fee("db", ttid, fee, None, "NZD", None)
    return team_id, ttid


def test_build_roster_totals(fake_db, term_id):
    team_id, ttid = _team_with_members(fake_db, term_id, fee=Decimal("120.00"))
    rows = roster.build_roster("db", team_id, term_id)["rows"]
    roster.toggle_payment("db", team_id, term_id, rows[0]["player_term_id"], today=date(2025, 5, 1))

    built = roster.build_roster("db", team_id, term_id)
    assert built["fee"] == Decimal("120.00")
    assert built["currency"] == "NZD"
    assert len(built["rows"]) == 3
    assert built["paid_count"] == 1
    assert built["total_paid"] == Decimal("120.00")
    assert built["total_due"] == Decimal("360.00")


def test_build_roster_without_team_term(fake_db, term_id):
    team_id = fake_db.add_team("U12 Girls")
    built = roster.build_roster("db", team_id, term_id)
    assert built["team_term"] is None
    assert built["rows"] == []


def test_toggle_payment_flips_state(fake_db, term_id):
    team_id, ttid = _team_with_members(fake_db, term_id, fee=Decimal("80"))
    ptid = roster.build_roster("db", team_id, term_id)["rows"][0]["player_term_id"]

    assert roster.toggle_payment("db", team_id, term_id, ptid, today=date(2025, 5, 1)) is True
    payment = fake_db._find_payment(ptid, ttid)
    assert payment["amount_paid"] == Decimal("80")
    assert payment["payment_date"] == date(2025, 5, 1)

    assert roster.toggle_payment("db", team_id, term_id, ptid) is False
    payment = fake_db._find_payment(ptid, ttid)
    assert payment["amount_paid"] == Decimal("0")
    assert payment["payment_date"] is None
    assert payment["paid"] is False
