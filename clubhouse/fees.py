import csv
import io
import logging
from datetime import date
from decimal import Decimal

from clubhouse import db
from clubhouse.errors import ClubError
from clubhouse.players import display_name
from clubhouse.roster import ensure_team_term
from clubhouse.validation import optional_text

logger = logging.getLogger(__name__)

CSV_HEADER = ["Player", "Team", "Amount Due", "Amount Paid", "Balance", "Paid"]


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(Decimal("0.01"))


def set_team_fee(
    database_url: str,
    team_term_id: str,
    amount: Decimal,
    due_date: date | None = None,
    currency: str | None = None,
    notes: str | None = None,
) -> int:
    """Store the term fee on the team and make every member owe it.

    Amounts already paid are kept; only the amount due moves.
    """
    if amount is None or amount < 0:
        raise ClubError("Fee amount must be a non-negative number")
    if not db.update_team_term_fee(
        database_url,
        team_term_id,
        amount,
        due_date,
        (currency or "").strip().upper() or None,
        optional_text(notes),
    ):
        raise ClubError("Team term not found.")
    members = db.fetch_memberships_for_team_term(database_url, team_term_id)
    count = db.upsert_payment_dues(
        database_url,
        team_term_id,
        [row["player_term_id"] for row in members],
        amount,
    )
    logger.info("Set fee %s on team term %s for %s members", amount, team_term_id, len(members))
    return count


def load_team_fee(
    database_url: str, team_id: str, term_id: str, default_currency: str
) -> dict:
    team_term = db.fetch_team_term(database_url, team_id, term_id)
    if not team_term or team_term.get("fee_amount") is None:
        return {
            "team_term": team_term,
            "exists": False,
            "fee_amount": Decimal("0.00"),
            "fee_due_date": team_term.get("fee_due_date") if team_term else None,
            "currency": default_currency,
            "notes": "",
        }
    return {
        "team_term": team_term,
        "exists": True,
        "fee_amount": _money(team_term["fee_amount"]),
        "fee_due_date": team_term.get("fee_due_date"),
        "currency": team_term.get("fee_currency") or default_currency,
        "notes": team_term.get("fee_notes") or "",
    }


def save_team_fee(
    database_url: str,
    team_id: str,
    term_id: str,
    amount: Decimal,
    currency: str,
    notes: str | None,
) -> str:
    existing = db.fetch_team_term(database_url, team_id, term_id)
    had_fee = bool(existing and existing.get("fee_amount") is not None)
    team_term_id = existing["id"] if existing else ensure_team_term(database_url, team_id, term_id)
    set_team_fee(
        database_url,
        team_term_id,
        amount,
        due_date=existing.get("fee_due_date") if existing else None,
        currency=currency,
        notes=notes,
    )
    return "Fee updated successfully" if had_fee else "Fee created successfully"


def _payment_row(row: dict) -> dict:
    amount_due = _money(row["amount_due"])
    amount_paid = _money(row["amount_paid"])
    return {
        "id": row["id"],
        "player_name": display_name(row),
        "team_name": row["team_name"],
        "amount_due": amount_due,
        "amount_paid": amount_paid,
        "balance": amount_due - amount_paid,
        "paid": bool(row["paid"]),
    }


def load_payments(database_url: str, term_id: str) -> dict:
    team_terms = db.fetch_team_terms_for_term(database_url, term_id)
    teams = [
        {
            "team_term_id": tt["id"],
            "team_name": tt["team_name"],
            "current_fee": _money(tt["fee_amount"]) if tt.get("fee_amount") is not None else None,
            "currency": tt.get("fee_currency"),
            "due_date": tt.get("fee_due_date"),
        }
        for tt in team_terms
    ]
    payments = [
        _payment_row(row)
        for row in db.fetch_payments_for_team_terms(
            database_url, [tt["id"] for tt in team_terms]
        )
    ]
    return {
        "teams": teams,
        "payments": payments,
        "total_due": sum((p["amount_due"] for p in payments), Decimal("0")),
        "total_paid": sum((p["amount_paid"] for p in payments), Decimal("0")),
        "paid_count": sum(1 for p in payments if p["paid"]),
    }


def update_payment(
    database_url: str, payment_id: str, amount_paid: Decimal, today: date | None = None
) -> None:
    if amount_paid is None or amount_paid < 0:
        raise ClubError("Amount paid must be a non-negative number")
    payment_date = (today or date.today()) if amount_paid > 0 else None
    if not db.update_payment_amount(database_url, payment_id, amount_paid, payment_date):
        raise ClubError("Payment not found.")


def payments_csv(payments: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for payment in payments:
        writer.writerow(
            [
                payment["player_name"],
                payment["team_name"],
                f"{payment['amount_due']:.2f}",
                f"{payment['amount_paid']:.2f}",
                f"{payment['amount_due'] - payment['amount_paid']:.2f}",
                "Yes" if payment["paid"] else "No",
            ]
        )
    return buffer.getvalue()


def csv_filename(today: date | None = None) -> str:
    return f"payments-{(today or date.today()).isoformat()}.csv"
