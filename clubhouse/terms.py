from datetime import date

from clubhouse import db
from clubhouse.errors import ClubError
from clubhouse.validation import parse_optional_date

MIN_YEAR = 2000
MAX_YEAR = 2100


def term_label(term: dict | None) -> str:
    if not term:
        return "No term"
    return f"{term['year']} · Term {term['term']}"


def _format_day(value: date | None) -> str:
    if not value:
        return "—"
    return value.strftime("%d/%m/%Y")


def term_window_label(term: dict) -> str:
    return f"{_format_day(term.get('start_date'))} → {_format_day(term.get('end_date'))}"


def resolve_current_term(terms: list[dict], saved_id: str | None) -> dict | None:
    """Pick the remembered term if it still exists, otherwise the first listed."""
    if saved_id:
        for term in terms:
            if term["id"] == saved_id:
                return term
    return terms[0] if terms else None


def term_for_date(terms: list[dict], day: date) -> dict | None:
    for term in terms:
        start = term.get("start_date")
        end = term.get("end_date")
        if start and end and start <= day <= end:
            return term
    return None


def validate_term(year: int, term: int) -> None:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ClubError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}.")
    if not 1 <= term <= 4:
        raise ClubError("Term must be between 1 and 4.")


def parse_term_form(year: str, term: str, start_date: str, end_date: str) -> dict:
    try:
        parsed_year = int(year)
        parsed_term = int(term)
    except (TypeError, ValueError):
        raise ClubError("Year and term must be numbers.") from None
    validate_term(parsed_year, parsed_term)
    start = parse_optional_date(start_date, "Start date")
    end = parse_optional_date(end_date, "End date")
    if start and end and end < start:
        raise ClubError("End date must be on or after the start date.")
    return {"year": parsed_year, "term": parsed_term, "start_date": start, "end_date": end}


def create_term(database_url: str, form: dict) -> str:
    return db.insert_term(
        database_url,
        form["year"],
        form["term"],
        form["start_date"],
        form["end_date"],
    )


def update_term(database_url: str, term_id: str, form: dict) -> None:
    if not db.update_term(
        database_url,
        term_id,
        form["year"],
        form["term"],
        form["start_date"],
        form["end_date"],
    ):
        raise ClubError("Not found")
