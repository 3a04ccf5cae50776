import calendar
from datetime import date

from clubhouse import db
from clubhouse.settings import load_settings


def quarter_window(day: date) -> tuple[int, date, date]:
    term = (day.month - 1) // 3 + 1
    first_month = (term - 1) * 3 + 1
    last_month = first_month + 2
    start = date(day.year, first_month, 1)
    end = date(day.year, last_month, calendar.monthrange(day.year, last_month)[1])
    return term, start, end


def ensure_current_term(today: date | None = None) -> str:
    settings = load_settings()
    db.ensure_schema(settings.database_url)
    day = today or date.today()
    term, start, end = quarter_window(day)
    for existing in db.fetch_terms(settings.database_url):
        if existing["year"] == day.year and existing["term"] == term:
            print(f"Term {day.year} T{term} already exists.")
            return existing["id"]
    term_id = db.insert_term(settings.database_url, day.year, term, start, end)
    print(f"Created term {day.year} T{term} ({start} to {end}).")
    return term_id


if __name__ == "__main__":
    ensure_current_term()
