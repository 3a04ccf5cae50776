import argparse
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from clubhouse import db
from clubhouse.fees import csv_filename, load_payments, payments_csv
from clubhouse.settings import load_settings


def resolve_term_id(database_url: str, term_id: str | None, year: int | None, term: int | None) -> str | None:
    if term_id:
        return term_id if db.fetch_term(database_url, term_id) else None
    terms = db.fetch_terms(database_url)
    if year is None and term is None:
        return terms[0]["id"] if terms else None
    for row in terms:
        if row["year"] == year and row["term"] == term:
            return row["id"]
    return None


def main() -> None:
    parser = argparse.ArgumentParser(description="Export player payments for a term as CSV.")
    parser.add_argument("--term-id", help="Term id to export.")
    parser.add_argument("--year", type=int, help="Term year (with --term).")
    parser.add_argument("--term", type=int, help="Term number 1-4 (with --year).")
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="File or directory to write the CSV to (defaults to stdout).",
    )
    args = parser.parse_args()
    if (args.year is None) != (args.term is None):
        parser.error("--year and --term must be given together.")

    database_url = load_settings().database_url
    term_id = resolve_term_id(database_url, args.term_id, args.year, args.term)
    if not term_id:
        raise SystemExit("No matching term found (create one or pass --term-id).")

    payload = payments_csv(load_payments(database_url, term_id)["payments"])
    if args.output:
        target = args.output / csv_filename() if args.output.is_dir() else args.output
        target.write_text(payload, encoding="utf-8")
        print(f"Payments saved to {target}")
    else:
        sys.stdout.write(payload)


if __name__ == "__main__":
    main()
