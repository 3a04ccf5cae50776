#!/usr/bin/env python3
"""Create the clubhouse tables, run pending migrations and echo the DDL."""

import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from clubhouse.db import SCHEMA_STATEMENTS, ensure_schema
from clubhouse.migrations import apply_migrations
from clubhouse.settings import load_settings


def main() -> None:
    settings = load_settings()
    ensure_schema(settings.database_url)
    applied = apply_migrations(settings.database_url)
    print(f"Schema ensured on {settings.database_url}")
    if applied:
        print("Applied migrations: " + ", ".join(applied))
    else:
        print("No pending migrations.")

    print("\nSchema DDL dump:")
    for statement in SCHEMA_STATEMENTS:
        print(statement.strip())


if __name__ == "__main__":
    main()
