import logging
from typing import Callable, Tuple

import psycopg

logger = logging.getLogger(__name__)

MigrationTask = Tuple[str, str, Callable[[psycopg.Cursor], None]]


def _backfill_payment_dues(cursor: psycopg.Cursor) -> None:
    cursor.execute(
        """
        select id, fee_amount
        from team_terms
        where fee_amount is not null
        order by id;
        """
    )
    team_terms = cursor.fetchall()
    for team_term_id, fee_amount in team_terms:
        cursor.execute(
            """
            insert into player_payments (player_term_id, team_term_id, amount_due)
            select m.player_term_id, m.team_term_id, %s
            from memberships m
            where m.team_term_id = %s
            on conflict (player_term_id, team_term_id) do nothing;
            """,
            (fee_amount, team_term_id),
        )
        if cursor.rowcount:
            logger.info(
                "Backfilled %s payment rows for team term %s", cursor.rowcount, team_term_id
            )


def _default_fee_currency(cursor: psycopg.Cursor) -> None:
    cursor.execute(
        """
        update team_terms
        set fee_currency = 'NZD'
        where fee_amount is not null
          and fee_currency is null;
        """
    )


def _ensure_migrations_table(cursor: psycopg.Cursor) -> None:
    cursor.execute(
        """
        create table if not exists schema_migrations (
            id text primary key,
            description text not null,
            applied_at timestamptz not null default now()
        );
        """
    )


MIGRATIONS: list[MigrationTask] = [
    (
        "20250210_backfill_payment_dues",
        "Create payment rows for members of teams that already carry a term fee",
        _backfill_payment_dues,
    ),
    (
        "20250318_default_fee_currency",
        "Default the currency of existing team fees to NZD",
        _default_fee_currency,
    ),
]


def apply_migrations(database_url: str) -> list[str]:
    applied: list[str] = []
    with psycopg.connect(database_url) as connection:
        with connection.cursor() as cursor:
            _ensure_migrations_table(cursor)
        connection.commit()
        for migration_id, description, task in MIGRATIONS:
            with connection.cursor() as cursor:
                cursor.execute(
                    "select 1 from schema_migrations where id = %s;",
                    (migration_id,),
                )
                if cursor.fetchone():
                    continue
                task(cursor)
                cursor.execute(
                    """
                    insert into schema_migrations (id, description)
                    values (%s, %s);
                    """,
                    (migration_id, description),
                )
            connection.commit()
            logger.info("Applied migration %s", migration_id)
            applied.append(migration_id)
    return applied


if __name__ == "__main__":
    from clubhouse.settings import load_settings

    logging.basicConfig(level=logging.INFO)
    apply_migrations(load_settings().database_url)
