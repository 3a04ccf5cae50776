from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

import psycopg

SCHEMA_STATEMENTS = [
    """
    create table if not exists players (
        id uuid primary key default gen_random_uuid(),
        first_name text not null,
        last_name text not null,
        preferred_name text,
        dob date,
        jersey_no integer,
        status text not null default 'active',
        notes text,
        photo_url text,
        photo_storage_path text,
        photo_updated_at timestamptz,
        created_at timestamptz not null default now(),
        updated_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists guardians (
        id uuid primary key default gen_random_uuid(),
        name text not null,
        email text,
        phone text,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists guardian_players (
        id uuid primary key default gen_random_uuid(),
        guardian_id uuid not null references guardians(id) on delete cascade,
        player_id uuid not null references players(id) on delete cascade,
        primary_contact boolean not null default false,
        unique (guardian_id, player_id)
    );
    """,
    """
    create table if not exists teams (
        id uuid primary key default gen_random_uuid(),
        name text not null unique,
        created_at timestamptz not null default now()
    );
    """,
    """
    create table if not exists terms (
        id uuid primary key default gen_random_uuid(),
        year integer not null,
        term integer not null check (term between 1 and 4),
        start_date date,
        end_date date,
        unique (year, term)
    );
    """,
    """
    create table if not exists team_terms (
        id uuid primary key default gen_random_uuid(),
        team_id uuid not null references teams(id) on delete cascade,
        term_id uuid not null references terms(id) on delete cascade,
        fee_amount numeric(10, 2),
        fee_due_date date,
        fee_currency text,
        fee_notes text,
        unique (team_id, term_id)
    );
    """,
    """
    create table if not exists player_terms (
        id uuid primary key default gen_random_uuid(),
        player_id uuid not null references players(id) on delete cascade,
        term_id uuid not null references terms(id) on delete cascade,
        status text not null default 'registered',
        registered_at date,
        unique (player_id, term_id)
    );
    """,
    """
    create table if not exists memberships (
        id uuid primary key default gen_random_uuid(),
        player_term_id uuid not null references player_terms(id) on delete cascade,
        team_term_id uuid not null references team_terms(id) on delete cascade,
        role text not null default 'player' check (role in ('player', 'captain')),
        created_at timestamptz not null default now(),
        unique (player_term_id, team_term_id)
    );
    """,
    """
    create table if not exists events (
        id uuid primary key default gen_random_uuid(),
        team_id uuid references teams(id) on delete set null,
        type text not null default 'training'
            check (type in ('training', 'game', 'tournament')),
        title text,
        location text,
        starts_at timestamptz not null,
        ends_at timestamptz not null,
        check (ends_at > starts_at)
    );
    """,
    """
    create table if not exists attendance (
        id uuid primary key default gen_random_uuid(),
        event_id uuid not null references events(id) on delete cascade,
        player_term_id uuid not null references player_terms(id) on delete cascade,
        status text not null check (status in ('present', 'absent', 'late')),
        notes text,
        recorded_at timestamptz not null default now(),
        unique (event_id, player_term_id)
    );
    """,
    """
    create table if not exists player_payments (
        id uuid primary key default gen_random_uuid(),
        player_term_id uuid not null references player_terms(id) on delete cascade,
        team_term_id uuid not null references team_terms(id) on delete cascade,
        amount_due numeric(10, 2) not null default 0,
        amount_paid numeric(10, 2) not null default 0,
        paid boolean not null default false,
        payment_date date,
        unique (player_term_id, team_term_id)
    );
    """,
]

PLAYER_COLUMNS = """
    id,
    first_name,
    last_name,
    preferred_name,
    dob,
    jersey_no,
    status,
    notes,
    photo_url,
    photo_storage_path,
    created_at
"""


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def ensure_schema(database_url: str) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)


def _row_to_player(row: tuple) -> dict:
    return {
        "id": _id(row[0]),
        "first_name": row[1],
        "last_name": row[2],
        "preferred_name": row[3],
        "dob": row[4],
        "jersey_no": row[5],
        "status": row[6],
        "notes": row[7],
        "photo_url": row[8],
        "photo_storage_path": row[9],
        "created_at": row[10],
    }


def fetch_players(database_url: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"select {PLAYER_COLUMNS} from players order by created_at desc;"
            )
            return [_row_to_player(row) for row in cur.fetchall()]


def fetch_player(database_url: str, player_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"select {PLAYER_COLUMNS} from players where id = %s;",
                (player_id,),
            )
            row = cur.fetchone()
            return _row_to_player(row) if row else None


def insert_player(
    database_url: str,
    first_name: str,
    last_name: str,
    preferred_name: str | None,
    dob: date | None,
    jersey_no: int | None,
    status: str,
    notes: str | None = None,
) -> str:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into players (
                    first_name, last_name, preferred_name, dob, jersey_no, status, notes
                )
                values (%s, %s, %s, %s, %s, %s, %s)
                returning id;
                """,
                (first_name, last_name, preferred_name, dob, jersey_no, status, notes),
            )
            return _id(cur.fetchone()[0])


def update_player(
    database_url: str,
    player_id: str,
    first_name: str,
    last_name: str,
    preferred_name: str | None,
    dob: date | None,
    jersey_no: int | None,
    status: str,
    notes: str | None,
    photo_url: str | None,
) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                update players
                set first_name = %s,
                    last_name = %s,
                    preferred_name = %s,
                    dob = %s,
                    jersey_no = %s,
                    status = %s,
                    notes = %s,
                    photo_url = %s,
                    updated_at = now()
                where id = %s;
                """,
                (
                    first_name,
                    last_name,
                    preferred_name,
                    dob,
                    jersey_no,
                    status,
                    notes,
                    photo_url,
                    player_id,
                ),
            )
            return cur.rowcount > 0


def update_player_photo(
    database_url: str,
    player_id: str,
    storage_path: str | None,
    photo_url: str | None,
) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                update players
                set photo_storage_path = %s,
                    photo_url = %s,
                    photo_updated_at = now()
                where id = %s;
                """,
                (storage_path, photo_url, player_id),
            )
            return cur.rowcount > 0


def delete_player(database_url: str, player_id: str) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("delete from players where id = %s;", (player_id,))


def insert_guardian(
    database_url: str, name: str, email: str | None, phone: str | None
) -> str:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into guardians (name, email, phone)
                values (%s, %s, %s)
                returning id;
                """,
                (name, email, phone),
            )
            return _id(cur.fetchone()[0])


def link_guardian(
    database_url: str, player_id: str, guardian_id: str, primary_contact: bool = True
) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into guardian_players (player_id, guardian_id, primary_contact)
                values (%s, %s, %s)
                on conflict (guardian_id, player_id) do update
                    set primary_contact = excluded.primary_contact;
                """,
                (player_id, guardian_id, primary_contact),
            )


def fetch_player_guardians(database_url: str, player_id: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select g.id, g.name, g.email, g.phone, gp.primary_contact
                from guardian_players gp
                join guardians g on g.id = gp.guardian_id
                where gp.player_id = %s
                order by gp.primary_contact desc, g.name;
                """,
                (player_id,),
            )
            return [
                {
                    "id": _id(row[0]),
                    "name": row[1],
                    "email": row[2],
                    "phone": row[3],
                    "primary_contact": row[4],
                }
                for row in cur.fetchall()
            ]


def fetch_teams(database_url: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("select id, name from teams order by name;")
            return [{"id": _id(row[0]), "name": row[1]} for row in cur.fetchall()]


def fetch_team(database_url: str, team_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("select id, name from teams where id = %s;", (team_id,))
            row = cur.fetchone()
            return {"id": _id(row[0]), "name": row[1]} if row else None


def insert_team(database_url: str, name: str) -> str:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("insert into teams (name) values (%s) returning id;", (name,))
            return _id(cur.fetchone()[0])


def update_team(database_url: str, team_id: str, name: str) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("update teams set name = %s where id = %s;", (name, team_id))
            return cur.rowcount > 0


def delete_team(database_url: str, team_id: str) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("delete from teams where id = %s;", (team_id,))


def _row_to_term(row: tuple) -> dict:
    return {
        "id": _id(row[0]),
        "year": row[1],
        "term": row[2],
        "start_date": row[3],
        "end_date": row[4],
    }


def fetch_terms(database_url: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select id, year, term, start_date, end_date
                from terms
                order by year desc, term asc;
                """
            )
            return [_row_to_term(row) for row in cur.fetchall()]


def fetch_term(database_url: str, term_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                "select id, year, term, start_date, end_date from terms where id = %s;",
                (term_id,),
            )
            row = cur.fetchone()
            return _row_to_term(row) if row else None


def insert_term(
    database_url: str,
    year: int,
    term: int,
    start_date: date | None,
    end_date: date | None,
) -> str:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into terms (year, term, start_date, end_date)
                values (%s, %s, %s, %s)
                returning id;
                """,
                (year, term, start_date, end_date),
            )
            return _id(cur.fetchone()[0])


def update_term(
    database_url: str,
    term_id: str,
    year: int,
    term: int,
    start_date: date | None,
    end_date: date | None,
) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                update terms
                set year = %s,
                    term = %s,
                    start_date = %s,
                    end_date = %s
                where id = %s;
                """,
                (year, term, start_date, end_date, term_id),
            )
            return cur.rowcount > 0


def delete_term(database_url: str, term_id: str) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("delete from terms where id = %s;", (term_id,))


TEAM_TERM_COLUMNS = """
    tt.id,
    tt.team_id,
    tt.term_id,
    tt.fee_amount,
    tt.fee_due_date,
    tt.fee_currency,
    tt.fee_notes,
    t.name
"""


def _row_to_team_term(row: tuple) -> dict:
    return {
        "id": _id(row[0]),
        "team_id": _id(row[1]),
        "term_id": _id(row[2]),
        "fee_amount": row[3],
        "fee_due_date": row[4],
        "fee_currency": row[5],
        "fee_notes": row[6],
        "team_name": row[7],
    }


def fetch_team_term(database_url: str, team_id: str, term_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                select {TEAM_TERM_COLUMNS}
                from team_terms tt
                join teams t on t.id = tt.team_id
                where tt.team_id = %s and tt.term_id = %s;
                """,
                (team_id, term_id),
            )
            row = cur.fetchone()
            return _row_to_team_term(row) if row else None


def fetch_team_term_by_id(database_url: str, team_term_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                select {TEAM_TERM_COLUMNS}
                from team_terms tt
                join teams t on t.id = tt.team_id
                where tt.id = %s;
                """,
                (team_term_id,),
            )
            row = cur.fetchone()
            return _row_to_team_term(row) if row else None


def fetch_team_terms_for_term(database_url: str, term_id: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                select {TEAM_TERM_COLUMNS}
                from team_terms tt
                join teams t on t.id = tt.team_id
                where tt.term_id = %s
                order by t.name;
                """,
                (term_id,),
            )
            return [_row_to_team_term(row) for row in cur.fetchall()]


def fetch_team_terms_for_team(database_url: str, team_id: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                select {TEAM_TERM_COLUMNS}
                from team_terms tt
                join teams t on t.id = tt.team_id
                where tt.team_id = %s;
                """,
                (team_id,),
            )
            return [_row_to_team_term(row) for row in cur.fetchall()]


def insert_team_term(database_url: str, team_id: str, term_id: str) -> str:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into team_terms (team_id, term_id)
                values (%s, %s)
                on conflict (team_id, term_id) do update
                    set team_id = excluded.team_id
                returning id;
                """,
                (team_id, term_id),
            )
            return _id(cur.fetchone()[0])


def update_team_term_fee(
    database_url: str,
    team_term_id: str,
    amount: Decimal,
    due_date: date | None,
    currency: str | None,
    notes: str | None,
) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                update team_terms
                set fee_amount = %s,
                    fee_due_date = %s,
                    fee_currency = coalesce(%s, fee_currency),
                    fee_notes = %s
                where id = %s;
                """,
                (amount, due_date, currency, notes, team_term_id),
            )
            return cur.rowcount > 0


def fetch_player_term(database_url: str, player_id: str, term_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select id, player_id, term_id, status, registered_at
                from player_terms
                where player_id = %s and term_id = %s;
                """,
                (player_id, term_id),
            )
            row = cur.fetchone()
            if not row:
                return None
            return {
                "id": _id(row[0]),
                "player_id": _id(row[1]),
                "term_id": _id(row[2]),
                "status": row[3],
                "registered_at": row[4],
            }


def fetch_player_terms_for_term(database_url: str, term_id: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                "select id, player_id from player_terms where term_id = %s;",
                (term_id,),
            )
            return [
                {"id": _id(row[0]), "player_id": _id(row[1])} for row in cur.fetchall()
            ]


def insert_player_terms(
    database_url: str,
    player_ids: Iterable[str],
    term_id: str,
    status: str = "registered",
) -> list[dict]:
    ids = list(player_ids)
    if not ids:
        return []
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into player_terms (player_id, term_id, status)
                select pid, %s::uuid, %s
                from unnest(%s::uuid[]) as pid
                on conflict (player_id, term_id) do nothing
                returning id, player_id;
                """,
                (term_id, status, ids),
            )
            return [
                {"id": _id(row[0]), "player_id": _id(row[1])} for row in cur.fetchall()
            ]


def update_player_term_registered_at(
    database_url: str, player_term_id: str, registered_at: date
) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                "update player_terms set registered_at = %s where id = %s;",
                (registered_at, player_term_id),
            )


def fetch_memberships_for_team_term(database_url: str, team_term_id: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select id, player_term_id, team_term_id, role
                from memberships
                where team_term_id = %s;
                """,
                (team_term_id,),
            )
            return [
                {
                    "id": _id(row[0]),
                    "player_term_id": _id(row[1]),
                    "team_term_id": _id(row[2]),
                    "role": row[3],
                }
                for row in cur.fetchall()
            ]


def fetch_memberships_for_player_term(
    database_url: str, player_term_id: str
) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select id, player_term_id, team_term_id, role
                from memberships
                where player_term_id = %s;
                """,
                (player_term_id,),
            )
            return [
                {
                    "id": _id(row[0]),
                    "player_term_id": _id(row[1]),
                    "team_term_id": _id(row[2]),
                    "role": row[3],
                }
                for row in cur.fetchall()
            ]


def insert_memberships(database_url: str, rows: list[dict]) -> int:
    if not rows:
        return 0
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.executemany(
                """
                insert into memberships (player_term_id, team_term_id, role)
                values (%s, %s, %s)
                on conflict (player_term_id, team_term_id) do nothing;
                """,
                [
                    (row["player_term_id"], row["team_term_id"], row.get("role", "player"))
                    for row in rows
                ],
            )
            return len(rows)


def delete_memberships(
    database_url: str, team_term_id: str, player_term_ids: Iterable[str]
) -> int:
    ids = list(player_term_ids)
    if not ids:
        return 0
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                delete from memberships
                where team_term_id = %s
                  and player_term_id = any(%s::uuid[]);
                """,
                (team_term_id, ids),
            )
            return cur.rowcount


def delete_membership(database_url: str, membership_id: str) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("delete from memberships where id = %s;", (membership_id,))
            return cur.rowcount > 0


def fetch_player_memberships(
    database_url: str, player_id: str, term_id: str
) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select m.id, tt.team_id, t.name, m.role
                from memberships m
                join player_terms pt on pt.id = m.player_term_id
                join team_terms tt on tt.id = m.team_term_id
                join teams t on t.id = tt.team_id
                where pt.player_id = %s and pt.term_id = %s
                order by t.name;
                """,
                (player_id, term_id),
            )
            return [
                {
                    "id": _id(row[0]),
                    "team_id": _id(row[1]),
                    "team_name": row[2],
                    "role": row[3],
                }
                for row in cur.fetchall()
            ]


def fetch_team_members(database_url: str, team_term_ids: Iterable[str]) -> list[dict]:
    ids = list(team_term_ids)
    if not ids:
        return []
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select
                    m.id,
                    m.player_term_id,
                    m.team_term_id,
                    m.role,
                    p.id,
                    p.first_name,
                    p.last_name,
                    p.preferred_name,
                    p.jersey_no
                from memberships m
                join player_terms pt on pt.id = m.player_term_id
                join players p on p.id = pt.player_id
                where m.team_term_id = any(%s::uuid[])
                order by p.first_name, p.last_name;
                """,
                (ids,),
            )
            return [
                {
                    "membership_id": _id(row[0]),
                    "player_term_id": _id(row[1]),
                    "team_term_id": _id(row[2]),
                    "role": row[3],
                    "player_id": _id(row[4]),
                    "first_name": row[5],
                    "last_name": row[6],
                    "preferred_name": row[7],
                    "jersey_no": row[8],
                }
                for row in cur.fetchall()
            ]


EVENT_COLUMNS = "id, team_id, type, title, location, starts_at, ends_at"


def _row_to_event(row: tuple) -> dict:
    return {
        "id": _id(row[0]),
        "team_id": _id(row[1]),
        "type": row[2],
        "title": row[3],
        "location": row[4],
        "starts_at": row[5],
        "ends_at": row[6],
    }


def fetch_upcoming_events(database_url: str, since: datetime) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                select {EVENT_COLUMNS}
                from events
                where starts_at >= %s
                order by starts_at asc;
                """,
                (since,),
            )
            return [_row_to_event(row) for row in cur.fetchall()]


def fetch_event(database_url: str, event_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"select {EVENT_COLUMNS} from events where id = %s;", (event_id,)
            )
            row = cur.fetchone()
            return _row_to_event(row) if row else None


def insert_event(
    database_url: str,
    team_id: str | None,
    event_type: str,
    title: str | None,
    location: str | None,
    starts_at: datetime,
    ends_at: datetime,
) -> str:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into events (team_id, type, title, location, starts_at, ends_at)
                values (%s, %s, %s, %s, %s, %s)
                returning id;
                """,
                (team_id, event_type, title, location, starts_at, ends_at),
            )
            return _id(cur.fetchone()[0])


def update_event(
    database_url: str,
    event_id: str,
    team_id: str | None,
    event_type: str,
    title: str | None,
    location: str | None,
    starts_at: datetime,
    ends_at: datetime,
) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                update events
                set team_id = %s,
                    type = %s,
                    title = %s,
                    location = %s,
                    starts_at = %s,
                    ends_at = %s
                where id = %s;
                """,
                (team_id, event_type, title, location, starts_at, ends_at, event_id),
            )
            return cur.rowcount > 0


def delete_event(database_url: str, event_id: str) -> None:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute("delete from events where id = %s;", (event_id,))


def fetch_attendance(database_url: str, event_id: str) -> list[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select player_term_id, status, notes
                from attendance
                where event_id = %s;
                """,
                (event_id,),
            )
            return [
                {"player_term_id": _id(row[0]), "status": row[1], "notes": row[2]}
                for row in cur.fetchall()
            ]


def upsert_attendance(database_url: str, event_id: str, rows: list[dict]) -> int:
    if not rows:
        return 0
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.executemany(
                """
                insert into attendance (event_id, player_term_id, status, notes)
                values (%s, %s, %s, %s)
                on conflict (event_id, player_term_id) do update
                    set status = excluded.status,
                        notes = excluded.notes,
                        recorded_at = now();
                """,
                [
                    (event_id, row["player_term_id"], row["status"], row.get("notes"))
                    for row in rows
                ],
            )
            return len(rows)


def _row_to_payment(row: tuple) -> dict:
    return {
        "id": _id(row[0]),
        "player_term_id": _id(row[1]),
        "team_term_id": _id(row[2]),
        "amount_due": row[3],
        "amount_paid": row[4],
        "paid": row[5],
        "payment_date": row[6],
        "player_id": _id(row[7]),
        "first_name": row[8],
        "last_name": row[9],
        "preferred_name": row[10],
        "team_name": row[11],
    }


def fetch_payments_for_team_terms(
    database_url: str, team_term_ids: Iterable[str]
) -> list[dict]:
    ids = list(team_term_ids)
    if not ids:
        return []
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select
                    pp.id,
                    pp.player_term_id,
                    pp.team_term_id,
                    pp.amount_due,
                    pp.amount_paid,
                    pp.paid,
                    pp.payment_date,
                    p.id,
                    p.first_name,
                    p.last_name,
                    p.preferred_name,
                    t.name
                from player_payments pp
                join player_terms pt on pt.id = pp.player_term_id
                join players p on p.id = pt.player_id
                join team_terms tt on tt.id = pp.team_term_id
                join teams t on t.id = tt.team_id
                where pp.team_term_id = any(%s::uuid[])
                order by t.name, p.first_name, p.last_name;
                """,
                (ids,),
            )
            return [_row_to_payment(row) for row in cur.fetchall()]


def fetch_payment(database_url: str, payment_id: str) -> Optional[dict]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                select id, player_term_id, team_term_id, amount_due, amount_paid, paid, payment_date
                from player_payments
                where id = %s;
                """,
                (payment_id,),
            )
            row = cur.fetchone()
            if not row:
                return None
            return {
                "id": _id(row[0]),
                "player_term_id": _id(row[1]),
                "team_term_id": _id(row[2]),
                "amount_due": row[3],
                "amount_paid": row[4],
                "paid": row[5],
                "payment_date": row[6],
            }


def upsert_payment_dues(
    database_url: str,
    team_term_id: str,
    player_term_ids: Iterable[str],
    amount_due: Decimal,
) -> int:
    ids = list(player_term_ids)
    if not ids:
        return 0
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into player_payments (player_term_id, team_term_id, amount_due)
                select ptid, %s::uuid, %s
                from unnest(%s::uuid[]) as ptid
                on conflict (player_term_id, team_term_id) do update
                    set amount_due = excluded.amount_due,
                        paid = player_payments.amount_paid >= excluded.amount_due
                            and excluded.amount_due > 0;
                """,
                (team_term_id, amount_due, ids),
            )
            return cur.rowcount


def update_payment_amount(
    database_url: str, payment_id: str, amount_paid: Decimal, payment_date: date | None
) -> bool:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                update player_payments
                set amount_paid = %s,
                    paid = %s >= amount_due and amount_due > 0,
                    payment_date = case when %s > 0 then coalesce(payment_date, %s) else null end
                where id = %s;
                """,
                (amount_paid, amount_paid, amount_paid, payment_date, payment_id),
            )
            return cur.rowcount > 0


def upsert_payment_status(
    database_url: str,
    player_term_id: str,
    team_term_id: str,
    paid: bool,
    amount_due: Decimal,
    amount_paid: Decimal,
    payment_date: date | None,
) -> Optional[str]:
    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                insert into player_payments (
                    player_term_id, team_term_id, amount_due, amount_paid, paid, payment_date
                )
                values (%s, %s, %s, %s, %s, %s)
                on conflict (player_term_id, team_term_id) do update
                    set amount_due = excluded.amount_due,
                        amount_paid = excluded.amount_paid,
                        paid = excluded.paid,
                        payment_date = excluded.payment_date
                returning id;
                """,
                (player_term_id, team_term_id, amount_due, amount_paid, paid, payment_date),
            )
            row = cur.fetchone()
            return _id(row[0]) if row else None
