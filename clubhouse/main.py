import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo

import psycopg
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ValidationError

from clubhouse import db
from clubhouse.attendance import bulk_status, filter_roll, load_roll, save_roll
from clubhouse.errors import ClubError
from clubhouse.fees import (
    csv_filename,
    load_payments,
    load_team_fee,
    payments_csv,
    save_team_fee,
    set_team_fee,
    update_payment,
)
from clubhouse.migrations import apply_migrations
from clubhouse.players import (
    calc_age,
    delete_player,
    display_name,
    filter_players,
    load_profile,
    parse_player_form,
    remove_membership,
)
from clubhouse.players import create_player as create_player_record
from clubhouse.players import update_player as update_player_record
from clubhouse.roster import (
    NO_TERM_MESSAGE,
    assign_player_to_teams,
    build_roster,
    load_team_assignment,
    quick_add_player,
    save_team_assignment,
    toggle_payment,
)
from clubhouse.schedule import (
    apply_start_preset,
    default_window,
    event_title,
    format_when,
    parse_event_form,
    split_local,
)
from clubhouse.settings import (
    ATTENDANCE_STATUSES,
    CURRENCIES,
    DURATION_PRESETS,
    EVENT_TYPES,
    MEMBERSHIP_ROLES,
    PLAYER_STATUSES,
    START_PRESETS,
    TERM_COOKIE,
    load_settings,
)
from clubhouse.storage import (
    delete_player_photo,
    get_player_photo_signed_url,
    remove_player_photo,
    upload_and_save_player_photo,
)
from clubhouse.storage_api import StorageApiError, get_storage_client
from clubhouse.terms import (
    create_term,
    parse_term_form,
    resolve_current_term,
    term_label,
    term_window_label,
    update_term,
)
from clubhouse.validation import css_classes, format_error, is_valid_uuid, parse_money, sanitize_string

logger = logging.getLogger(__name__)

settings = load_settings()
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
templates.env.globals["cx"] = css_classes
templates.env.globals["term_label"] = term_label
templates.env.globals["term_window_label"] = term_window_label
templates.env.filters["money"] = lambda value: "" if value is None else f"{value:.2f}"


@asynccontextmanager
async def lifespan(_: FastAPI):
    db.ensure_schema(settings.database_url)
    applied = apply_migrations(settings.database_url)
    if applied:
        logger.info("Applied migrations: %s", ", ".join(applied))
    yield


app = FastAPI(lifespan=lifespan)


def _require_uuid(value: str) -> str:
    if not is_valid_uuid(value):
        raise HTTPException(status_code=404, detail="Not found")
    return value


def _error_message(exc: Exception, unique_message: str | None = None) -> str:
    if isinstance(exc, ClubError):
        return str(exc)
    if unique_message and isinstance(exc, psycopg.errors.UniqueViolation):
        return unique_message
    if isinstance(exc, psycopg.errors.InsufficientPrivilege):
        return "Permission denied."
    logger.warning("Request failed: %s", exc)
    return f"Error: {format_error(exc)}"


def _term_state(request: Request) -> dict:
    try:
        terms = db.fetch_terms(settings.database_url)
    except psycopg.Error as exc:
        logger.warning("Could not load terms: %s", exc)
        terms = []
    current = resolve_current_term(terms, request.cookies.get(TERM_COOKIE))
    return {
        "terms": terms,
        "current_term": current,
        "term_id": current["id"] if current else None,
    }


def _render(
    request: Request,
    template: str,
    state: dict,
    context: dict | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    payload = {"error": None, "message": None, **state, **(context or {})}
    return templates.TemplateResponse(request, template, payload, status_code=status_code)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _safe_next(value: str | None, fallback: str) -> str:
    if value and value.startswith("/") and not value.startswith("//"):
        return value
    return fallback


def _photo_url(player: dict) -> str | None:
    path = player.get("photo_storage_path")
    if not path:
        return player.get("photo_url")
    try:
        client = get_storage_client(settings)
    except StorageApiError as exc:
        logger.warning("Storage unavailable: %s", exc)
        return player.get("photo_url")
    return get_player_photo_signed_url(client, settings.photo_bucket, path) or player.get("photo_url")


# -- dashboard and term selection ---------------------------------------------


@app.get("/", response_class=RedirectResponse)
async def index():
    return RedirectResponse(url="/dashboard")


@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request):
    state = _term_state(request)
    context = {"player_count": 0, "team_count": 0, "upcoming": [], "totals": None}
    try:
        context["player_count"] = len(db.fetch_players(settings.database_url))
        teams = {team["id"]: team["name"] for team in db.fetch_teams(settings.database_url)}
        context["team_count"] = len(teams)
        upcoming = db.fetch_upcoming_events(settings.database_url, datetime.now(timezone.utc))[:5]
        context["upcoming"] = [
            {
                **event,
                "label": event_title(event),
                "when": format_when(event["starts_at"], settings.timezone),
                "team_name": teams.get(event["team_id"]),
            }
            for event in upcoming
        ]
        if state["term_id"]:
            context["totals"] = load_payments(settings.database_url, state["term_id"])
    except psycopg.Error as exc:
        context["error"] = _error_message(exc)
    return _render(request, "dashboard.html", state, context)


@app.post("/term")
async def switch_term(term_id: str = Form(""), next: str = Form("/dashboard")):
    response = _redirect(_safe_next(next, "/dashboard"))
    if term_id and is_valid_uuid(term_id):
        response.set_cookie(TERM_COOKIE, term_id, max_age=60 * 60 * 24 * 365, samesite="lax")
    else:
        response.delete_cookie(TERM_COOKIE)
    return response


# -- players ------------------------------------------------------------------


def _player_form_values(**values: str) -> dict:
    return {key: value or "" for key, value in values.items()}


@app.get("/players", response_class=HTMLResponse)
async def players_list(request: Request, q: str = ""):
    state = _term_state(request)
    rows: list[dict] = []
    error = None
    try:
        rows = filter_players(db.fetch_players(settings.database_url), q)
    except psycopg.Error as exc:
        error = _error_message(exc)
    players = [
        {**row, "display_name": display_name(row), "age": calc_age(row.get("dob"))}
        for row in rows
    ]
    return _render(
        request, "players.html", state, {"players": players, "q": q, "error": error}
    )


@app.get("/players/new", response_class=HTMLResponse)
async def new_player_page(request: Request):
    return _render(
        request,
        "player_form.html",
        _term_state(request),
        {"player": _player_form_values(status="active"), "statuses": PLAYER_STATUSES, "mode": "new"},
    )


@app.post("/players/new", response_class=HTMLResponse)
async def create_player(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    preferred_name: str = Form(""),
    dob: str = Form(""),
    jersey_no: str = Form(""),
    status: str = Form("active"),
    notes: str = Form(""),
    guardian_name: str = Form(""),
    guardian_email: str = Form(""),
    guardian_phone: str = Form(""),
):
    try:
        form = parse_player_form(first_name, last_name, preferred_name, dob, jersey_no, status, notes)
        player_id = create_player_record(
            settings.database_url, form, guardian_name, guardian_email, guardian_phone
        )
    except (ClubError, psycopg.Error) as exc:
        return _render(
            request,
            "player_form.html",
            _term_state(request),
            {
                "player": _player_form_values(
                    first_name=first_name,
                    last_name=last_name,
                    preferred_name=preferred_name,
                    dob=dob,
                    jersey_no=jersey_no,
                    status=status,
                    notes=notes,
                    guardian_name=guardian_name,
                    guardian_email=guardian_email,
                    guardian_phone=guardian_phone,
                ),
                "statuses": PLAYER_STATUSES,
                "mode": "new",
                "error": _error_message(exc),
            },
            status_code=400,
        )
    return _redirect(f"/players/{player_id}")


def _render_profile(
    request: Request, player_id: str, error: str | None = None, message: str | None = None
) -> HTMLResponse:
    state = _term_state(request)
    profile = load_profile(settings.database_url, player_id, state["term_id"])
    if not profile:
        raise HTTPException(status_code=404, detail="Player not found")
    return _render(
        request,
        "player_profile.html",
        state,
        {
            **profile,
            "photo": _photo_url(profile["player"]),
            "error": error,
            "message": message,
        },
        status_code=400 if error else 200,
    )


@app.get("/players/{player_id}", response_class=HTMLResponse)
async def player_profile(request: Request, player_id: str):
    return _render_profile(request, _require_uuid(player_id))


@app.get("/players/{player_id}/edit", response_class=HTMLResponse)
async def edit_player_page(request: Request, player_id: str):
    player = db.fetch_player(settings.database_url, _require_uuid(player_id))
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    values = {
        **player,
        "dob": player["dob"].isoformat() if player.get("dob") else "",
        "jersey_no": "" if player.get("jersey_no") is None else str(player["jersey_no"]),
    }
    return _render(
        request,
        "player_form.html",
        _term_state(request),
        {"player": values, "statuses": PLAYER_STATUSES, "mode": "edit"},
    )


@app.post("/players/{player_id}/edit", response_class=HTMLResponse)
async def edit_player(
    request: Request,
    player_id: str,
    first_name: str = Form(""),
    last_name: str = Form(""),
    preferred_name: str = Form(""),
    dob: str = Form(""),
    jersey_no: str = Form(""),
    status: str = Form("active"),
    notes: str = Form(""),
    photo_url: str = Form(""),
):
    _require_uuid(player_id)
    try:
        form = parse_player_form(first_name, last_name, preferred_name, dob, jersey_no, status, notes)
        update_player_record(settings.database_url, player_id, form, photo_url)
    except (ClubError, psycopg.Error) as exc:
        return _render(
            request,
            "player_form.html",
            _term_state(request),
            {
                "player": {
                    "id": player_id,
                    **_player_form_values(
                        first_name=first_name,
                        last_name=last_name,
                        preferred_name=preferred_name,
                        dob=dob,
                        jersey_no=jersey_no,
                        status=status,
                        notes=notes,
                        photo_url=photo_url,
                    ),
                },
                "statuses": PLAYER_STATUSES,
                "mode": "edit",
                "error": _error_message(exc),
            },
            status_code=400,
        )
    return _redirect(f"/players/{player_id}")


@app.post("/players/{player_id}/delete")
async def delete_player_route(request: Request, player_id: str):
    _require_uuid(player_id)
    try:
        storage_path = delete_player(settings.database_url, player_id)
    except (ClubError, psycopg.Error) as exc:
        return _render_profile(request, player_id, error=_error_message(exc))
    if storage_path:
        try:
            client = get_storage_client(settings)
        except StorageApiError as exc:
            logger.warning("Photo for deleted player %s left in storage: %s", player_id, exc)
        else:
            delete_player_photo(client, settings.photo_bucket, storage_path)
    return _redirect("/players")


@app.get("/players/{player_id}/assign", response_class=HTMLResponse)
async def assign_player_page(request: Request, player_id: str):
    state = _term_state(request)
    player = db.fetch_player(settings.database_url, _require_uuid(player_id))
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    return _render(
        request,
        "player_assign.html",
        state,
        {
            "player": player,
            "display_name": display_name(player),
            "teams": db.fetch_teams(settings.database_url),
            "roles": MEMBERSHIP_ROLES,
            "error": None if state["term_id"] else NO_TERM_MESSAGE,
        },
    )


@app.post("/players/{player_id}/assign", response_class=HTMLResponse)
async def assign_player(
    request: Request,
    player_id: str,
    team_ids: list[str] = Form([]),
    role: str = Form("player"),
    registered_at: str = Form(""),
):
    _require_uuid(player_id)
    state = _term_state(request)
    try:
        registered = date.fromisoformat(registered_at) if registered_at else None
    except ValueError:
        registered = None
    try:
        assign_player_to_teams(
            settings.database_url,
            player_id,
            state["term_id"],
            [team_id for team_id in team_ids if is_valid_uuid(team_id)],
            role=role,
            registered_at=registered,
        )
    except (ClubError, psycopg.Error) as exc:
        player = db.fetch_player(settings.database_url, player_id)
        if not player:
            raise HTTPException(status_code=404, detail="Player not found")
        return _render(
            request,
            "player_assign.html",
            state,
            {
                "player": player,
                "display_name": display_name(player),
                "teams": db.fetch_teams(settings.database_url),
                "roles": MEMBERSHIP_ROLES,
                "error": _error_message(exc),
            },
            status_code=400,
        )
    return _redirect(f"/players/{player_id}")


@app.post("/players/{player_id}/photo", response_class=HTMLResponse)
async def upload_photo(request: Request, player_id: str, photo: UploadFile = File(...)):
    _require_uuid(player_id)
    player = db.fetch_player(settings.database_url, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    content = await photo.read()
    try:
        client = get_storage_client(settings)
    except StorageApiError as exc:
        return _render_profile(request, player_id, error=format_error(exc))
    result = upload_and_save_player_photo(
        client,
        settings.photo_bucket,
        settings.database_url,
        player_id,
        photo.filename or "",
        content,
        photo.content_type or "",
        old_storage_path=player.get("photo_storage_path"),
    )
    if not result.success:
        return _render_profile(request, player_id, error=result.error)
    return _redirect(f"/players/{player_id}")


@app.post("/players/{player_id}/photo/delete", response_class=HTMLResponse)
async def delete_photo(request: Request, player_id: str):
    _require_uuid(player_id)
    player = db.fetch_player(settings.database_url, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    try:
        client = get_storage_client(settings)
    except StorageApiError as exc:
        return _render_profile(request, player_id, error=format_error(exc))
    if not remove_player_photo(
        client,
        settings.photo_bucket,
        settings.database_url,
        player_id,
        player.get("photo_storage_path"),
    ):
        return _render_profile(request, player_id, error="Failed to update database")
    return _redirect(f"/players/{player_id}")


@app.post("/memberships/{membership_id}/delete")
async def delete_membership(membership_id: str, next: str = Form("/players")):
    _require_uuid(membership_id)
    try:
        remove_membership(settings.database_url, membership_id)
    except ClubError:
        raise HTTPException(status_code=404, detail="Membership not found") from None
    return _redirect(_safe_next(next, "/players"))


# -- teams --------------------------------------------------------------------

TEAM_NAME_TAKEN = "That team name already exists."


def _load_team(team_id: str) -> dict:
    team = db.fetch_team(settings.database_url, _require_uuid(team_id))
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@app.get("/teams", response_class=HTMLResponse)
async def teams_list(request: Request):
    state = _term_state(request)
    teams = db.fetch_teams(settings.database_url)
    fees: dict[str, dict] = {}
    if state["term_id"]:
        fees = {
            tt["team_id"]: tt
            for tt in db.fetch_team_terms_for_term(settings.database_url, state["term_id"])
        }
    rows = [{**team, "team_term": fees.get(team["id"])} for team in teams]
    return _render(request, "teams.html", state, {"teams": rows})


@app.get("/teams/new", response_class=HTMLResponse)
async def new_team_page(request: Request):
    return _render(request, "team_form.html", _term_state(request), {"team": {"name": ""}, "mode": "new"})


@app.post("/teams/new", response_class=HTMLResponse)
async def create_team(request: Request, name: str = Form("")):
    cleaned = sanitize_string(name)
    try:
        if not cleaned:
            raise ClubError("Team name is required.")
        team_id = db.insert_team(settings.database_url, cleaned)
    except (ClubError, psycopg.Error) as exc:
        return _render(
            request,
            "team_form.html",
            _term_state(request),
            {"team": {"name": name}, "mode": "new", "error": _error_message(exc, TEAM_NAME_TAKEN)},
            status_code=400,
        )
    logger.info("Created team %s (%s)", cleaned, team_id)
    return _redirect(f"/teams/{team_id}/assign")


@app.get("/teams/{team_id}/edit", response_class=HTMLResponse)
async def edit_team_page(request: Request, team_id: str):
    team = _load_team(team_id)
    return _render(request, "team_form.html", _term_state(request), {"team": team, "mode": "edit"})


@app.post("/teams/{team_id}/edit", response_class=HTMLResponse)
async def edit_team(request: Request, team_id: str, name: str = Form("")):
    team = _load_team(team_id)
    cleaned = sanitize_string(name)
    try:
        if not cleaned:
            raise ClubError("Team name is required.")
        db.update_team(settings.database_url, team["id"], cleaned)
    except (ClubError, psycopg.Error) as exc:
        return _render(
            request,
            "team_form.html",
            _term_state(request),
            {
                "team": {"id": team["id"], "name": name},
                "mode": "edit",
                "error": _error_message(exc, TEAM_NAME_TAKEN),
            },
            status_code=400,
        )
    return _redirect("/teams")


@app.post("/teams/{team_id}/delete")
async def delete_team(team_id: str):
    team = _load_team(team_id)
    db.delete_team(settings.database_url, team["id"])
    logger.info("Deleted team %s", team["id"])
    return _redirect("/teams")


def _render_assignment(
    request: Request,
    state: dict,
    team: dict,
    q: str = "",
    added: str | None = None,
    error: str | None = None,
    selected: set[str] | None = None,
) -> HTMLResponse:
    context: dict = {"team": team, "q": q, "assignment": None, "players": []}
    try:
        assignment = load_team_assignment(settings.database_url, team["id"], state["term_id"])
    except (ClubError, psycopg.Error) as exc:
        context["error"] = _error_message(exc)
        return _render(request, "team_assign.html", state, context)
    if selected is not None:
        assignment["selected"] = selected
    if added:
        assignment["selected"].add(added)
    visible = filter_players(assignment["players"], q)
    visible_ids = {row["player_term_id"] for row in visible}
    context["assignment"] = assignment
    context["players"] = visible
    # Selected rows hidden by the filter post back as hidden inputs.
    context["hidden_selected"] = [
        row["player_term_id"]
        for row in assignment["players"]
        if row["player_term_id"] in assignment["selected"]
        and row["player_term_id"] not in visible_ids
    ]
    context["error"] = error
    return _render(request, "team_assign.html", state, context, status_code=400 if error else 200)


@app.get("/teams/{team_id}/assign", response_class=HTMLResponse)
async def team_assign_page(request: Request, team_id: str, q: str = "", added: str = ""):
    team = _load_team(team_id)
    return _render_assignment(
        request, _term_state(request), team, q, added if is_valid_uuid(added) else None
    )


@app.post("/teams/{team_id}/assign", response_class=HTMLResponse)
async def team_assign(
    request: Request,
    team_id: str,
    team_term_id: str = Form(""),
    player_term_ids: list[str] = Form([]),
    visible_ids: list[str] = Form([]),
    q: str = Form(""),
    bulk: str = Form(""),
):
    team = _load_team(team_id)
    selected = {ptid for ptid in player_term_ids if is_valid_uuid(ptid)}
    if bulk in ("all", "none"):
        visible = {ptid for ptid in visible_ids if is_valid_uuid(ptid)}
        selected = selected | visible if bulk == "all" else selected - visible
        return _render_assignment(request, _term_state(request), team, q, selected=selected)
    try:
        save_team_assignment(
            settings.database_url,
            team_term_id if is_valid_uuid(team_term_id) else None,
            sorted(selected),
        )
    except (ClubError, psycopg.Error) as exc:
        return _render_assignment(
            request, _term_state(request), team, q, error=_error_message(exc), selected=selected
        )
    return _redirect(f"/teams/{team['id']}/roster")


@app.post("/teams/{team_id}/quick-add", response_class=HTMLResponse)
async def team_quick_add(
    request: Request,
    team_id: str,
    first_name: str = Form(""),
    last_name: str = Form(""),
    preferred_name: str = Form(""),
    jersey_no: str = Form(""),
):
    team = _load_team(team_id)
    state = _term_state(request)
    try:
        form = parse_player_form(first_name, last_name, preferred_name, jersey_no=jersey_no)
        row = quick_add_player(settings.database_url, state["term_id"], form)
    except (ClubError, psycopg.Error) as exc:
        return _render_assignment(request, state, team, error=_error_message(exc))
    return _redirect(f"/teams/{team['id']}/assign?added={row['player_term_id']}")


def _render_roster(request: Request, team: dict, error: str | None = None) -> HTMLResponse:
    state = _term_state(request)
    context: dict = {"team": team, "roster": None, "error": error}
    try:
        context["roster"] = build_roster(settings.database_url, team["id"], state["term_id"])
    except (ClubError, psycopg.Error) as exc:
        context["error"] = _error_message(exc)
    return _render(request, "team_roster.html", state, context, status_code=400 if error else 200)


@app.get("/teams/{team_id}/roster", response_class=HTMLResponse)
async def team_roster(request: Request, team_id: str):
    return _render_roster(request, _load_team(team_id))


@app.post("/teams/{team_id}/roster/{player_term_id}/payment", response_class=HTMLResponse)
async def team_roster_toggle_payment(request: Request, team_id: str, player_term_id: str):
    team = _load_team(team_id)
    _require_uuid(player_term_id)
    state = _term_state(request)
    try:
        toggle_payment(settings.database_url, team["id"], state["term_id"], player_term_id)
    except (ClubError, psycopg.Error) as exc:
        return _render_roster(request, team, error=_error_message(exc))
    return _redirect(f"/teams/{team['id']}/roster")


@app.post("/teams/{team_id}/roster/memberships/{membership_id}/delete", response_class=HTMLResponse)
async def team_roster_remove(request: Request, team_id: str, membership_id: str):
    team = _load_team(team_id)
    _require_uuid(membership_id)
    try:
        remove_membership(settings.database_url, membership_id)
    except (ClubError, psycopg.Error) as exc:
        return _render_roster(request, team, error=_error_message(exc))
    return _redirect(f"/teams/{team['id']}/roster")


def _render_team_fee(
    request: Request,
    team: dict,
    error: str | None = None,
    message: str | None = None,
) -> HTMLResponse:
    state = _term_state(request)
    context: dict = {"team": team, "fee": None, "currencies": CURRENCIES, "error": error, "message": message}
    if not state["term_id"]:
        context["error"] = NO_TERM_MESSAGE
    else:
        context["fee"] = load_team_fee(
            settings.database_url, team["id"], state["term_id"], settings.default_currency
        )
    return _render(request, "team_fees.html", state, context, status_code=400 if error else 200)


@app.get("/teams/{team_id}/fees", response_class=HTMLResponse)
async def team_fee_page(request: Request, team_id: str):
    return _render_team_fee(request, _load_team(team_id))


@app.post("/teams/{team_id}/fees", response_class=HTMLResponse)
async def team_fee_save(
    request: Request,
    team_id: str,
    amount: str = Form(""),
    currency: str = Form(""),
    notes: str = Form(""),
):
    team = _load_team(team_id)
    state = _term_state(request)
    try:
        if not state["term_id"]:
            raise ClubError(NO_TERM_MESSAGE)
        message = save_team_fee(
            settings.database_url,
            team["id"],
            state["term_id"],
            parse_money(amount),
            currency or settings.default_currency,
            notes,
        )
    except (ClubError, psycopg.Error) as exc:
        return _render_team_fee(request, team, error=_error_message(exc))
    return _render_team_fee(request, team, message=message)


# -- team-term settings -------------------------------------------------------


def _load_team_term(team_term_id: str) -> dict:
    team_term = db.fetch_team_term_by_id(settings.database_url, _require_uuid(team_term_id))
    if not team_term:
        raise HTTPException(status_code=404, detail="Team term not found")
    return team_term


@app.get("/team-terms/{team_term_id}/settings", response_class=HTMLResponse)
async def team_term_settings_page(request: Request, team_term_id: str):
    team_term = _load_team_term(team_term_id)
    return _render(request, "team_term_settings.html", _term_state(request), {"team_term": team_term})


@app.post("/team-terms/{team_term_id}/settings", response_class=HTMLResponse)
async def team_term_settings(
    request: Request,
    team_term_id: str,
    fee_amount: str = Form(""),
    fee_due_date: str = Form(""),
):
    team_term = _load_team_term(team_term_id)
    context: dict = {"team_term": team_term}
    try:
        due = date.fromisoformat(fee_due_date) if fee_due_date else None
        set_team_fee(
            settings.database_url,
            team_term["id"],
            parse_money(fee_amount, default=Decimal("0.00")),
            due_date=due,
            currency=team_term.get("fee_currency"),
            notes=team_term.get("fee_notes"),
        )
    except ValueError:
        context["error"] = "Error: due date must be a date (YYYY-MM-DD)."
    except (ClubError, psycopg.Error) as exc:
        context["error"] = _error_message(exc)
    else:
        context["team_term"] = _load_team_term(team_term_id)
        context["message"] = "Saved."
    return _render(
        request,
        "team_term_settings.html",
        _term_state(request),
        context,
        status_code=400 if context.get("error") else 200,
    )


# -- terms --------------------------------------------------------------------


@app.get("/terms", response_class=HTMLResponse)
async def terms_list(request: Request):
    return _render(request, "terms.html", _term_state(request), {"form": {}})


@app.post("/terms/new", response_class=HTMLResponse)
async def create_term_route(
    request: Request,
    year: str = Form(""),
    term: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
):
    try:
        term_id = create_term(settings.database_url, parse_term_form(year, term, start_date, end_date))
    except (ClubError, psycopg.Error) as exc:
        return _render(
            request,
            "terms.html",
            _term_state(request),
            {
                "form": {"year": year, "term": term, "start_date": start_date, "end_date": end_date},
                "error": _error_message(exc, "That term already exists."),
            },
            status_code=400,
        )
    logger.info("Created term %s %s (%s)", year, term, term_id)
    return _redirect("/terms")


@app.get("/terms/{term_id}/edit", response_class=HTMLResponse)
async def edit_term_page(request: Request, term_id: str):
    record = db.fetch_term(settings.database_url, _require_uuid(term_id))
    if not record:
        raise HTTPException(status_code=404, detail="Term not found")
    return _render(request, "term_form.html", _term_state(request), {"term": record})


@app.post("/terms/{term_id}/edit", response_class=HTMLResponse)
async def edit_term(
    request: Request,
    term_id: str,
    year: str = Form(""),
    term: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
):
    _require_uuid(term_id)
    try:
        update_term(settings.database_url, term_id, parse_term_form(year, term, start_date, end_date))
    except (ClubError, psycopg.Error) as exc:
        return _render(
            request,
            "term_form.html",
            _term_state(request),
            {
                "term": {
                    "id": term_id,
                    "year": year,
                    "term": term,
                    "start_date": start_date,
                    "end_date": end_date,
                },
                "error": _error_message(exc, "That term already exists."),
            },
            status_code=400,
        )
    return _redirect("/terms")


@app.post("/terms/{term_id}/delete")
async def delete_term(request: Request, term_id: str):
    _require_uuid(term_id)
    db.delete_term(settings.database_url, term_id)
    logger.info("Deleted term %s", term_id)
    response = _redirect("/terms")
    if request.cookies.get(TERM_COOKIE) == term_id:
        response.delete_cookie(TERM_COOKIE)
    return response


# -- events -------------------------------------------------------------------


def _event_form_context(values: dict) -> dict:
    return {
        "event": values,
        "teams": db.fetch_teams(settings.database_url),
        "event_types": EVENT_TYPES,
        "durations": DURATION_PRESETS,
        "presets": list(START_PRESETS),
    }


@app.get("/events", response_class=HTMLResponse)
async def events_list(request: Request):
    state = _term_state(request)
    teams = {team["id"]: team["name"] for team in db.fetch_teams(settings.database_url)}
    events = [
        {
            **event,
            "label": event_title(event),
            "when": format_when(event["starts_at"], settings.timezone),
            "team_name": teams.get(event["team_id"]),
        }
        for event in db.fetch_upcoming_events(settings.database_url, datetime.now(timezone.utc))
    ]
    return _render(request, "events.html", state, {"events": events})


@app.get("/events/new", response_class=HTMLResponse)
async def new_event_page(request: Request, preset: str = ""):
    values = {"type": "training", "team_id": "", "title": "", "location": ""}
    values.update(default_window(datetime.now(ZoneInfo(settings.timezone)), settings.timezone))
    error = None
    if preset:
        try:
            values["start_date"], values["start_time"] = apply_start_preset(values["start_date"], preset)
            values["end_date"], values["end_time"] = "", ""
        except ClubError as exc:
            error = str(exc)
    return _render(
        request,
        "event_form.html",
        _term_state(request),
        {**_event_form_context(values), "mode": "new", "error": error},
    )


@app.post("/events/new", response_class=HTMLResponse)
async def create_event(
    request: Request,
    team_id: str = Form(""),
    event_type: str = Form("training"),
    title: str = Form(""),
    location: str = Form(""),
    start_date: str = Form(""),
    start_time: str = Form(""),
    end_date: str = Form(""),
    end_time: str = Form(""),
    duration: str = Form(""),
):
    try:
        form = parse_event_form(
            team_id if is_valid_uuid(team_id) else "",
            event_type,
            title,
            location,
            start_date,
            start_time,
            end_date,
            end_time,
            duration,
            settings.timezone,
        )
        event_id = db.insert_event(settings.database_url, **form)
    except (ClubError, psycopg.Error) as exc:
        values = {
            "team_id": team_id,
            "type": event_type,
            "title": title,
            "location": location,
            "start_date": start_date,
            "start_time": start_time,
            "end_date": end_date,
            "end_time": end_time,
            "duration": duration,
        }
        return _render(
            request,
            "event_form.html",
            _term_state(request),
            {**_event_form_context(values), "mode": "new", "error": _error_message(exc)},
            status_code=400,
        )
    logger.info("Created event %s", event_id)
    return _redirect("/events")


def _load_event(event_id: str) -> dict:
    event = db.fetch_event(settings.database_url, _require_uuid(event_id))
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.get("/events/{event_id}/edit", response_class=HTMLResponse)
async def edit_event_page(request: Request, event_id: str):
    event = _load_event(event_id)
    start_date, start_time = split_local(event["starts_at"], settings.timezone)
    end_date, end_time = split_local(event["ends_at"], settings.timezone)
    values = {
        **event,
        "team_id": event["team_id"] or "",
        "title": event["title"] or "",
        "location": event["location"] or "",
        "start_date": start_date,
        "start_time": start_time,
        "end_date": end_date,
        "end_time": end_time,
        "duration": "",
    }
    return _render(
        request,
        "event_form.html",
        _term_state(request),
        {**_event_form_context(values), "mode": "edit"},
    )


@app.post("/events/{event_id}/edit", response_class=HTMLResponse)
async def edit_event(
    request: Request,
    event_id: str,
    team_id: str = Form(""),
    event_type: str = Form("training"),
    title: str = Form(""),
    location: str = Form(""),
    start_date: str = Form(""),
    start_time: str = Form(""),
    end_date: str = Form(""),
    end_time: str = Form(""),
    duration: str = Form(""),
):
    event = _load_event(event_id)
    try:
        form = parse_event_form(
            team_id if is_valid_uuid(team_id) else "",
            event_type,
            title,
            location,
            start_date,
            start_time,
            end_date,
            end_time,
            duration,
            settings.timezone,
        )
        db.update_event(settings.database_url, event["id"], **form)
    except (ClubError, psycopg.Error) as exc:
        values = {
            "id": event["id"],
            "team_id": team_id,
            "type": event_type,
            "title": title,
            "location": location,
            "start_date": start_date,
            "start_time": start_time,
            "end_date": end_date,
            "end_time": end_time,
            "duration": duration,
        }
        return _render(
            request,
            "event_form.html",
            _term_state(request),
            {**_event_form_context(values), "mode": "edit", "error": _error_message(exc)},
            status_code=400,
        )
    return _redirect("/events")


@app.post("/events/{event_id}/delete")
async def delete_event(event_id: str):
    event = _load_event(event_id)
    db.delete_event(settings.database_url, event["id"])
    logger.info("Deleted event %s", event["id"])
    return _redirect("/events")


def _render_roll(
    request: Request,
    event_id: str,
    q: str = "",
    error: str | None = None,
    message: str | None = None,
) -> HTMLResponse:
    roll = load_roll(settings.database_url, _require_uuid(event_id), settings.timezone)
    if not roll:
        raise HTTPException(status_code=404, detail="Event not found")
    return _render(
        request,
        "event_roll.html",
        _term_state(request),
        {
            "roll": roll,
            "rows": filter_roll(roll["rows"], q),
            "q": q,
            "statuses": ATTENDANCE_STATUSES,
            "error": error,
            "message": message,
        },
        status_code=400 if error else 200,
    )


@app.get("/events/{event_id}/roll", response_class=HTMLResponse)
async def event_roll(request: Request, event_id: str, q: str = ""):
    return _render_roll(request, event_id, q)


@app.post("/events/{event_id}/roll", response_class=HTMLResponse)
async def save_event_roll(request: Request, event_id: str):
    _require_uuid(event_id)
    form = await request.form()
    bulk = (form.get("bulk") or "").strip().lower()
    try:
        if bulk:
            roll = load_roll(settings.database_url, event_id, settings.timezone)
            if not roll:
                raise HTTPException(status_code=404, detail="Event not found")
            entries = bulk_status(roll["rows"], bulk)
        else:
            entries = [
                {
                    "player_term_id": key.split(":", 1)[1],
                    "status": value,
                    "notes": form.get(f"notes:{key.split(':', 1)[1]}"),
                }
                for key, value in form.items()
                if key.startswith("status:") and is_valid_uuid(key.split(":", 1)[1])
            ]
        saved = save_roll(settings.database_url, event_id, entries)
    except (ClubError, psycopg.Error) as exc:
        return _render_roll(request, event_id, error=_error_message(exc))
    return _render_roll(request, event_id, message=f"Saved {saved} attendance records.")


class AttendanceEntry(BaseModel):
    player_term_id: str
    status: Literal["present", "absent", "late"] | None = None
    notes: str | None = None


class AttendancePayload(BaseModel):
    entries: list[AttendanceEntry]


@app.post("/api/events/{event_id}/attendance")
async def api_attendance(request: Request, event_id: str):
    _require_uuid(event_id)
    try:
        payload = AttendancePayload.model_validate(await request.json())
    except ValidationError as exc:
        return JSONResponse(
            {"error": "Invalid payload", "details": exc.errors(include_url=False)},
            status_code=422,
        )
    if not db.fetch_event(settings.database_url, event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    try:
        saved = save_roll(
            settings.database_url, event_id, [entry.model_dump() for entry in payload.entries]
        )
    except ClubError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except psycopg.Error as exc:
        return JSONResponse({"error": _error_message(exc)}, status_code=500)
    return {"event_id": event_id, "saved": saved}


# -- payments -----------------------------------------------------------------


def _render_payments(
    request: Request, error: str | None = None, message: str | None = None
) -> HTMLResponse:
    state = _term_state(request)
    context: dict = {"summary": None, "currencies": CURRENCIES, "error": error, "message": message}
    if not state["term_id"]:
        context["error"] = NO_TERM_MESSAGE
    else:
        try:
            context["summary"] = load_payments(settings.database_url, state["term_id"])
        except psycopg.Error as exc:
            context["error"] = _error_message(exc)
    return _render(request, "payments.html", state, context, status_code=400 if error else 200)


@app.get("/payments", response_class=HTMLResponse)
async def payments_page(request: Request):
    return _render_payments(request)


@app.post("/payments/fees", response_class=HTMLResponse)
async def payments_set_fee(
    request: Request,
    team_term_id: str = Form(""),
    amount: str = Form(""),
):
    team_term = _load_team_term(team_term_id)
    try:
        count = set_team_fee(
            settings.database_url,
            team_term["id"],
            parse_money(amount),
            due_date=team_term.get("fee_due_date"),
            currency=team_term.get("fee_currency") or settings.default_currency,
            notes=team_term.get("fee_notes"),
        )
    except (ClubError, psycopg.Error) as exc:
        return _render_payments(request, error=_error_message(exc))
    return _render_payments(request, message=f"Fee set for {team_term['team_name']} ({count} players).")


@app.post("/payments/{payment_id}", response_class=HTMLResponse)
async def payments_update(request: Request, payment_id: str, amount_paid: str = Form("")):
    _require_uuid(payment_id)
    try:
        amount = parse_money(amount_paid)
    except ClubError:
        return _render_payments(request, error="Amount paid must be a non-negative number")
    try:
        update_payment(settings.database_url, payment_id, amount)
    except (ClubError, psycopg.Error) as exc:
        return _render_payments(request, error=_error_message(exc))
    return _redirect("/payments")


@app.get("/payments/export.csv")
async def payments_export(request: Request):
    state = _term_state(request)
    if not state["term_id"]:
        return Response(NO_TERM_MESSAGE, status_code=400, media_type="text/plain")
    summary = load_payments(settings.database_url, state["term_id"])
    return Response(
        payments_csv(summary["payments"]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{csv_filename()}"'},
    )
