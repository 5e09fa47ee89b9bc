"""REST reads and mutation endpoints for the school backend.

Reads (GET) answer with the ``{success, data, message, error}`` envelope.
Mutations answer with an action result: ``{success, data}`` or
``{success: false, error}``. Partial-success failures (shift saved but
assignments failed, instructor saved but certification links failed) are
reported as errors while the main row is still committed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import psycopg2

from fuyugyo import instructors, repositories, shifts
from fuyugyo.config import get_app_base_url, get_log_level
from fuyugyo.dates import get_today_local_date
from fuyugyo.db import transaction
from fuyugyo.guards import AuthError, ForbiddenError, require_admin_auth, require_auth, require_manager_auth
from fuyugyo.http import action_error, action_ok, api_error, api_ok, get_method, get_query_params, parse_json_body
from fuyugyo.instructors import InstructorError
from fuyugyo.invitations import (
    InvitationError,
    accept_invitation,
    create_invitation_token,
    deactivate_invitation_token,
    generate_invitation_url,
    resolve_expires_at,
    validate_invitation_token,
)
from fuyugyo.presenters import (
    certification_to_ui,
    department_to_ui,
    invitation_to_ui,
    shift_type_to_ui,
    user_to_ui,
)
from fuyugyo.repositories import NotFoundError
from fuyugyo.shifts import DUPLICATE_SHIFT, ShiftError
from fuyugyo.validation import (
    INSTRUCTOR_STATUSES,
    ValidationError,
    parse_accept_invitation_input,
    parse_certification_input,
    parse_create_invitation_input,
    parse_create_shift_input,
    parse_instructor_input,
    parse_shift_type_input,
    parse_update_shift_input,
    parse_user_update_input,
    require_date_string,
    validate_date_string,
    validate_required_params,
)

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())

NOT_FOUND = "Resource not found"
INTERNAL_ERROR = "Internal server error"
MANAGER_INVITE_FORBIDDEN = "MANAGERロールの招待は管理者のみ作成できます"


def _authorize(event: dict, guard: Callable[[dict], dict],
               on_error: Callable[[str, int], dict] = api_error) -> tuple[dict | None, dict | None]:
    try:
        return guard(event), None
    except AuthError as exc:
        return None, on_error(str(exc), exc.status)


def _read(label: str, fn: Callable[[Any], Any], message: str | None = None) -> dict:
    """Run a read inside a transaction and wrap the result in the REST envelope."""
    try:
        with transaction() as cursor:
            data = fn(cursor)
    except ValidationError as exc:
        return api_error(str(exc), 400)
    except Exception:
        logger.exception("%s failed", label)
        return api_error(INTERNAL_ERROR, 500)
    if data is None:
        return api_error(NOT_FOUND, 404)
    return api_ok(data, message)


def _mutate(label: str, fn: Callable[[Any], Any], status: int = 200) -> dict:
    """Run a mutation; use-case errors raised inside ``fn`` still commit what was written."""
    try:
        with transaction() as cursor:
            try:
                data = fn(cursor)
            except (ShiftError, InstructorError) as exc:
                logger.warning("%s partially failed: %s", label, exc)
                return action_error(str(exc), 409 if str(exc) == DUPLICATE_SHIFT else 500)
    except ForbiddenError as exc:
        return action_error(str(exc), 403)
    except ValidationError as exc:
        return action_error(str(exc), 400)
    except NotFoundError:
        return action_error(NOT_FOUND, 404)
    except InvitationError as exc:
        return action_error(str(exc), 400)
    except psycopg2.IntegrityError as exc:
        logger.warning("%s rejected by constraint: %s", label, exc)
        return action_error(f"{label} failed: {exc.pgerror or exc}".strip(), 400)
    except Exception as exc:
        logger.exception("%s failed", label)
        return action_error(str(exc) or INTERNAL_ERROR, 500)
    return action_ok(data, status)


def _method_not_allowed(event: dict) -> dict:
    if get_method(event) == "GET":
        return api_error("method not allowed", 405)
    return action_error("method not allowed", 405)


# Departments

def handle_departments(event: dict) -> dict:
    if get_method(event) != "GET":
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_auth)
    if denied:
        return denied
    return _read(
        "Department list",
        lambda cursor: [department_to_ui(d) for d in repositories.list_departments(cursor, active_only=True)],
    )


def handle_department_detail(event: dict, department_id: str) -> dict:
    if get_method(event) != "GET":
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_auth)
    if denied:
        return denied

    def load(cursor):
        row = repositories.get_department(cursor, department_id)
        return department_to_ui(row) if row else None

    return _read("Department fetch", load)


# Certifications

def handle_certifications(event: dict) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied
        return _read(
            "Certification list",
            lambda cursor: [certification_to_ui(c) for c in repositories.list_certifications(cursor)],
        )

    if method == "POST":
        _, denied = _authorize(event, require_manager_auth, action_error)
        if denied:
            return denied
        body = parse_json_body(event)

        def create(cursor):
            data = parse_certification_input(body)
            certification_id = repositories.create_certification(cursor, **data)
            return certification_to_ui(repositories.get_certification(cursor, certification_id))

        return _mutate("Certification create", create, status=201)

    return _method_not_allowed(event)


def handle_certification_detail(event: dict, certification_id: str) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied

        def load(cursor):
            row = repositories.get_certification(cursor, certification_id)
            return certification_to_ui(row) if row else None

        return _read("Certification fetch", load)

    if method not in ("PUT", "DELETE"):
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_manager_auth, action_error)
    if denied:
        return denied

    if method == "PUT":
        body = parse_json_body(event)

        def update(cursor):
            data = parse_certification_input(body)
            repositories.update_certification(cursor, certification_id, **data)
            return certification_to_ui(repositories.get_certification(cursor, certification_id))

        return _mutate("Certification update", update)

    return _mutate(
        "Certification delete",
        lambda cursor: repositories.deactivate_certification(cursor, certification_id),
    )


# Instructors

def handle_instructors(event: dict) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied
        params = get_query_params(event)
        status = (params.get("status") or "").strip().upper() or None
        if status and status not in INSTRUCTOR_STATUSES:
            return api_error(f"status must be one of {', '.join(INSTRUCTOR_STATUSES)}", 400)
        keyword = (params.get("q") or params.get("keyword") or "").strip() or None
        return _read(
            "Instructor list",
            lambda cursor: instructors.list_instructors(cursor, status=status, keyword=keyword),
        )

    if method == "POST":
        _, denied = _authorize(event, require_manager_auth, action_error)
        if denied:
            return denied
        body = parse_json_body(event)
        return _mutate(
            "Instructor create",
            lambda cursor: instructors.create_instructor(cursor, parse_instructor_input(body)),
            status=201,
        )

    return _method_not_allowed(event)


def handle_instructor_detail(event: dict, instructor_id: str) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied
        return _read("Instructor fetch", lambda cursor: instructors.load_instructor(cursor, instructor_id))

    if method not in ("PUT", "DELETE"):
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_manager_auth, action_error)
    if denied:
        return denied

    if method == "PUT":
        body = parse_json_body(event)
        return _mutate(
            "Instructor update",
            lambda cursor: instructors.update_instructor(cursor, instructor_id, parse_instructor_input(body)),
        )

    return _mutate("Instructor delete", lambda cursor: instructors.delete_instructor(cursor, instructor_id))


# Shift types

def handle_shift_types(event: dict) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied
        return _read(
            "Shift type list",
            lambda cursor: [shift_type_to_ui(t) for t in repositories.list_shift_types(cursor)],
        )

    if method == "POST":
        _, denied = _authorize(event, require_manager_auth, action_error)
        if denied:
            return denied
        body = parse_json_body(event)

        def create(cursor):
            data = parse_shift_type_input(body)
            shift_type_id = repositories.create_shift_type(cursor, data["name"], data["is_active"])
            return shift_type_to_ui(repositories.get_shift_type(cursor, shift_type_id))

        return _mutate("Shift type create", create, status=201)

    return _method_not_allowed(event)


def handle_shift_type_detail(event: dict, shift_type_id: str) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied

        def load(cursor):
            row = repositories.get_shift_type(cursor, shift_type_id)
            return shift_type_to_ui(row) if row else None

        return _read("Shift type fetch", load)

    if method != "PUT":
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_manager_auth, action_error)
    if denied:
        return denied
    body = parse_json_body(event)

    def update(cursor):
        data = parse_shift_type_input(body)
        repositories.update_shift_type(cursor, shift_type_id, data["name"], data["is_active"])
        return shift_type_to_ui(repositories.get_shift_type(cursor, shift_type_id))

    return _mutate("Shift type update", update)


# Shifts

def _parse_year_month(params: dict) -> tuple[int, int]:
    try:
        year = int(params["year"])
        month = int(params["month"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError("year and month must be integers") from exc
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise ValidationError("year must be 1-9999 and month 1-12")
    return year, month


def handle_shifts(event: dict) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied
        params = get_query_params(event)
        department_id = params.get("departmentId") or None

        def load(cursor):
            if params.get("year") or params.get("month"):
                year, month = _parse_year_month(params)
                return shifts.list_month(cursor, year, month, department_id)
            week = params.get("week") or get_today_local_date()
            return shifts.list_week(cursor, require_date_string(week, "week"), department_id)

        return _read("Shift list", load)

    if method == "POST":
        _, denied = _authorize(event, require_manager_auth, action_error)
        if denied:
            return denied
        body = parse_json_body(event)
        return _mutate(
            "Shift create",
            lambda cursor: shifts.create_shift(cursor, parse_create_shift_input(body)),
            status=201,
        )

    return _method_not_allowed(event)


def handle_shift_detail(event: dict, shift_id: str) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_auth)
        if denied:
            return denied
        return _read("Shift fetch", lambda cursor: shifts.load_shift(cursor, shift_id))

    if method not in ("PUT", "DELETE"):
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_manager_auth, action_error)
    if denied:
        return denied

    if method == "PUT":
        body = parse_json_body(event)
        return _mutate(
            "Shift update",
            lambda cursor: shifts.update_shift(cursor, shift_id, parse_update_shift_input(body)),
        )

    return _mutate("Shift delete", lambda cursor: shifts.delete_shift(cursor, shift_id))


def handle_shift_day(event: dict) -> dict:
    if get_method(event) != "GET":
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_manager_auth)
    if denied:
        return denied

    params = get_query_params(event)
    ok, _, error = validate_required_params(params, ["date"])
    if not ok:
        return api_error(error, 400)
    ok, _, error = validate_date_string(params["date"])
    if not ok:
        return api_error(error, 400)

    return _read(
        "Day shift data",
        lambda cursor: shifts.build_day_shift_data(cursor, params["date"], params.get("departmentId") or None),
    )


def handle_shift_edit_data(event: dict) -> dict:
    if get_method(event) != "GET":
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_manager_auth)
    if denied:
        return denied

    params = get_query_params(event)
    ok, _, error = validate_required_params(params, ["date", "departmentId", "shiftTypeId"])
    if not ok:
        return api_error(error, 400)
    ok, _, error = validate_date_string(params["date"])
    if not ok:
        return api_error(error, 400)

    # An absent shift is a valid answer here, so the envelope is built directly.
    try:
        with transaction() as cursor:
            data = shifts.build_edit_data(cursor, params["date"], params["departmentId"], params["shiftTypeId"])
    except Exception:
        logger.exception("Shift edit data failed")
        return api_error(INTERNAL_ERROR, 500)
    return api_ok(data)


# Users

def handle_users(event: dict) -> dict:
    if get_method(event) != "GET":
        return _method_not_allowed(event)
    _, denied = _authorize(event, require_admin_auth)
    if denied:
        return denied
    return _read("User list", lambda cursor: [user_to_ui(u) for u in repositories.list_users(cursor)])


def handle_user_detail(event: dict, user_id: str) -> dict:
    if get_method(event) != "PUT":
        return _method_not_allowed(event)
    actor, denied = _authorize(event, require_admin_auth, action_error)
    if denied:
        return denied
    body = parse_json_body(event)

    def update(cursor):
        updates = parse_user_update_input(body)
        if user_id == actor["id"] and (updates.get("role", "ADMIN") != "ADMIN" or updates.get("is_active") is False):
            raise ValidationError("自分自身の権限や有効状態は変更できません。")
        user = repositories.update_user(cursor, user_id, updates)
        logger.info("User %s updated by %s: %s", user_id, actor["id"], sorted(updates))
        return user_to_ui(user)

    return _mutate("User update", update)


# Invitations

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def handle_invitations(event: dict) -> dict:
    method = get_method(event)
    if method == "GET":
        _, denied = _authorize(event, require_manager_auth)
        if denied:
            return denied

        def load(cursor):
            active = repositories.get_active_invitation_token(cursor, _utcnow())
            return {
                "active": invitation_to_ui(active) if active else None,
                "history": [invitation_to_ui(row) for row in repositories.list_invitation_tokens(cursor)],
            }

        return _read("Invitation list", load)

    if method == "POST":
        actor, denied = _authorize(event, require_manager_auth, action_error)
        if denied:
            return denied
        body = parse_json_body(event)

        def create(cursor):
            data = parse_create_invitation_input(body)
            if data["role"] == "MANAGER" and actor["role"] != "ADMIN":
                raise ForbiddenError(MANAGER_INVITE_FORBIDDEN)
            invitation = create_invitation_token(
                cursor,
                created_by=actor["id"],
                expires_at=resolve_expires_at(data["expires_at"]),
                description=data["description"],
                role=data["role"],
                max_uses=data["max_uses"],
            )
            return {
                "token": invitation["token"],
                "url": generate_invitation_url(invitation["token"], get_app_base_url()),
                "expiresAt": invitation["expires_at"],
                "role": invitation["role"],
                "maxUses": invitation.get("max_uses"),
            }

        return _mutate("Invitation create", create, status=201)

    return _method_not_allowed(event)


def handle_invitation_detail(event: dict, token: str) -> dict:
    if get_method(event) != "DELETE":
        return _method_not_allowed(event)
    actor, denied = _authorize(event, require_manager_auth, action_error)
    if denied:
        return denied
    return _mutate(
        "Invitation deactivate",
        lambda cursor: deactivate_invitation_token(cursor, token, actor["id"]),
    )


def handle_invitation_accept(event: dict) -> dict:
    if get_method(event) != "POST":
        return _method_not_allowed(event)
    body = parse_json_body(event)

    def accept(cursor):
        data = parse_accept_invitation_input(body)
        return user_to_ui(accept_invitation(cursor, **data))

    return _mutate("Invitation accept", accept, status=201)


def handle_invitation_verify(event: dict, token: str) -> dict:
    if get_method(event) != "GET":
        return _method_not_allowed(event)
    try:
        with transaction() as cursor:
            invitation = validate_invitation_token(cursor, token)
    except InvitationError as exc:
        return api_ok({"valid": False, "error": str(exc)})
    except Exception:
        logger.exception("Invitation verify failed")
        return api_error(INTERNAL_ERROR, 500)
    return api_ok(
        {
            "valid": True,
            "description": invitation.get("description"),
            "role": invitation.get("role") or "MEMBER",
            "expiresAt": invitation["expires_at"],
        }
    )
