from __future__ import annotations

import logging
from typing import Any

from fuyugyo import api, auth_routes
from fuyugyo.config import get_backend_build_version, get_log_level
from fuyugyo.http import api_error, get_method, get_path, response

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())

# Collection path -> (collection handler, detail handler).
_RESOURCES = {
    "departments": (api.handle_departments, api.handle_department_detail),
    "certifications": (api.handle_certifications, api.handle_certification_detail),
    "instructors": (api.handle_instructors, api.handle_instructor_detail),
    "shift-types": (api.handle_shift_types, api.handle_shift_type_detail),
    "shifts": (api.handle_shifts, api.handle_shift_detail),
    "users": (api.handle_users, api.handle_user_detail),
}

_ROUTES = {
    "/api/auth/line/login": auth_routes.handle_line_login,
    "/api/auth/line/callback": auth_routes.handle_line_callback,
    "/api/auth/logout": auth_routes.handle_logout,
    "/api/auth/me": auth_routes.handle_me,
    "/api/usecases/shifts/day": api.handle_shift_day,
    "/api/usecases/shifts/edit-data": api.handle_shift_edit_data,
    "/api/invitations": api.handle_invitations,
    "/api/invitations/accept": api.handle_invitation_accept,
}


def _route(event: dict, path: str) -> dict:
    handler = _ROUTES.get(path)
    if handler:
        return handler(event)

    if path.startswith("/api/invitations/"):
        parts = [p for p in path[len("/api/invitations/") :].split("/") if p]
        if len(parts) == 2 and parts[1] == "verify":
            return api.handle_invitation_verify(event, parts[0])
        if len(parts) == 1:
            return api.handle_invitation_detail(event, parts[0])
        return api_error("not found", 404)

    parts = [p for p in path[len("/api/") :].split("/") if p] if path.startswith("/api/") else []
    if parts and parts[0] in _RESOURCES:
        collection, detail = _RESOURCES[parts[0]]
        if len(parts) == 1:
            return collection(event)
        if len(parts) == 2:
            return detail(event, parts[1])

    return api_error("not found", 404)


def lambda_handler(event: dict, context: Any) -> dict:
    method = get_method(event)
    path = get_path(event).rstrip("/") or "/"

    if method == "OPTIONS":
        return response(None, status=204)

    if path == "/api/ping":
        return response({"ok": True})

    if path == "/api/version":
        return response({"backendBuildVersion": get_backend_build_version()})

    try:
        return _route(event, path)
    except Exception:
        logger.exception("Unhandled error for %s %s", method, path)
        return api_error("Internal server error", 500)
