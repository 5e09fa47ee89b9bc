from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from fuyugyo.dates import parse_local_date, validate_date_format

INSTRUCTOR_STATUSES = ("ACTIVE", "INACTIVE", "RETIRED")
USER_ROLES = ("ADMIN", "MANAGER", "MEMBER")
INVITATION_ROLES = ("MANAGER", "MEMBER")

MAX_NAME_LENGTH = 50
MAX_NOTES_LENGTH = 1000
MAX_DESCRIPTION_LENGTH = 200


class ValidationError(ValueError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


def _get(body: dict, *keys: str) -> Any:
    for key in keys:
        if key in body:
            return body[key]
    return None


def require_string(value: Any, field: str, max_length: int | None = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field)
    trimmed = value.strip()
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field)
    return trimmed


def require_id(value: Any, field: str = "id") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("ID is required", field)
    return value.strip()


def optional_string(value: Any, field: str = "value", max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field)
    trimmed = value.strip()
    if not trimmed:
        return None
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field)
    return trimmed


def coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return default


def coerce_str_list(value: Any, field: str = "ids") -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list", field)
    out: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"{field} must contain non-empty strings", field)
        if item.strip() not in out:
            out.append(item.strip())
    return out


def require_date_string(value: Any, field: str = "date") -> str:
    if not isinstance(value, str):
        raise ValidationError("Invalid date format. Expected YYYY-MM-DD", field)
    error = validate_date_format(value)
    if error:
        raise ValidationError(error, field)
    return value


def instructor_status(value: Any, default: str = "ACTIVE") -> str:
    if value is None or value == "":
        return default
    if value not in INSTRUCTOR_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(INSTRUCTOR_STATUSES)}", "status")
    return value


def parse_datetime(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError) as exc:
            raise ValidationError(f"{field} must be an ISO 8601 datetime", field) from exc
    else:
        raise ValidationError(f"{field} must be an ISO 8601 datetime", field)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_date_string(value: str) -> tuple[bool, Any, str | None]:
    try:
        parsed = parse_local_date(value)
    except (TypeError, ValueError):
        return False, None, f'Invalid date format: expected YYYY-MM-DD, got "{value}"'
    return True, parsed, None


def validate_required_params(params: dict[str, Any], required_keys: list[str]) -> tuple[bool, list[str], str | None]:
    missing = [key for key in required_keys if not params.get(key)]
    if missing:
        return False, missing, f"Missing required parameters: {', '.join(missing)}"
    return True, [], None


def parse_instructor_input(body: dict) -> dict:
    return {
        "last_name": require_string(_get(body, "lastName", "last_name"), "lastName", MAX_NAME_LENGTH),
        "first_name": require_string(_get(body, "firstName", "first_name"), "firstName", MAX_NAME_LENGTH),
        "last_name_kana": optional_string(_get(body, "lastNameKana", "last_name_kana"), "lastNameKana", MAX_NAME_LENGTH),
        "first_name_kana": optional_string(_get(body, "firstNameKana", "first_name_kana"), "firstNameKana", MAX_NAME_LENGTH),
        "status": instructor_status(_get(body, "status")),
        "notes": optional_string(_get(body, "notes"), "notes", MAX_NOTES_LENGTH),
        "certification_ids": coerce_str_list(_get(body, "certificationIds", "certification_ids"), "certificationIds"),
    }


def parse_certification_input(body: dict) -> dict:
    return {
        "department_id": require_id(_get(body, "departmentId", "department_id"), "departmentId"),
        "name": require_string(_get(body, "name"), "name", MAX_NAME_LENGTH * 2),
        "short_name": require_string(_get(body, "shortName", "short_name"), "shortName", MAX_NAME_LENGTH),
        "organization": require_string(_get(body, "organization"), "organization", MAX_NAME_LENGTH * 2),
        "description": optional_string(_get(body, "description"), "description", MAX_NOTES_LENGTH),
        "is_active": coerce_bool(_get(body, "isActive", "is_active"), default=True),
    }


def parse_shift_type_input(body: dict) -> dict:
    return {
        "name": require_string(_get(body, "name"), "name", MAX_NAME_LENGTH),
        "is_active": coerce_bool(_get(body, "isActive", "is_active"), default=True),
    }


def parse_create_shift_input(body: dict) -> dict:
    return {
        "date": require_date_string(_get(body, "date")),
        "department_id": require_id(_get(body, "departmentId", "department_id"), "departmentId"),
        "shift_type_id": require_id(_get(body, "shiftTypeId", "shift_type_id"), "shiftTypeId"),
        "description": optional_string(_get(body, "description"), "description", MAX_NOTES_LENGTH),
        "force": coerce_bool(_get(body, "force"), default=False),
        "assigned_instructor_ids": coerce_str_list(
            _get(body, "assignedInstructorIds", "assigned_instructor_ids"), "assignedInstructorIds"
        ),
    }


def parse_update_shift_input(body: dict) -> dict:
    raw_ids = _get(body, "assignedInstructorIds", "assigned_instructor_ids")
    return {
        "description": optional_string(_get(body, "description"), "description", MAX_NOTES_LENGTH),
        "assigned_instructor_ids": None if raw_ids is None else coerce_str_list(raw_ids, "assignedInstructorIds"),
    }


def parse_create_invitation_input(body: dict) -> dict:
    raw_expires = _get(body, "expiresAt", "expires_at")
    role = _get(body, "role") or "MEMBER"
    if role not in INVITATION_ROLES:
        raise ValidationError(f"role must be one of {', '.join(INVITATION_ROLES)}", "role")
    max_uses = _get(body, "maxUses", "max_uses")
    if max_uses is not None:
        if isinstance(max_uses, bool) or not isinstance(max_uses, int) or max_uses < 1:
            raise ValidationError("maxUses must be a positive integer", "maxUses")
    return {
        "description": optional_string(_get(body, "description"), "description", MAX_DESCRIPTION_LENGTH),
        "expires_at": parse_datetime(raw_expires, "expiresAt") if raw_expires else None,
        "role": role,
        "max_uses": max_uses,
    }


def parse_accept_invitation_input(body: dict) -> dict:
    return {
        "token": require_string(_get(body, "token"), "token"),
        "line_user_id": require_string(_get(body, "lineUserId", "line_user_id"), "lineUserId"),
        "display_name": require_string(_get(body, "displayName", "display_name"), "displayName", MAX_NAME_LENGTH * 2),
        "picture_url": optional_string(_get(body, "pictureUrl", "picture_url"), "pictureUrl"),
    }


def parse_user_update_input(body: dict) -> dict:
    updates: dict[str, Any] = {}
    role = _get(body, "role")
    if role is not None:
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}", "role")
        updates["role"] = role
    is_active = _get(body, "isActive", "is_active")
    if is_active is not None:
        if not isinstance(is_active, bool):
            raise ValidationError("isActive must be boolean", "isActive")
        updates["is_active"] = is_active
    if "instructorId" in body or "instructor_id" in body:
        updates["instructor_id"] = optional_string(_get(body, "instructorId", "instructor_id"), "instructorId")
    if not updates:
        raise ValidationError("Nothing to update")
    return updates
