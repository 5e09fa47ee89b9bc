from __future__ import annotations

from typing import Any

from fuyugyo.dates import format_local_date
from fuyugyo.invitations import get_invitation_status_label, is_invitation_valid

SHIFT_TYPE_SHORT_NAMES = {
    "スキーレッスン": "レッスン",
    "スノーボードレッスン": "レッスン",
    "スキー検定": "検定",
    "スノーボード検定": "検定",
    "県連事業": "県連",
    "月末イベント": "イベント",
}


def get_shift_type_short(name: str) -> str:
    return SHIFT_TYPE_SHORT_NAMES.get(name, name)


def get_department_type(code: str | None) -> str | None:
    """Map a department code or name to ``ski`` / ``snowboard``."""
    lowered = (code or "").lower()
    if "snowboard" in lowered or "スノーボード" in lowered:
        return "snowboard"
    if "ski" in lowered or "スキー" in lowered:
        return "ski"
    return None


def instructor_display_name(row: dict) -> str:
    return f"{row.get('last_name') or ''} {row.get('first_name') or ''}".strip()


def instructor_display_name_kana(row: dict) -> str:
    return f"{row.get('last_name_kana') or ''} {row.get('first_name_kana') or ''}".strip()


def _date_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return format_local_date(value)


def department_to_ui(row: dict) -> dict:
    return {
        "id": row["id"],
        "code": row["code"],
        "name": row["name"],
        "description": row.get("description"),
        "isActive": bool(row.get("is_active", True)),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def certification_to_ui(row: dict) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "shortName": row.get("short_name"),
        "organization": row.get("organization"),
        "description": row.get("description"),
        "isActive": bool(row.get("is_active", True)),
        "department": {
            "id": row.get("department_id"),
            "code": row.get("department_code"),
            "name": row.get("department_name"),
        },
    }


def instructor_to_ui(row: dict, certifications: list[dict] | None = None) -> dict:
    return {
        "id": row["id"],
        "lastName": row["last_name"],
        "firstName": row["first_name"],
        "lastNameKana": row.get("last_name_kana"),
        "firstNameKana": row.get("first_name_kana"),
        "displayName": instructor_display_name(row),
        "displayNameKana": instructor_display_name_kana(row),
        "status": row["status"],
        "notes": row.get("notes"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
        "certifications": [certification_to_ui(c) for c in (certifications or [])],
    }


def shift_type_to_ui(row: dict) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "shortName": get_shift_type_short(row["name"]),
        "isActive": bool(row.get("is_active", True)),
    }


def assignment_to_ui(row: dict) -> dict:
    return {
        "id": row["id"],
        "shiftId": row["shift_id"],
        "instructorId": row["instructor_id"],
        "assignedAt": row.get("assigned_at"),
        "instructor": {
            "id": row["instructor_id"],
            "lastName": row.get("last_name"),
            "firstName": row.get("first_name"),
            "lastNameKana": row.get("last_name_kana"),
            "firstNameKana": row.get("first_name_kana"),
            "displayName": instructor_display_name(row),
            "status": row.get("status"),
        },
    }


def shift_to_ui(row: dict, assignments: list[dict] | None = None) -> dict:
    assignments = assignments or []
    return {
        "id": row["id"],
        "date": _date_str(row["date"]),
        "departmentId": row["department_id"],
        "shiftTypeId": row["shift_type_id"],
        "description": row.get("description"),
        "department": {
            "id": row["department_id"],
            "code": row.get("department_code"),
            "name": row.get("department_name"),
            "type": get_department_type(row.get("department_code")),
        },
        "shiftType": {
            "id": row["shift_type_id"],
            "name": row.get("shift_type_name"),
            "shortName": get_shift_type_short(row.get("shift_type_name") or ""),
            "isActive": bool(row.get("shift_type_is_active", True)),
        },
        "assignedCount": len(assignments),
        "assignments": [assignment_to_ui(a) for a in assignments],
    }


def user_to_ui(row: dict) -> dict:
    return {
        "id": row["id"],
        "lineUserId": row["line_user_id"],
        "displayName": row["display_name"],
        "pictureUrl": row.get("picture_url"),
        "role": row["role"],
        "instructorId": row.get("instructor_id"),
        "isActive": bool(row.get("is_active", True)),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def invitation_to_ui(row: dict) -> dict:
    return {
        "token": row["token"],
        "description": row.get("description"),
        "role": row.get("role") or "MEMBER",
        "expiresAt": row.get("expires_at"),
        "isActive": bool(row.get("is_active")),
        "maxUses": row.get("max_uses"),
        "usageCount": row.get("used_count") or 0,
        "createdAt": row.get("created_at"),
        "createdBy": {
            "id": row.get("created_by"),
            "displayName": row.get("creator_display_name"),
            "role": row.get("creator_role"),
        },
        "isValid": is_invitation_valid(row),
        "statusLabel": get_invitation_status_label(row),
    }
