"""Shift scheduling use cases: create/update/delete and the day/week/month views."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

import psycopg2

from fuyugyo import repositories
from fuyugyo.config import get_log_level
from fuyugyo.dates import get_month_range, get_week_dates, get_week_end_date, get_week_start_date, parse_local_date
from fuyugyo.presenters import (
    certification_to_ui,
    department_to_ui,
    get_department_type,
    instructor_display_name,
    instructor_display_name_kana,
    shift_to_ui,
    shift_type_to_ui,
)

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())

DUPLICATE_SHIFT = "DUPLICATE_SHIFT"


class ShiftError(RuntimeError):
    pass


def _assign_instructors(cursor, shift_id: str, instructor_ids: list[str], operation: str) -> str | None:
    """Insert assignments under a savepoint; on failure keep the shift and return a message."""
    if not instructor_ids:
        return None
    cursor.execute("SAVEPOINT shift_assignments")
    try:
        repositories.add_shift_assignments(cursor, shift_id, instructor_ids)
    except psycopg2.Error as exc:
        cursor.execute("ROLLBACK TO SAVEPOINT shift_assignments")
        logger.warning("Assignment insert failed for shift %s: %s", shift_id, exc)
        return f"シフトを{operation}しましたが、インストラクターの割り当てに失敗しました: {exc}"
    cursor.execute("RELEASE SAVEPOINT shift_assignments")
    return None


def load_shift(cursor, shift_id: str) -> dict | None:
    row = repositories.get_shift(cursor, shift_id)
    if not row:
        return None
    assignments = repositories.list_shift_assignments(cursor, [shift_id])
    return shift_to_ui(row, assignments.get(shift_id))


def create_shift(cursor, data: dict) -> dict:
    existing = repositories.find_shift(cursor, data["date"], data["department_id"], data["shift_type_id"])
    if existing and not data.get("force"):
        raise ShiftError(DUPLICATE_SHIFT)

    if existing:
        shift_id = existing["id"]
        repositories.update_shift_description(cursor, shift_id, data.get("description") or existing.get("description"))
        repositories.delete_shift_assignments(cursor, shift_id)
        operation = "更新"
    else:
        shift_id = repositories.create_shift(
            cursor, data["date"], data["department_id"], data["shift_type_id"], data.get("description")
        )
        operation = "作成"

    error = _assign_instructors(cursor, shift_id, data.get("assigned_instructor_ids") or [], operation)
    if error:
        raise ShiftError(error)
    return load_shift(cursor, shift_id)


def update_shift(cursor, shift_id: str, data: dict) -> dict:
    repositories.update_shift_description(cursor, shift_id, data.get("description"))
    instructor_ids = data.get("assigned_instructor_ids")
    if instructor_ids is not None:
        repositories.delete_shift_assignments(cursor, shift_id)
        error = _assign_instructors(cursor, shift_id, instructor_ids, "更新")
        if error:
            raise ShiftError(error)
    return load_shift(cursor, shift_id)


def delete_shift(cursor, shift_id: str) -> None:
    # Assignments are removed by ON DELETE CASCADE.
    repositories.delete_shift(cursor, shift_id)


def _shifts_with_assignments(cursor, start: str, end: str, department_id: str | None = None) -> list[dict]:
    rows = repositories.list_shifts_between(cursor, start, end, department_id)
    assignments = repositories.list_shift_assignments(cursor, [row["id"] for row in rows])
    return [shift_to_ui(row, assignments.get(row["id"])) for row in rows]


def _group_by_date(shifts: list[dict], dates: list[str]) -> list[dict[str, Any]]:
    by_date: dict[str, list[dict]] = {d: [] for d in dates}
    for shift in shifts:
        by_date.setdefault(shift["date"], []).append(shift)
    return [{"date": d, "shifts": by_date[d]} for d in dates]


def list_week(cursor, base_date: str, department_id: str | None = None) -> dict:
    start = get_week_start_date(base_date)
    end = get_week_end_date(base_date)
    shifts = _shifts_with_assignments(cursor, start, end, department_id)
    return {"start": start, "end": end, "days": _group_by_date(shifts, get_week_dates(base_date))}


def list_month(cursor, year: int, month: int, department_id: str | None = None) -> dict:
    start, end = get_month_range(year, month)
    first = parse_local_date(start)
    dates = [date(first.year, first.month, day).isoformat() for day in range(1, parse_local_date(end).day + 1)]
    shifts = _shifts_with_assignments(cursor, start, end, department_id)
    return {"start": start, "end": end, "days": _group_by_date(shifts, dates)}


def _available_instructors(cursor, shifts: list[dict]) -> list[dict]:
    instructors = repositories.list_instructors(cursor, status="ACTIVE")
    certifications = repositories.list_instructor_certifications(cursor, [i["id"] for i in instructors])

    assigned: dict[str, list[dict]] = {}
    for shift in shifts:
        for assignment in shift["assignments"]:
            assigned.setdefault(assignment["instructorId"], []).append(
                {
                    "shiftId": shift["id"],
                    "departmentName": shift["department"]["name"],
                    "shiftTypeName": shift["shiftType"]["name"],
                }
            )

    result = []
    for instructor in instructors:
        certs = certifications.get(instructor["id"], [])
        department_codes = sorted({c["department_code"] for c in certs})
        info = assigned.get(instructor["id"], [])
        result.append(
            {
                "id": instructor["id"],
                "displayName": instructor_display_name(instructor),
                "displayNameKana": instructor_display_name_kana(instructor),
                "departmentCode": department_codes[0] if len(department_codes) == 1 else ",".join(department_codes),
                "assignedToShiftIds": [i["shiftId"] for i in info],
                "assignmentInfo": info,
                "certifications": [
                    {
                        "certificationId": c["id"],
                        "certificationName": c["name"],
                        "departmentCode": c["department_code"],
                    }
                    for c in certs
                ],
            }
        )
    return result


def build_day_shift_data(cursor, shift_date: str, preselected_department_id: str | None = None) -> dict:
    shifts = _shifts_with_assignments(cursor, shift_date, shift_date)
    slots = [
        {
            "id": shift["id"],
            "departmentId": shift["departmentId"],
            "shiftTypeId": shift["shiftTypeId"],
            "description": shift["description"] or "",
            "instructorIds": [a["instructorId"] for a in shift["assignments"]],
            "isEditing": False,
            "isNew": False,
        }
        for shift in shifts
    ]
    data: dict[str, Any] = {
        "date": shift_date,
        "shiftSlots": slots,
        "availableInstructors": _available_instructors(cursor, shifts),
        "departments": [
            {**department_to_ui(d), "type": get_department_type(d["code"])}
            for d in repositories.list_departments(cursor, active_only=True)
        ],
        "shiftTypes": [shift_type_to_ui(t) for t in repositories.list_shift_types(cursor) if t["is_active"]],
    }
    if preselected_department_id:
        data["preselectedDepartmentId"] = preselected_department_id
    return data


def build_edit_data(cursor, shift_date: str, department_id: str, shift_type_id: str) -> dict:
    existing = repositories.find_shift(cursor, shift_date, department_id, shift_type_id)
    shift = load_shift(cursor, existing["id"]) if existing else None
    assigned_ids = {a["instructorId"] for a in shift["assignments"]} if shift else set()

    instructors = repositories.list_instructors(cursor, status="ACTIVE")
    certifications = repositories.list_instructor_certifications(cursor, [i["id"] for i in instructors])
    return {
        "shift": shift,
        "instructors": [
            {
                "id": instructor["id"],
                "displayName": instructor_display_name(instructor),
                "displayNameKana": instructor_display_name_kana(instructor),
                "isAssigned": instructor["id"] in assigned_ids,
                "certifications": [certification_to_ui(c) for c in certifications.get(instructor["id"], [])],
            }
            for instructor in instructors
        ],
    }
