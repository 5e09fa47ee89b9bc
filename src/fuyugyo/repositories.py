from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fuyugyo.db import new_id


class NotFoundError(LookupError):
    pass


def _one(cursor) -> dict | None:
    row = cursor.fetchone()
    return dict(row) if row else None


def _all(cursor) -> list[dict]:
    return [dict(row) for row in cursor.fetchall()]


# Departments

def list_departments(cursor, active_only: bool = False) -> list[dict]:
    if active_only:
        cursor.execute("SELECT * FROM departments WHERE is_active ORDER BY code")
    else:
        cursor.execute("SELECT * FROM departments ORDER BY code")
    return _all(cursor)


def get_department(cursor, department_id: str) -> dict | None:
    cursor.execute("SELECT * FROM departments WHERE id = %s", (department_id,))
    return _one(cursor)


def upsert_department(cursor, code: str, name: str, description: str | None = None) -> str:
    cursor.execute(
        """
        INSERT INTO departments (id, code, name, description)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (code)
        DO UPDATE SET name = EXCLUDED.name, description = EXCLUDED.description, updated_at = NOW()
        RETURNING id
        """,
        (new_id(), code, name, description),
    )
    return cursor.fetchone()["id"]


# Certifications

_CERTIFICATION_SELECT = """
    SELECT c.*, d.code AS department_code, d.name AS department_name
    FROM certifications c
    JOIN departments d ON d.id = c.department_id
"""


def list_certifications(cursor, active_only: bool = True) -> list[dict]:
    where = "WHERE c.is_active" if active_only else ""
    cursor.execute(f"{_CERTIFICATION_SELECT} {where} ORDER BY c.name")
    return _all(cursor)


def get_certification(cursor, certification_id: str) -> dict | None:
    cursor.execute(f"{_CERTIFICATION_SELECT} WHERE c.id = %s", (certification_id,))
    return _one(cursor)


def create_certification(cursor, department_id: str, name: str, short_name: str, organization: str,
                         description: str | None, is_active: bool = True) -> str:
    cursor.execute(
        """
        INSERT INTO certifications (id, department_id, name, short_name, organization, description, is_active)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (new_id(), department_id, name, short_name, organization, description, is_active),
    )
    return cursor.fetchone()["id"]


def update_certification(cursor, certification_id: str, department_id: str, name: str, short_name: str,
                         organization: str, description: str | None, is_active: bool) -> None:
    cursor.execute(
        """
        UPDATE certifications
        SET department_id = %s, name = %s, short_name = %s, organization = %s,
            description = %s, is_active = %s, updated_at = NOW()
        WHERE id = %s
        """,
        (department_id, name, short_name, organization, description, is_active, certification_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError(f"Certification not found: {certification_id}")


def deactivate_certification(cursor, certification_id: str) -> None:
    cursor.execute(
        "UPDATE certifications SET is_active = FALSE, updated_at = NOW() WHERE id = %s",
        (certification_id,),
    )
    if cursor.rowcount == 0:
        raise NotFoundError(f"Certification not found: {certification_id}")


# Instructors

def list_instructors(cursor, status: str | None = None, keyword: str | None = None) -> list[dict]:
    clauses: list[str] = []
    params: list[Any] = []
    if status:
        clauses.append("status = %s")
        params.append(status)
    if keyword:
        like = f"%{keyword}%"
        clauses.append(
            "(last_name ILIKE %s OR first_name ILIKE %s OR last_name_kana ILIKE %s OR first_name_kana ILIKE %s)"
        )
        params.extend([like, like, like, like])
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    cursor.execute(
        f"SELECT * FROM instructors {where} ORDER BY last_name_kana NULLS LAST, first_name_kana NULLS LAST, last_name, first_name",
        tuple(params),
    )
    return _all(cursor)


def get_instructor(cursor, instructor_id: str) -> dict | None:
    cursor.execute("SELECT * FROM instructors WHERE id = %s", (instructor_id,))
    return _one(cursor)


def list_instructor_certifications(cursor, instructor_ids: list[str]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {instructor_id: [] for instructor_id in instructor_ids}
    if not instructor_ids:
        return grouped
    cursor.execute(
        """
        SELECT ic.instructor_id, c.id, c.name, c.short_name, c.organization,
               c.department_id, d.code AS department_code, d.name AS department_name
        FROM instructor_certifications ic
        JOIN certifications c ON c.id = ic.certification_id
        JOIN departments d ON d.id = c.department_id
        WHERE ic.instructor_id = ANY(%s)
        ORDER BY c.name
        """,
        (list(instructor_ids),),
    )
    for row in _all(cursor):
        grouped.setdefault(row.pop("instructor_id"), []).append(row)
    return grouped


def create_instructor(cursor, last_name: str, first_name: str, last_name_kana: str | None,
                      first_name_kana: str | None, status: str, notes: str | None) -> str:
    cursor.execute(
        """
        INSERT INTO instructors (id, last_name, first_name, last_name_kana, first_name_kana, status, notes)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (new_id(), last_name, first_name, last_name_kana, first_name_kana, status, notes),
    )
    return cursor.fetchone()["id"]


def update_instructor(cursor, instructor_id: str, last_name: str, first_name: str, last_name_kana: str | None,
                      first_name_kana: str | None, status: str, notes: str | None) -> None:
    cursor.execute(
        """
        UPDATE instructors
        SET last_name = %s, first_name = %s, last_name_kana = %s, first_name_kana = %s,
            status = %s, notes = %s, updated_at = NOW()
        WHERE id = %s
        """,
        (last_name, first_name, last_name_kana, first_name_kana, status, notes, instructor_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError(f"Instructor not found: {instructor_id}")


def set_instructor_status(cursor, instructor_id: str, status: str) -> None:
    cursor.execute(
        "UPDATE instructors SET status = %s, updated_at = NOW() WHERE id = %s",
        (status, instructor_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError(f"Instructor not found: {instructor_id}")


def delete_instructor_certifications(cursor, instructor_id: str) -> None:
    cursor.execute("DELETE FROM instructor_certifications WHERE instructor_id = %s", (instructor_id,))


def add_instructor_certifications(cursor, instructor_id: str, certification_ids: list[str]) -> None:
    for certification_id in certification_ids:
        cursor.execute(
            """
            INSERT INTO instructor_certifications (id, instructor_id, certification_id)
            VALUES (%s, %s, %s)
            """,
            (new_id(), instructor_id, certification_id),
        )


# Shift types

def list_shift_types(cursor) -> list[dict]:
    cursor.execute("SELECT * FROM shift_types ORDER BY is_active DESC, name ASC")
    return _all(cursor)


def get_shift_type(cursor, shift_type_id: str) -> dict | None:
    cursor.execute("SELECT * FROM shift_types WHERE id = %s", (shift_type_id,))
    return _one(cursor)


def create_shift_type(cursor, name: str, is_active: bool = True) -> str:
    cursor.execute(
        "INSERT INTO shift_types (id, name, is_active) VALUES (%s, %s, %s) RETURNING id",
        (new_id(), name, is_active),
    )
    return cursor.fetchone()["id"]


def update_shift_type(cursor, shift_type_id: str, name: str, is_active: bool) -> None:
    cursor.execute(
        "UPDATE shift_types SET name = %s, is_active = %s, updated_at = NOW() WHERE id = %s",
        (name, is_active, shift_type_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError(f"Shift type not found: {shift_type_id}")


# Shifts

_SHIFT_SELECT = """
    SELECT s.*, d.code AS department_code, d.name AS department_name,
           st.name AS shift_type_name, st.is_active AS shift_type_is_active
    FROM shifts s
    JOIN departments d ON d.id = s.department_id
    JOIN shift_types st ON st.id = s.shift_type_id
"""


def find_shift(cursor, shift_date: date | str, department_id: str, shift_type_id: str) -> dict | None:
    cursor.execute(
        f"{_SHIFT_SELECT} WHERE s.date = %s AND s.department_id = %s AND s.shift_type_id = %s",
        (shift_date, department_id, shift_type_id),
    )
    return _one(cursor)


def get_shift(cursor, shift_id: str) -> dict | None:
    cursor.execute(f"{_SHIFT_SELECT} WHERE s.id = %s", (shift_id,))
    return _one(cursor)


def list_shifts_between(cursor, start: date | str, end: date | str, department_id: str | None = None) -> list[dict]:
    params: list[Any] = [start, end]
    department_filter = ""
    if department_id:
        department_filter = "AND s.department_id = %s"
        params.append(department_id)
    cursor.execute(
        f"{_SHIFT_SELECT} WHERE s.date BETWEEN %s AND %s {department_filter} ORDER BY s.date, d.code, st.name",
        tuple(params),
    )
    return _all(cursor)


def list_shift_assignments(cursor, shift_ids: list[str]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {shift_id: [] for shift_id in shift_ids}
    if not shift_ids:
        return grouped
    cursor.execute(
        """
        SELECT sa.id, sa.shift_id, sa.instructor_id, sa.assigned_at,
               i.last_name, i.first_name, i.last_name_kana, i.first_name_kana, i.status, i.notes
        FROM shift_assignments sa
        JOIN instructors i ON i.id = sa.instructor_id
        WHERE sa.shift_id = ANY(%s)
        ORDER BY i.last_name_kana NULLS LAST, i.last_name, i.first_name
        """,
        (list(shift_ids),),
    )
    for row in _all(cursor):
        grouped.setdefault(row["shift_id"], []).append(row)
    return grouped


def create_shift(cursor, shift_date: date | str, department_id: str, shift_type_id: str,
                 description: str | None) -> str:
    cursor.execute(
        """
        INSERT INTO shifts (id, date, department_id, shift_type_id, description)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (new_id(), shift_date, department_id, shift_type_id, description),
    )
    return cursor.fetchone()["id"]


def update_shift_description(cursor, shift_id: str, description: str | None) -> None:
    cursor.execute(
        "UPDATE shifts SET description = %s, updated_at = NOW() WHERE id = %s",
        (description, shift_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError(f"Shift not found: {shift_id}")


def delete_shift(cursor, shift_id: str) -> None:
    cursor.execute("DELETE FROM shifts WHERE id = %s", (shift_id,))
    if cursor.rowcount == 0:
        raise NotFoundError(f"Shift not found: {shift_id}")


def delete_shift_assignments(cursor, shift_id: str) -> None:
    cursor.execute("DELETE FROM shift_assignments WHERE shift_id = %s", (shift_id,))


def add_shift_assignments(cursor, shift_id: str, instructor_ids: list[str]) -> None:
    for instructor_id in instructor_ids:
        cursor.execute(
            "INSERT INTO shift_assignments (id, shift_id, instructor_id) VALUES (%s, %s, %s)",
            (new_id(), shift_id, instructor_id),
        )


# Users

def get_user(cursor, user_id: str) -> dict | None:
    cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))
    return _one(cursor)


def get_user_by_line_id(cursor, line_user_id: str) -> dict | None:
    cursor.execute("SELECT * FROM users WHERE line_user_id = %s", (line_user_id,))
    return _one(cursor)


def list_users(cursor) -> list[dict]:
    cursor.execute(
        """
        SELECT * FROM users
        ORDER BY CASE role WHEN 'ADMIN' THEN 0 WHEN 'MANAGER' THEN 1 ELSE 2 END, created_at
        """
    )
    return _all(cursor)


def create_user(cursor, line_user_id: str, display_name: str, picture_url: str | None = None,
                role: str = "MEMBER") -> dict:
    cursor.execute(
        """
        INSERT INTO users (id, line_user_id, display_name, picture_url, role)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING *
        """,
        (new_id(), line_user_id, display_name, picture_url, role),
    )
    return dict(cursor.fetchone())


def update_user_profile(cursor, user_id: str, display_name: str, picture_url: str | None) -> None:
    cursor.execute(
        "UPDATE users SET display_name = %s, picture_url = %s, updated_at = NOW() WHERE id = %s",
        (display_name, picture_url, user_id),
    )


_USER_UPDATABLE = ("role", "is_active", "instructor_id")


def update_user(cursor, user_id: str, updates: dict[str, Any]) -> dict:
    fields = [key for key in _USER_UPDATABLE if key in updates]
    if not fields:
        raise ValueError("No updatable fields")
    assignments = ", ".join(f"{field} = %s" for field in fields)
    cursor.execute(
        f"UPDATE users SET {assignments}, updated_at = NOW() WHERE id = %s RETURNING *",
        (*[updates[field] for field in fields], user_id),
    )
    row = _one(cursor)
    if not row:
        raise NotFoundError(f"User not found: {user_id}")
    return row


# Invitation tokens

def lock_invitation_tokens(cursor) -> None:
    # Serializes concurrent creators until commit; plain reads are not blocked.
    cursor.execute("LOCK TABLE invitation_tokens IN SHARE ROW EXCLUSIVE MODE")


def deactivate_active_invitation_tokens(cursor) -> int:
    cursor.execute(
        "UPDATE invitation_tokens SET is_active = FALSE, updated_at = NOW() WHERE is_active"
    )
    return cursor.rowcount


def insert_invitation_token(cursor, token: str, created_by: str, expires_at: datetime,
                            description: str | None, role: str, max_uses: int | None) -> dict:
    cursor.execute(
        """
        INSERT INTO invitation_tokens (id, token, description, role, expires_at, max_uses, created_by)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING *
        """,
        (new_id(), token, description, role, expires_at, max_uses, created_by),
    )
    return dict(cursor.fetchone())


def get_invitation_token(cursor, token: str) -> dict | None:
    cursor.execute(
        """
        SELECT it.*, u.display_name AS creator_display_name, u.role AS creator_role
        FROM invitation_tokens it
        LEFT JOIN users u ON u.id = it.created_by
        WHERE it.token = %s
        """,
        (token,),
    )
    return _one(cursor)


def list_invitation_tokens(cursor, limit: int = 50) -> list[dict]:
    cursor.execute(
        """
        SELECT it.*, u.display_name AS creator_display_name, u.role AS creator_role
        FROM invitation_tokens it
        LEFT JOIN users u ON u.id = it.created_by
        ORDER BY it.created_at DESC
        LIMIT %s
        """,
        (limit,),
    )
    return _all(cursor)


def get_active_invitation_token(cursor, now: datetime) -> dict | None:
    cursor.execute(
        """
        SELECT it.*, u.display_name AS creator_display_name, u.role AS creator_role
        FROM invitation_tokens it
        LEFT JOIN users u ON u.id = it.created_by
        WHERE it.is_active AND it.expires_at > %s
        ORDER BY it.created_at DESC
        LIMIT 1
        """,
        (now,),
    )
    return _one(cursor)


def consume_invitation_token(cursor, token: str, now: datetime, max_uses: int | None) -> bool:
    """Increment ``used_count`` only while the token is still usable.

    The guard lives in the WHERE clause so concurrent acceptances cannot push
    the count past ``max_uses``; False means another request won the race or
    the token stopped being valid since it was read.
    """
    sql = """
        UPDATE invitation_tokens
        SET used_count = used_count + 1, updated_at = NOW()
        WHERE token = %s AND is_active AND expires_at > %s
    """
    params: list[Any] = [token, now]
    if max_uses is not None:
        sql += " AND used_count < %s"
        params.append(max_uses)
    cursor.execute(sql, tuple(params))
    return cursor.rowcount > 0


def deactivate_invitation_token(cursor, token: str) -> bool:
    cursor.execute(
        "UPDATE invitation_tokens SET is_active = FALSE, updated_at = NOW() WHERE token = %s",
        (token,),
    )
    return cursor.rowcount > 0


def deactivate_expired_invitation_tokens(cursor, now: datetime) -> int:
    cursor.execute(
        "UPDATE invitation_tokens SET is_active = FALSE, updated_at = NOW() WHERE is_active AND expires_at <= %s",
        (now,),
    )
    return cursor.rowcount
