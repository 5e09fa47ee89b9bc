from __future__ import annotations

import logging

import psycopg2

from fuyugyo import repositories
from fuyugyo.config import get_log_level
from fuyugyo.presenters import instructor_to_ui

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())


class InstructorError(RuntimeError):
    pass


def _link_certifications(cursor, instructor_id: str, certification_ids: list[str], prefix: str) -> None:
    if not certification_ids:
        return
    cursor.execute("SAVEPOINT instructor_certifications")
    try:
        repositories.add_instructor_certifications(cursor, instructor_id, certification_ids)
    except psycopg2.Error as exc:
        cursor.execute("ROLLBACK TO SAVEPOINT instructor_certifications")
        logger.warning("Certification link failed for instructor %s: %s", instructor_id, exc)
        raise InstructorError(f"{prefix}、資格の紐付けに失敗しました: {exc}") from exc
    cursor.execute("RELEASE SAVEPOINT instructor_certifications")


def load_instructor(cursor, instructor_id: str) -> dict | None:
    row = repositories.get_instructor(cursor, instructor_id)
    if not row:
        return None
    certifications = repositories.list_instructor_certifications(cursor, [instructor_id])
    return instructor_to_ui(row, certifications.get(instructor_id))


def list_instructors(cursor, status: str | None = None, keyword: str | None = None) -> list[dict]:
    rows = repositories.list_instructors(cursor, status=status, keyword=keyword)
    certifications = repositories.list_instructor_certifications(cursor, [r["id"] for r in rows])
    return [instructor_to_ui(row, certifications.get(row["id"])) for row in rows]


def create_instructor(cursor, data: dict) -> dict:
    instructor_id = repositories.create_instructor(
        cursor,
        last_name=data["last_name"],
        first_name=data["first_name"],
        last_name_kana=data.get("last_name_kana"),
        first_name_kana=data.get("first_name_kana"),
        status=data.get("status") or "ACTIVE",
        notes=data.get("notes"),
    )
    _link_certifications(cursor, instructor_id, data.get("certification_ids") or [], "インストラクターを作成しましたが")
    return load_instructor(cursor, instructor_id)


def update_instructor(cursor, instructor_id: str, data: dict) -> dict:
    repositories.update_instructor(
        cursor,
        instructor_id,
        last_name=data["last_name"],
        first_name=data["first_name"],
        last_name_kana=data.get("last_name_kana"),
        first_name_kana=data.get("first_name_kana"),
        status=data.get("status") or "ACTIVE",
        notes=data.get("notes"),
    )
    repositories.delete_instructor_certifications(cursor, instructor_id)
    _link_certifications(
        cursor, instructor_id, data.get("certification_ids") or [], "インストラクター情報を更新しましたが"
    )
    return load_instructor(cursor, instructor_id)


def delete_instructor(cursor, instructor_id: str) -> None:
    # Logical delete; assignments and history stay intact.
    repositories.set_instructor_status(cursor, instructor_id, "INACTIVE")
