#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from fuyugyo import repositories  # noqa: E402
from fuyugyo.db import transaction  # noqa: E402

DEPARTMENTS = [
    ("ski", "スキー", "スキー部門"),
    ("snowboard", "スノーボード", "スノーボード部門"),
]

SHIFT_TYPES = ["一般レッスン", "団体レッスン", "バッジテスト", "県連事業"]

# (department code, name, short name, organization)
CERTIFICATIONS = [
    ("ski", "SAJ スキー準指導員", "準指導員", "SAJ"),
    ("ski", "SAJ スキー指導員", "指導員", "SAJ"),
    ("ski", "SIA スキー教師", "SIA教師", "SIA"),
    ("snowboard", "SAJ スノーボード準指導員", "準指導員", "SAJ"),
    ("snowboard", "SAJ スノーボード指導員", "指導員", "SAJ"),
    ("snowboard", "JSBA スノーボードインストラクター", "JSBA", "JSBA"),
]


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed departments, shift types, certifications and the first admin.")
    parser.add_argument("--admin-line-user-id", help="LINE user id to register as the first ADMIN.")
    parser.add_argument("--admin-name", default="管理者", help="Display name for the first ADMIN.")
    parser.add_argument("--yes", action="store_true", help="Actually write (without this: dry-run).")
    args = parser.parse_args()

    print(f"Departments: {', '.join(code for code, _, _ in DEPARTMENTS)}")
    print(f"Shift types: {', '.join(SHIFT_TYPES)}")
    print(f"Certifications: {len(CERTIFICATIONS)}")
    if args.admin_line_user_id:
        print(f"Admin: {args.admin_line_user_id} ({args.admin_name})")

    if not args.yes:
        print("Dry-run: add --yes to write.")
        return 0

    with transaction() as cursor:
        department_ids = {
            code: repositories.upsert_department(cursor, code, name, description)
            for code, name, description in DEPARTMENTS
        }

        existing_types = {row["name"] for row in repositories.list_shift_types(cursor)}
        created_types = 0
        for name in SHIFT_TYPES:
            if name not in existing_types:
                repositories.create_shift_type(cursor, name)
                created_types += 1

        existing_certs = {
            (row["department_id"], row["name"]) for row in repositories.list_certifications(cursor, active_only=False)
        }
        created_certs = 0
        for code, name, short_name, organization in CERTIFICATIONS:
            department_id = department_ids[code]
            if (department_id, name) in existing_certs:
                continue
            repositories.create_certification(cursor, department_id, name, short_name, organization, None)
            created_certs += 1

        admin_created = False
        if args.admin_line_user_id and not repositories.get_user_by_line_id(cursor, args.admin_line_user_id):
            repositories.create_user(cursor, args.admin_line_user_id, args.admin_name, role="ADMIN")
            admin_created = True

    print(f"Created shift types: {created_types}")
    print(f"Created certifications: {created_certs}")
    if args.admin_line_user_id:
        print(f"Admin created: {admin_created}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
