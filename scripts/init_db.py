#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from fuyugyo.db import transaction  # noqa: E402

SCHEMA_PATH = ROOT / "src" / "fuyugyo" / "schema.sql"


def main() -> int:
    parser = argparse.ArgumentParser(description="Apply schema.sql to the database in DATABASE_URL.")
    parser.add_argument("--schema", default=str(SCHEMA_PATH), help="Path to the schema file.")
    parser.add_argument("--yes", action="store_true", help="Actually apply (without this: print the SQL).")
    args = parser.parse_args()

    sql = Path(args.schema).read_text(encoding="utf-8")
    statements = [s for s in sql.split(";") if s.strip()]
    print(f"Schema: {args.schema} ({len(statements)} statements)")

    if not args.yes:
        print(sql)
        print("Dry-run: add --yes to apply.")
        return 0

    with transaction() as cursor:
        cursor.execute(sql)
    print("Schema applied.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
