#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from fuyugyo import repositories  # noqa: E402
from fuyugyo.db import transaction  # noqa: E402
from fuyugyo.invitations import get_invitation_status_label, is_invitation_expired  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Deactivate invitation tokens whose expiry has passed.")
    parser.add_argument("--yes", action="store_true", help="Actually deactivate (without this: dry-run).")
    args = parser.parse_args()

    now = datetime.now(timezone.utc)
    with transaction() as cursor:
        rows = repositories.list_invitation_tokens(cursor, limit=500)
        stale = [r for r in rows if r["is_active"] and is_invitation_expired(r, now=now)]

        print(f"Active but expired tokens: {len(stale)}")
        for row in stale[:10]:
            print(f"- {row['token'][:12]}... expires_at={row['expires_at']} ({get_invitation_status_label(row, now=now)})")
        if len(stale) > 10:
            print(f"... ({len(stale) - 10} more)")

        if not args.yes:
            print("Dry-run: add --yes to deactivate.")
            return 0

        deactivated = repositories.deactivate_expired_invitation_tokens(cursor, now)
    print(f"Deactivated tokens: {deactivated}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
