"""Invitation-token onboarding.

Only one invitation is active at a time: creating a new one deactivates the
rest in the same transaction. Accepting an invitation consumes one use with
a guarded UPDATE, so two people racing on the last use cannot both register.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

from dateutil.relativedelta import relativedelta

from fuyugyo import repositories
from fuyugyo.config import get_log_level

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())

TOKEN_PREFIX = "inv_"
TOKEN_BYTES = 32
DEFAULT_EXPIRY_DAYS = 7
MAX_EXPIRY_MONTHS = 1

STATUS_VALID = "有効"
STATUS_EXPIRED = "期限切れ"
STATUS_INACTIVE = "無効"


class InvitationError(RuntimeError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token() -> str:
    return f"{TOKEN_PREFIX}{secrets.token_urlsafe(TOKEN_BYTES)}"


def generate_invitation_url(token: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/login?invite={quote(token, safe='')}"


def resolve_expires_at(expires_at: datetime | None, now: datetime | None = None) -> datetime:
    current = now or _utcnow()
    resolved = expires_at or current + timedelta(days=DEFAULT_EXPIRY_DAYS)
    if resolved <= current:
        raise InvitationError("有効期限は未来の日時を指定してください。")
    if resolved > current + relativedelta(months=MAX_EXPIRY_MONTHS):
        raise InvitationError("有効期限は1ヶ月以内で指定してください。")
    return resolved


def create_invitation_token(cursor, created_by: str, expires_at: datetime, description: str | None = None,
                            role: str = "MEMBER", max_uses: int | None = None) -> dict:
    repositories.lock_invitation_tokens(cursor)
    replaced = repositories.deactivate_active_invitation_tokens(cursor)
    invitation = repositories.insert_invitation_token(
        cursor,
        token=generate_token(),
        created_by=created_by,
        expires_at=expires_at,
        description=description,
        role=role,
        max_uses=max_uses,
    )
    logger.info("Invitation created by %s (replaced %d active)", created_by, replaced)
    return invitation


def deactivate_invitation_token(cursor, token: str, actor_id: str) -> None:
    if not repositories.deactivate_invitation_token(cursor, token):
        raise InvitationError("招待トークンが見つかりません。")
    logger.info("Invitation deactivated by %s", actor_id)


def validate_invitation_token(cursor, token: str, now: datetime | None = None) -> dict:
    current = now or _utcnow()
    if not token or not isinstance(token, str) or not token.startswith(TOKEN_PREFIX):
        raise InvitationError("招待トークンの形式が正しくありません。")

    invitation = repositories.get_invitation_token(cursor, token)
    if not invitation:
        raise InvitationError("招待トークンが見つかりません。")
    if not invitation["is_active"]:
        raise InvitationError("この招待トークンは無効化されています。")
    if invitation["expires_at"] <= current:
        raise InvitationError("招待トークンの有効期限が切れています。")
    max_uses = invitation.get("max_uses")
    if max_uses is not None and invitation["used_count"] >= max_uses:
        raise InvitationError("招待トークンの使用回数上限に達しています。")
    return invitation


def accept_invitation(cursor, token: str, line_user_id: str, display_name: str,
                      picture_url: str | None = None, now: datetime | None = None) -> dict:
    current = now or _utcnow()
    invitation = validate_invitation_token(cursor, token, now=current)

    if repositories.get_user_by_line_id(cursor, line_user_id):
        raise InvitationError("このユーザーは既に登録されています。")

    if not repositories.consume_invitation_token(cursor, token, current, invitation.get("max_uses")):
        raise InvitationError(
            "招待トークンが使用できなくなりました。既に使用されたか、有効期限が切れた可能性があります。"
        )

    user = repositories.create_user(
        cursor,
        line_user_id=line_user_id,
        display_name=display_name,
        picture_url=picture_url,
        role=invitation.get("role") or "MEMBER",
    )
    logger.info("User %s registered via invitation", user["id"])
    return user


def is_invitation_expired(invitation: dict, now: datetime | None = None) -> bool:
    expires_at = invitation.get("expires_at")
    if not expires_at:
        return False
    return expires_at < (now or _utcnow())


def is_invitation_valid(invitation: dict, now: datetime | None = None) -> bool:
    return bool(invitation.get("is_active")) and not is_invitation_expired(invitation, now=now)


def get_invitation_status_label(invitation: dict, now: datetime | None = None) -> str:
    if not invitation.get("is_active"):
        return STATUS_INACTIVE
    if is_invitation_expired(invitation, now=now):
        return STATUS_EXPIRED
    return STATUS_VALID
