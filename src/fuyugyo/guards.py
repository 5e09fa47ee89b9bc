from __future__ import annotations

import logging

from fuyugyo import repositories
from fuyugyo.config import get_log_level
from fuyugyo.db import transaction
from fuyugyo.http import bearer_token, get_cookie
from fuyugyo.sessions import verify_jwt

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())

AUTH_COOKIE_NAME = "auth-token"
MANAGER_ROLES = ("ADMIN", "MANAGER")


class AuthError(RuntimeError):
    status = 401


class ForbiddenError(AuthError):
    status = 403


def auth_token_from_event(event: dict) -> str | None:
    return get_cookie(event, AUTH_COOKIE_NAME) or bearer_token(event.get("headers") or {})


def has_role(user: dict, *roles: str) -> bool:
    return user.get("role") in roles


def authenticate(event: dict) -> dict:
    token = auth_token_from_event(event)
    if not token:
        raise AuthError("Authentication required")

    result = verify_jwt(token)
    if not result.success or not result.payload:
        raise AuthError(result.error or "Invalid token")

    # Role and active flag come from the database so revocations apply before the token expires.
    with transaction() as cursor:
        user = repositories.get_user(cursor, result.payload["userId"])
    if not user:
        raise AuthError("User not found")
    if not user["is_active"]:
        raise AuthError("User is not active")
    return user


def require_auth(event: dict) -> dict:
    return authenticate(event)


def require_manager_auth(event: dict) -> dict:
    user = authenticate(event)
    if not has_role(user, *MANAGER_ROLES):
        logger.warning("Manager access denied for user %s", user["id"])
        raise ForbiddenError("権限が不足しています。管理者またはマネージャーロールが必要です。")
    return user


def require_admin_auth(event: dict) -> dict:
    user = authenticate(event)
    if not has_role(user, "ADMIN"):
        logger.warning("Admin access denied for user %s", user["id"])
        raise ForbiddenError("権限が不足しています。管理者ロールが必要です。")
    return user
