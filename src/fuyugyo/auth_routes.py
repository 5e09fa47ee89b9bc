"""LINE Login flow and session cookie endpoints."""
from __future__ import annotations

import logging
import secrets
from urllib.parse import quote, unquote, urlencode

import requests

from fuyugyo import repositories
from fuyugyo.config import get_app_base_url, get_jwt_expires_in, get_line_redirect_uri, get_log_level
from fuyugyo.db import transaction
from fuyugyo.guards import AUTH_COOKIE_NAME, AuthError, auth_token_from_event, authenticate
from fuyugyo.http import (
    api_error,
    build_cookie,
    clear_cookie,
    get_cookie,
    get_method,
    get_query_params,
    redirect,
    response,
)
from fuyugyo.invitations import InvitationError, accept_invitation
from fuyugyo.line_api import LineApiError, build_authorize_url, exchange_code_for_token, get_profile
from fuyugyo.presenters import user_to_ui
from fuyugyo.sessions import generate_jwt, parse_duration, payload_for_user, should_refresh_token

logger = logging.getLogger(__name__)
logger.setLevel(get_log_level())

STATE_COOKIE = "line-oauth-state"
INVITE_COOKIE = "line-oauth-invite"
REDIRECT_COOKIE = "line-oauth-redirect"
LOGIN_COOKIE_MAX_AGE = 10 * 60
DEFAULT_REDIRECT = "/"


def safe_redirect_path(value: str | None) -> str:
    """Only same-site absolute paths are accepted as post-login targets."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return DEFAULT_REDIRECT
    return value


def _login_error(code: str, message: str | None = None) -> dict:
    params = {"error": code}
    if message:
        params["message"] = message
    return redirect(
        f"{get_app_base_url()}/login?{urlencode(params)}",
        cookies=[clear_cookie(STATE_COOKIE), clear_cookie(INVITE_COOKIE), clear_cookie(REDIRECT_COOKIE)],
    )


def auth_cookie_for_user(user: dict) -> str:
    token = generate_jwt(payload_for_user(user))
    max_age = int(parse_duration(get_jwt_expires_in()).total_seconds())
    return build_cookie(AUTH_COOKIE_NAME, token, max_age=max_age)


def handle_line_login(event: dict) -> dict:
    if get_method(event) != "GET":
        return api_error("method not allowed", 405)

    params = get_query_params(event)
    invite = (params.get("invite") or "").strip()
    redirect_to = safe_redirect_path(params.get("redirect"))

    state = secrets.token_urlsafe(24)
    nonce = secrets.token_urlsafe(16)
    try:
        authorize_url = build_authorize_url(state, nonce, get_line_redirect_uri())
    except RuntimeError:
        logger.exception("LINE login is not configured")
        return _login_error("config")

    # Query values are percent-encoded so they cannot add cookie attributes.
    invite_cookie = (
        build_cookie(INVITE_COOKIE, quote(invite, safe=""), LOGIN_COOKIE_MAX_AGE) if invite else clear_cookie(INVITE_COOKIE)
    )
    cookies = [
        build_cookie(STATE_COOKIE, state, LOGIN_COOKIE_MAX_AGE),
        build_cookie(REDIRECT_COOKIE, quote(redirect_to, safe=""), LOGIN_COOKIE_MAX_AGE),
        invite_cookie,
    ]
    return redirect(authorize_url, cookies=cookies)


def handle_line_callback(event: dict) -> dict:
    if get_method(event) != "GET":
        return api_error("method not allowed", 405)

    params = get_query_params(event)
    if params.get("error"):
        logger.warning("LINE login denied: %s", params.get("error"))
        return _login_error("line_denied")

    code = params.get("code")
    state = params.get("state")
    expected_state = get_cookie(event, STATE_COOKIE)
    # Bytes, since compare_digest rejects non-ASCII str.
    if not code or not state or not expected_state or not secrets.compare_digest(
        state.encode(), expected_state.encode()
    ):
        logger.warning("LINE callback rejected: state mismatch")
        return _login_error("invalid_state")

    try:
        token = exchange_code_for_token(code, get_line_redirect_uri())
        access_token = token.get("access_token")
        if not access_token:
            raise LineApiError("Token exchange response missing access_token")
        profile = get_profile(access_token)
    except (RuntimeError, requests.RequestException):
        logger.exception("LINE login failed")
        return _login_error("line_auth_failed")

    line_user_id = str(profile["userId"])
    display_name = str(profile.get("displayName") or line_user_id)
    picture_url = profile.get("pictureUrl") or None
    invite = unquote(get_cookie(event, INVITE_COOKIE) or "")
    redirect_to = safe_redirect_path(unquote(get_cookie(event, REDIRECT_COOKIE) or ""))

    with transaction() as cursor:
        user = repositories.get_user_by_line_id(cursor, line_user_id)
        if user:
            if not user["is_active"]:
                return _login_error("inactive")
            repositories.update_user_profile(cursor, user["id"], display_name, picture_url)
            user = {**user, "display_name": display_name, "picture_url": picture_url}
        elif invite:
            try:
                user = accept_invitation(cursor, invite, line_user_id, display_name, picture_url)
            except InvitationError as exc:
                logger.warning("Invitation rejected during login: %s", exc)
                return _login_error("invitation_invalid", str(exc))
        else:
            return _login_error("not_registered")

    cookies = [
        auth_cookie_for_user(user),
        clear_cookie(STATE_COOKIE),
        clear_cookie(INVITE_COOKIE),
        clear_cookie(REDIRECT_COOKIE),
    ]
    return redirect(f"{get_app_base_url()}{redirect_to}", cookies=cookies)


def handle_logout(event: dict) -> dict:
    if get_method(event) != "POST":
        return api_error("method not allowed", 405)
    return response({"success": True, "data": None}, cookies=[clear_cookie(AUTH_COOKIE_NAME)])


def handle_me(event: dict) -> dict:
    if get_method(event) != "GET":
        return api_error("method not allowed", 405)
    try:
        user = authenticate(event)
    except AuthError as exc:
        return api_error(str(exc), exc.status)

    cookies = None
    if should_refresh_token(auth_token_from_event(event)):
        cookies = [auth_cookie_for_user(user)]
    return response(
        {"success": True, "data": user_to_ui(user), "message": None, "error": None},
        cookies=cookies,
    )
