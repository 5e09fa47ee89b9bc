from __future__ import annotations

from urllib.parse import urlencode

import requests

from fuyugyo.config import get_line_channel_id, get_line_channel_secret

AUTHORIZE_URL = "https://access.line.me/oauth2/v2.1/authorize"
API_BASE = "https://api.line.me"
LOGIN_SCOPE = "profile openid"


class LineApiError(RuntimeError):
    pass


def build_authorize_url(state: str, nonce: str, redirect_uri: str) -> str:
    params = {
        "response_type": "code",
        "client_id": get_line_channel_id(),
        "redirect_uri": redirect_uri,
        "state": state,
        "scope": LOGIN_SCOPE,
        "nonce": nonce,
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code_for_token(code: str, redirect_uri: str) -> dict:
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": get_line_channel_id(),
        "client_secret": get_line_channel_secret(),
    }
    response = requests.post(
        f"{API_BASE}/oauth2/v2.1/token",
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        timeout=10,
    )
    if response.status_code >= 300:
        raise LineApiError(f"Token exchange failed: {response.status_code} {response.text}")
    return response.json()


def get_profile(access_token: str) -> dict:
    response = requests.get(
        f"{API_BASE}/v2/profile",
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=10,
    )
    if response.status_code >= 300:
        raise LineApiError(f"Profile fetch failed: {response.status_code} {response.text}")
    profile = response.json()
    if not profile.get("userId"):
        raise LineApiError("Profile fetch failed: response missing userId")
    return profile
