# tests/test_sessions.py
"""Tests for JWT issuance and verification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from conftest import JWT_SECRET, make_user
from fuyugyo.sessions import (
    JWT_AUDIENCE,
    JWT_ISSUER,
    decode_jwt,
    extract_user_from_token,
    generate_jwt,
    get_token_expiry,
    parse_duration,
    payload_for_user,
    should_refresh_token,
    verify_jwt,
)


def _payload(**overrides) -> dict:
    payload = payload_for_user(make_user())
    payload.update(overrides)
    return payload


def _raw_token(claims: dict, secret: str = JWT_SECRET) -> str:
    now = datetime.now(timezone.utc)
    base = {"iat": now, "exp": now + timedelta(hours=1), "iss": JWT_ISSUER, "aud": JWT_AUDIENCE}
    base.update(claims)
    return jwt.encode(base, secret, algorithm="HS256")


class TestParseDuration:
    def test_units(self):
        assert parse_duration("48h") == timedelta(hours=48)
        assert parse_duration("30m") == timedelta(minutes=30)
        assert parse_duration("7d") == timedelta(days=7)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_duration("two days")


class TestGenerateAndVerify:
    def test_round_trip_claims(self):
        token = generate_jwt(_payload())
        result = verify_jwt(token)
        assert result.success is True
        assert result.payload["userId"] == "u1"
        assert result.payload["iss"] == "fuyugyo"
        assert result.payload["aud"] == "fuyugyo-users"

    def test_default_lifetime_is_48_hours(self):
        now = datetime.now(timezone.utc).replace(microsecond=0)
        token = generate_jwt(_payload(), now=now)
        expiry = get_token_expiry(token, now=now)
        assert expiry.expires_at - now == timedelta(hours=48)

    def test_lifetime_follows_env(self, monkeypatch):
        monkeypatch.setenv("JWT_EXPIRES_IN", "2h")
        now = datetime.now(timezone.utc).replace(microsecond=0)
        expiry = get_token_expiry(generate_jwt(_payload(), now=now), now=now)
        assert expiry.expires_at - now == timedelta(hours=2)

    def test_generation_fails_with_short_secret(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "short")
        with pytest.raises(RuntimeError, match="JWT generation failed"):
            generate_jwt(_payload())

    def test_missing_token(self):
        assert verify_jwt(None).error == "Token is required"

    def test_expired(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=49)
        result = verify_jwt(generate_jwt(_payload(), now=issued))
        assert result.success is False
        assert result.error == "Token has expired"

    def test_wrong_signature(self):
        token = _raw_token(_payload(), secret="another-secret-0123456789abcdefghijkl")
        assert verify_jwt(token).error == "Invalid token signature"

    def test_wrong_audience(self):
        assert verify_jwt(_raw_token({**_payload(), "aud": "someone-else"})).error == "Invalid token claims"

    def test_wrong_issuer(self):
        assert verify_jwt(_raw_token({**_payload(), "iss": "someone-else"})).error == "Invalid token claims"

    def test_garbage(self):
        assert verify_jwt("not-a-jwt").error == "Token verification failed"


class TestPayloadValidation:
    def test_missing_fields(self):
        claims = _payload()
        del claims["lineUserId"]
        assert verify_jwt(_raw_token(claims)).error == "Invalid token payload: missing required fields"

    def test_unknown_role(self):
        assert verify_jwt(_raw_token(_payload(role="OWNER"))).error == "Invalid token payload: invalid role"

    def test_is_active_type(self):
        result = verify_jwt(_raw_token(_payload(isActive="yes")))
        assert result.error == "Invalid token payload: isActive must be boolean"

    def test_inactive_user(self):
        assert verify_jwt(_raw_token(_payload(isActive=False))).error == "User is not active"


class TestDecodeAndRefresh:
    def test_decode_ignores_signature(self):
        token = _raw_token(_payload(), secret="another-secret-0123456789abcdefghijkl")
        assert decode_jwt(token).success is True
        assert verify_jwt(token).success is False

    def test_expiry_of_garbage(self):
        expiry = get_token_expiry("garbage")
        assert expiry.success is False
        assert expiry.error == "Unable to decode token or missing expiry"

    def test_fresh_token_is_not_refreshed(self):
        now = datetime.now(timezone.utc)
        assert should_refresh_token(generate_jwt(_payload(), now=now), now=now) is False

    def test_token_close_to_expiry_is_refreshed(self):
        issued = datetime.now(timezone.utc)
        token = generate_jwt(_payload(), now=issued)
        assert should_refresh_token(token, now=issued + timedelta(hours=43)) is True

    def test_undecodable_token_is_refreshed(self):
        assert should_refresh_token("garbage") is True

    def test_extract_user(self):
        user = extract_user_from_token(generate_jwt(_payload()))
        assert user == {
            "userId": "u1",
            "lineUserId": "U-line-1",
            "displayName": "山田 太郎",
            "role": "MEMBER",
            "isActive": True,
        }
        assert extract_user_from_token("garbage") is None
