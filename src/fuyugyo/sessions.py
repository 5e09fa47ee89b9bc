"""JWT session tokens.

Tokens are HS256-signed with ``JWT_SECRET`` and carry the user's id, LINE id,
display name, role and active flag. Verification checks the signature,
issuer, audience and expiry, then validates the payload shape so callers can
trust every field they read.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from fuyugyo.config import get_jwt_expires_in, get_jwt_secret

JWT_ALGORITHM = "HS256"
JWT_ISSUER = "fuyugyo"
JWT_AUDIENCE = "fuyugyo-users"
REFRESH_THRESHOLD = timedelta(hours=6)
ROLES = ("ADMIN", "MANAGER", "MEMBER")

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


@dataclass
class JwtVerificationResult:
    success: bool
    payload: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class TokenExpiry:
    success: bool
    expires_at: datetime | None = None
    is_expired: bool | None = None
    error: str | None = None


def parse_duration(value: str) -> timedelta:
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration: {value!r} (expected e.g. 48h, 30m, 7d)")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def generate_jwt(payload: dict[str, Any], now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    try:
        claims = {
            "userId": payload["userId"],
            "lineUserId": payload["lineUserId"],
            "displayName": payload["displayName"],
            "role": payload["role"],
            "isActive": payload["isActive"],
            "iat": issued_at,
            "exp": issued_at + parse_duration(get_jwt_expires_in()),
            "iss": JWT_ISSUER,
            "aud": JWT_AUDIENCE,
        }
        return jwt.encode(claims, get_jwt_secret(), algorithm=JWT_ALGORITHM)
    except Exception as exc:
        raise RuntimeError(f"JWT generation failed: {exc}") from exc


def _validate_payload(payload: Any) -> JwtVerificationResult | None:
    if not isinstance(payload, dict):
        return JwtVerificationResult(False, error="Invalid token payload: not an object")
    if not (
        isinstance(payload.get("userId"), str)
        and isinstance(payload.get("lineUserId"), str)
        and isinstance(payload.get("role"), str)
    ):
        return JwtVerificationResult(False, error="Invalid token payload: missing required fields")
    if payload["role"] not in ROLES:
        return JwtVerificationResult(False, error="Invalid token payload: invalid role")
    if not isinstance(payload.get("isActive"), bool):
        return JwtVerificationResult(False, error="Invalid token payload: isActive must be boolean")
    if not payload["isActive"]:
        return JwtVerificationResult(False, error="User is not active")
    return None


def _error_message(exc: Exception) -> str:
    if isinstance(exc, jwt.ExpiredSignatureError):
        return "Token has expired"
    if isinstance(exc, jwt.InvalidSignatureError):
        return "Invalid token signature"
    if isinstance(exc, (jwt.InvalidIssuerError, jwt.InvalidAudienceError, jwt.MissingRequiredClaimError)):
        return "Invalid token claims"
    return "Token verification failed"


def verify_jwt(token: str | None) -> JwtVerificationResult:
    if not token:
        return JwtVerificationResult(False, error="Token is required")
    try:
        payload = jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=[JWT_ALGORITHM],
            issuer=JWT_ISSUER,
            audience=JWT_AUDIENCE,
            options={"require": ["exp", "iat"]},
        )
    except jwt.PyJWTError as exc:
        return JwtVerificationResult(False, error=_error_message(exc))

    invalid = _validate_payload(payload)
    if invalid:
        return invalid
    return JwtVerificationResult(True, payload=payload)


def decode_jwt(token: str | None) -> JwtVerificationResult:
    """Decode without verifying the signature. Never use the result for access control."""
    if not token:
        return JwtVerificationResult(False, error="Token is required")
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        return JwtVerificationResult(False, error=f"Token decode failed: {exc}")

    invalid = _validate_payload(payload)
    if invalid:
        return invalid
    return JwtVerificationResult(True, payload=payload)


def get_token_expiry(token: str | None, now: datetime | None = None) -> TokenExpiry:
    decoded = decode_jwt(token)
    exp = (decoded.payload or {}).get("exp")
    if not decoded.success or not isinstance(exp, (int, float)):
        return TokenExpiry(False, error="Unable to decode token or missing expiry")
    expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return TokenExpiry(True, expires_at=expires_at, is_expired=expires_at < current)


def should_refresh_token(token: str | None, now: datetime | None = None) -> bool:
    current = now or datetime.now(timezone.utc)
    expiry = get_token_expiry(token, now=current)
    if not expiry.success or expiry.expires_at is None:
        return True
    if expiry.is_expired:
        return True
    return expiry.expires_at < current + REFRESH_THRESHOLD


def extract_user_from_token(token: str | None) -> dict[str, Any] | None:
    result = verify_jwt(token)
    if not result.success or not result.payload:
        return None
    payload = result.payload
    return {
        "userId": payload["userId"],
        "lineUserId": payload["lineUserId"],
        "displayName": payload.get("displayName") or "",
        "role": payload["role"],
        "isActive": payload["isActive"],
    }


def payload_for_user(user: dict) -> dict[str, Any]:
    return {
        "userId": user["id"],
        "lineUserId": user["line_user_id"],
        "displayName": user["display_name"],
        "role": user["role"],
        "isActive": bool(user["is_active"]),
    }
