"""API Gateway event parsing and response building."""
from __future__ import annotations

import base64
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fuyugyo.config import get_app_base_url, get_cookie_secure

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(payload: Any) -> str:
    return json.dumps(payload, default=_json_default, ensure_ascii=False)


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": get_app_base_url(),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
        "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
    }


def response(payload: Any, status: int = 200, cookies: list[str] | None = None) -> dict:
    body = "" if payload is None else dumps(payload)
    headers = {"Content-Type": "application/json; charset=utf-8", **cors_headers()}
    result: dict[str, Any] = {"statusCode": status, "headers": headers, "body": body}
    if cookies:
        result["cookies"] = cookies
        result["multiValueHeaders"] = {"Set-Cookie": cookies}
    return result


def redirect(location: str, cookies: list[str] | None = None, status: int = 302) -> dict:
    result: dict[str, Any] = {
        "statusCode": status,
        "headers": {"Location": location, "Cache-Control": "no-store"},
        "body": "",
    }
    if cookies:
        result["cookies"] = cookies
        result["multiValueHeaders"] = {"Set-Cookie": cookies}
    return result


# REST reads reply with a fixed envelope.
def api_ok(data: Any, message: str | None = None) -> dict:
    return response({"success": True, "data": data, "message": message, "error": None})


def api_error(error: str, status: int) -> dict:
    return response({"success": False, "data": None, "message": None, "error": error}, status=status)


# Mutations reply with an action result.
def action_ok(data: Any = None, status: int = 200) -> dict:
    return response({"success": True, "data": data}, status=status)


def action_error(error: str, status: int = 400) -> dict:
    return response({"success": False, "error": error}, status=status)


def get_method(event: dict) -> str:
    return (event.get("httpMethod") or ((event.get("requestContext") or {}).get("http") or {}).get("method") or "").upper()


def get_path(event: dict) -> str:
    return event.get("rawPath") or event.get("path") or ""


def get_query_params(event: dict) -> dict[str, Any]:
    return event.get("queryStringParameters") or {}


def get_header(event: dict, name: str) -> str | None:
    headers = event.get("headers") or {}
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def get_body(event: dict) -> str:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.exception("Failed to decode base64 request body")
            return ""
    return body


def parse_json_body(event: dict) -> dict:
    raw = get_body(event).strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON request body")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def bearer_token(headers: dict[str, Any]) -> str | None:
    auth = headers.get("authorization") or headers.get("Authorization")
    if not auth:
        return None
    parts = auth.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def get_cookie(event: dict, name: str) -> str | None:
    # HTTP API (v2) events carry a cookies list; REST (v1) events only the Cookie header.
    raw_cookies = list(event.get("cookies") or [])
    header = get_header(event, "cookie")
    if header:
        raw_cookies.append(header)
    # Pairs are read one at a time so a malformed neighbour cannot hide the rest.
    for raw in raw_cookies:
        for pair in raw.split(";"):
            key, sep, value = pair.strip().partition("=")
            if sep and key.strip() == name:
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] == '"':
                    value = value[1:-1]
                return value
    return None


def build_cookie(name: str, value: str, max_age: int, http_only: bool = True, path: str = "/") -> str:
    parts = [f"{name}={value}", f"Path={path}", f"Max-Age={max_age}", "SameSite=Lax"]
    if http_only:
        parts.append("HttpOnly")
    if get_cookie_secure():
        parts.append("Secure")
    return "; ".join(parts)


def clear_cookie(name: str, path: str = "/") -> str:
    return build_cookie(name, "", max_age=0, path=path)
