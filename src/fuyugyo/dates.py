"""Timezone-safe date helpers.

Calendar dates travel through the system as ``YYYY-MM-DD`` strings with no
time component. The school operates in Japan, so "today" and any
user-facing timestamp are evaluated in JST regardless of the server clock.
"""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone

from dateutil import parser as date_parser

JST = timezone(timedelta(hours=9))
WEEKDAYS_JA = ["月", "火", "水", "木", "金", "土", "日"]
DATE_FORMAT_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MONDAY = 0
WEEK_START_DAY = MONDAY
DAYS_IN_WEEK = 7


def validate_date_format(value: str) -> str | None:
    """Return None for a valid ``YYYY-MM-DD`` calendar date, else an error message."""
    if not isinstance(value, str) or not DATE_FORMAT_RE.match(value):
        return f'不正な日付形式です: "{value}"。YYYY-MM-DD形式で指定してください（例: "2025-12-29"）'

    year, month, day = (int(part) for part in value.split("-"))
    if month < 1 or month > 12:
        return f"不正な月です: {month}。月は01から12の範囲で指定してください"

    max_day = calendar.monthrange(year, month)[1] if year >= 1 else 31
    if day < 1 or day > max_day:
        return (
            f"不正な日です: {day}。{year}-{month:02d}の日は01から{max_day:02d}の範囲で指定してください"
        )

    try:
        date(year, month, day)
    except ValueError:
        return f'不正な日付です: "{value}"は有効なカレンダー日付ではありません'
    return None


def parse_local_date(value: str) -> date:
    error = validate_date_format(value)
    if error:
        raise ValueError(error)
    year, month, day = (int(part) for part in value.split("-"))
    return date(year, month, day)


def format_local_date(value: date | datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def get_today_local_date(now: datetime | None = None) -> str:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return format_local_date(current.astimezone(JST))


def add_days(value: str, days: int) -> str:
    return format_local_date(parse_local_date(value) + timedelta(days=days))


def get_days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def get_first_day_of_week(year: int, month: int) -> int:
    # 0 = Sunday, matching the calendar grid.
    return (date(year, month, 1).weekday() + 1) % 7


def get_month_range(year: int, month: int) -> tuple[str, str]:
    last_day = get_days_in_month(year, month)
    return format_local_date(date(year, month, 1)), format_local_date(date(year, month, last_day))


def get_week_range(value: str, week_length: int = DAYS_IN_WEEK) -> tuple[str, str]:
    return value, add_days(value, week_length - 1)


def get_week_start_date(value: str) -> str:
    current = parse_local_date(value)
    offset = (current.weekday() - WEEK_START_DAY) % DAYS_IN_WEEK
    return format_local_date(current - timedelta(days=offset))


def get_week_end_date(value: str) -> str:
    return add_days(get_week_start_date(value), DAYS_IN_WEEK - 1)


def get_week_dates(value: str) -> list[str]:
    start = get_week_start_date(value)
    return [add_days(start, i) for i in range(DAYS_IN_WEEK)]


def format_date_for_display(value: str | date) -> str:
    current = parse_local_date(value) if isinstance(value, str) else value
    return f"{current.month}/{current.day}({WEEKDAYS_JA[current.weekday()]})"


def get_week_period_display(value: str) -> str:
    return f"{format_date_for_display(get_week_start_date(value))} - {format_date_for_display(get_week_end_date(value))}"


def _to_jst(value: datetime | str) -> datetime:
    dt = date_parser.isoparse(value) if isinstance(value, str) else value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(JST)


def format_in_jst(value: datetime | str, fmt: str) -> str:
    return _to_jst(value).strftime(fmt)


def format_date_in_jst(value: datetime | str) -> str:
    return format_in_jst(value, "%Y年%m月%d日")


def format_datetime_in_jst(value: datetime | str) -> str:
    return format_in_jst(value, "%Y年%m月%d日 %H:%M")
