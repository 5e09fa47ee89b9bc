# tests/test_presenters.py
"""Tests for display helpers and JSON shapes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fuyugyo.presenters import (
    get_department_type,
    get_shift_type_short,
    instructor_display_name,
    instructor_to_ui,
    invitation_to_ui,
)


class TestDisplayHelpers:
    def test_shift_type_short_names(self):
        assert get_shift_type_short("スキーレッスン") == "レッスン"
        assert get_shift_type_short("スノーボード検定") == "検定"
        assert get_shift_type_short("県連事業") == "県連"
        assert get_shift_type_short("月末イベント") == "イベント"

    def test_unknown_shift_type_is_unchanged(self):
        assert get_shift_type_short("団体レッスン") == "団体レッスン"

    def test_department_type(self):
        assert get_department_type("ski") == "ski"
        assert get_department_type("SNOWBOARD") == "snowboard"
        assert get_department_type("スノーボード") == "snowboard"
        assert get_department_type("office") is None
        assert get_department_type(None) is None

    def test_display_name(self):
        assert instructor_display_name({"last_name": "山田", "first_name": "太郎"}) == "山田 太郎"


class TestShapes:
    def test_instructor_with_certifications(self):
        data = instructor_to_ui(
            {"id": "i1", "last_name": "山田", "first_name": "太郎", "last_name_kana": "ヤマダ",
             "first_name_kana": "タロウ", "status": "ACTIVE"},
            [{"id": "c1", "name": "指導員", "short_name": "指導員", "department_id": "d1",
              "department_code": "ski", "department_name": "スキー"}],
        )
        assert data["displayNameKana"] == "ヤマダ タロウ"
        assert data["certifications"][0]["department"]["code"] == "ski"

    def test_invitation_status(self):
        row = {
            "token": "inv_a",
            "expires_at": datetime.now(timezone.utc) - timedelta(days=1),
            "is_active": True,
            "used_count": 3,
            "created_by": "u1",
            "creator_display_name": "管理者",
        }
        data = invitation_to_ui(row)
        assert data["isValid"] is False
        assert data["statusLabel"] == "期限切れ"
        assert data["usageCount"] == 3
        assert data["role"] == "MEMBER"
        assert data["createdBy"]["displayName"] == "管理者"
