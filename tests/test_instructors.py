# tests/test_instructors.py
"""Tests for instructor use cases."""

from __future__ import annotations

import psycopg2
import pytest

from fuyugyo import instructors, repositories
from fuyugyo.instructors import InstructorError


def _certification(certification_id: str) -> dict:
    return {
        "id": certification_id,
        "name": f"資格{certification_id}",
        "short_name": certification_id.upper(),
        "department_id": "d-ski",
        "department_code": "ski",
        "department_name": "スキー",
        "is_active": True,
    }


@pytest.fixture
def repo(monkeypatch):
    """Patch instructor repository calls with an in-memory store."""
    state = {"instructors": {}, "links": {}, "calls": [], "fail_link": False}

    def create_instructor(cursor, **fields):
        state["calls"].append("create")
        instructor_id = f"i{len(state['instructors']) + 1}"
        state["instructors"][instructor_id] = {"id": instructor_id, **fields}
        return instructor_id

    def update_instructor(cursor, instructor_id, **fields):
        state["calls"].append("update")
        state["instructors"][instructor_id].update(fields)

    def delete_links(cursor, instructor_id):
        state["calls"].append("unlink")
        state["links"][instructor_id] = []

    def add_links(cursor, instructor_id, certification_ids):
        state["calls"].append("link")
        if state["fail_link"]:
            raise psycopg2.IntegrityError("foreign key violation")
        state["links"][instructor_id] = [_certification(c) for c in certification_ids]

    def set_status(cursor, instructor_id, status):
        state["calls"].append(f"status:{status}")
        state["instructors"][instructor_id]["status"] = status

    monkeypatch.setattr(repositories, "create_instructor", create_instructor)
    monkeypatch.setattr(repositories, "update_instructor", update_instructor)
    monkeypatch.setattr(repositories, "delete_instructor_certifications", delete_links)
    monkeypatch.setattr(repositories, "add_instructor_certifications", add_links)
    monkeypatch.setattr(repositories, "set_instructor_status", set_status)
    monkeypatch.setattr(repositories, "get_instructor", lambda cursor, i: state["instructors"].get(i))
    monkeypatch.setattr(
        repositories, "list_instructor_certifications",
        lambda cursor, ids: {i: state["links"].get(i, []) for i in ids},
    )
    return state


def _input(**overrides) -> dict:
    data = {
        "last_name": "山田",
        "first_name": "太郎",
        "last_name_kana": "ヤマダ",
        "first_name_kana": "タロウ",
        "status": "ACTIVE",
        "notes": None,
        "certification_ids": ["c1", "c2"],
    }
    data.update(overrides)
    return data


class TestCreate:
    def test_links_certifications_under_savepoint(self, repo, cursor):
        instructor = instructors.create_instructor(cursor, _input())

        assert instructor["displayName"] == "山田 太郎"
        assert [c["id"] for c in instructor["certifications"]] == ["c1", "c2"]
        assert cursor.statements == ["SAVEPOINT instructor_certifications", "RELEASE SAVEPOINT instructor_certifications"]

    def test_without_certifications_skips_savepoint(self, repo, cursor):
        instructor = instructors.create_instructor(cursor, _input(certification_ids=[]))
        assert instructor["certifications"] == []
        assert cursor.statements == []
        assert repo["calls"] == ["create"]

    def test_link_failure_keeps_instructor(self, repo, cursor):
        repo["fail_link"] = True

        with pytest.raises(InstructorError) as excinfo:
            instructors.create_instructor(cursor, _input())

        assert str(excinfo.value).startswith("インストラクターを作成しましたが、資格の紐付けに失敗しました: ")
        assert "i1" in repo["instructors"]
        assert cursor.statements == [
            "SAVEPOINT instructor_certifications",
            "ROLLBACK TO SAVEPOINT instructor_certifications",
        ]


class TestUpdate:
    def test_replaces_links(self, repo, cursor):
        instructors.create_instructor(cursor, _input())

        instructor = instructors.update_instructor(cursor, "i1", _input(first_name="次郎", certification_ids=["c3"]))

        assert repo["calls"] == ["create", "link", "update", "unlink", "link"]
        assert instructor["firstName"] == "次郎"
        assert [c["id"] for c in instructor["certifications"]] == ["c3"]

    def test_clearing_certifications(self, repo, cursor):
        instructors.create_instructor(cursor, _input())
        instructor = instructors.update_instructor(cursor, "i1", _input(certification_ids=[]))
        assert repo["calls"][-2:] == ["update", "unlink"]
        assert instructor["certifications"] == []

    def test_link_failure_message(self, repo, cursor):
        instructors.create_instructor(cursor, _input(certification_ids=[]))
        repo["fail_link"] = True

        with pytest.raises(InstructorError, match="^インストラクター情報を更新しましたが、資格の紐付けに失敗しました: "):
            instructors.update_instructor(cursor, "i1", _input(last_name="佐藤"))

        # The profile change and the unlink happen before the savepoint.
        assert repo["instructors"]["i1"]["last_name"] == "佐藤"
        assert repo["links"]["i1"] == []


class TestDelete:
    def test_marks_inactive(self, repo, cursor):
        instructors.create_instructor(cursor, _input())

        instructors.delete_instructor(cursor, "i1")

        assert repo["calls"][-1] == "status:INACTIVE"
        assert instructors.load_instructor(cursor, "i1")["status"] == "INACTIVE"
        assert [c["id"] for c in instructors.load_instructor(cursor, "i1")["certifications"]] == ["c1", "c2"]


class TestLoad:
    def test_missing(self, repo, cursor):
        assert instructors.load_instructor(cursor, "nope") is None

    def test_list_groups_certifications(self, repo, cursor, monkeypatch):
        instructors.create_instructor(cursor, _input())
        instructors.create_instructor(cursor, _input(first_name="花子", certification_ids=[]))
        monkeypatch.setattr(
            repositories, "list_instructors",
            lambda cursor, status=None, keyword=None: list(repo["instructors"].values()),
        )

        rows = instructors.list_instructors(cursor, status="ACTIVE")

        assert [len(r["certifications"]) for r in rows] == [2, 0]
