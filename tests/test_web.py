"""Tests for the HTTP API."""

import asyncio
import tempfile
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from wbs_tracker.config import Config
from wbs_tracker.core.auth import AuthService
from wbs_tracker.core.passwords import hash_password
from wbs_tracker.db.engine import init_db
from wbs_tracker.web.app import create_app


def _insert_user(db, name, role, password="Initial1"):
    cur = db.execute(
        "INSERT INTO users (name, email, role, password_hash) VALUES (?, ?, ?, ?)",
        (name, f"{name.lower()}@example.com", role, hash_password(password, rounds=4)),
    )
    return cur.lastrowid


@pytest.fixture
def web_env():
    """Seed users and yield a client plus their IDs."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"

        db = init_db(db_path)
        users = {
            "admin": _insert_user(db, "Admin", "admin"),
            "pm": _insert_user(db, "Suzuki", "pm"),
            "dev": _insert_user(db, "Dev", "developer"),
            "outsider": _insert_user(db, "Outsider", "developer"),
        }
        db.commit()
        db.close()

        app = create_app(Config(db_path=db_path, bcrypt_rounds=4))
        with TestClient(app) as client:
            yield client, users


def _as(users, who, role=None):
    roles = {"admin": "admin", "pm": "pm", "dev": "developer", "outsider": "developer"}
    return {"X-User-Id": str(users[who]), "X-User-Role": role or roles[who]}


def _create_project(client, users, name="Alpha"):
    resp = client.post(
        "/api/projects",
        json={"name": name, "startDate": "2025-01-01", "pmId": users["pm"]},
        headers=_as(users, "pm"),
    )
    assert resp.status_code == 201
    return resp.json()["data"]


class TestAuthHeaders:
    def test_missing_principal(self, web_env):
        client, _ = web_env
        resp = client.get("/api/projects")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"

    def test_unknown_role(self, web_env):
        client, users = web_env
        resp = client.get("/api/projects", headers=_as(users, "dev", role="root"))
        assert resp.status_code == 401


class TestProjectsAPI:
    def test_create_and_get(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        assert project["pmId"] == users["pm"]
        assert project["pmName"] == "Suzuki"
        assert project["status"] == "active"
        assert project["endDate"] is None

        resp = client.get(f"/api/projects/{project['id']}", headers=_as(users, "pm"))
        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Alpha"

    def test_developer_cannot_create(self, web_env):
        client, users = web_env
        resp = client.post(
            "/api/projects",
            json={"name": "Nope", "startDate": "2025-01-01", "pmId": users["pm"]},
            headers=_as(users, "dev"),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    def test_invalid_payload(self, web_env):
        client, users = web_env
        resp = client.post(
            "/api/projects",
            json={"name": "Bad", "startDate": "2025-02-30", "pmId": users["pm"]},
            headers=_as(users, "pm"),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_malformed_json(self, web_env):
        client, users = web_env
        resp = client.post(
            "/api/projects",
            content=b"{not json",
            headers={**_as(users, "pm"), "Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    def test_list_is_scoped(self, web_env):
        client, users = web_env
        project = _create_project(client, users)

        pm_list = client.get("/api/projects", headers=_as(users, "pm")).json()["data"]
        assert [p["id"] for p in pm_list] == [project["id"]]
        assert pm_list[0]["pmName"] == "Suzuki"

        assert client.get("/api/projects", headers=_as(users, "dev")).json()["data"] == []
        assert len(client.get("/api/projects", headers=_as(users, "admin")).json()["data"]) == 1

    def test_unknown_status_filter(self, web_env):
        client, users = web_env
        resp = client.get("/api/projects?status=deleted", headers=_as(users, "pm"))
        assert resp.status_code == 400

    def test_non_member_sees_not_found(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.get(f"/api/projects/{project['id']}", headers=_as(users, "dev"))
        assert resp.status_code == 404

    def test_admin_sees_any_project(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.get(f"/api/projects/{project['id']}", headers=_as(users, "admin"))
        assert resp.status_code == 200

    def test_update(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.put(
            f"/api/projects/{project['id']}",
            json={"status": "archived", "description": "Done"},
            headers=_as(users, "pm"),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "archived"
        assert resp.json()["data"]["description"] == "Done"

    def test_favorite(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.put(
            f"/api/projects/{project['id']}/favorite",
            json={"isFavorite": True},
            headers=_as(users, "pm"),
        )
        assert resp.status_code == 204
        listed = client.get("/api/projects", headers=_as(users, "pm")).json()["data"]
        assert listed[0]["isFavorite"] is True

    def test_favorite_non_member(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.put(
            f"/api/projects/{project['id']}/favorite",
            json={"isFavorite": True},
            headers=_as(users, "outsider"),
        )
        assert resp.status_code == 404

    def test_review_categories(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.get(
            f"/api/projects/{project['id']}/review-categories", headers=_as(users, "pm")
        )
        names = [c["name"] for c in resp.json()["data"]]
        assert names == ["設計漏れ", "実装誤り", "テスト不足", "スタイル", "その他"]


class TestMembersAPI:
    def test_add_list_remove(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        base = f"/api/projects/{project['id']}/members"

        resp = client.post(base, json={"userId": users["dev"]}, headers=_as(users, "pm"))
        assert resp.status_code == 204

        members = client.get(base, headers=_as(users, "dev")).json()["data"]
        assert {m["userId"] for m in members} == {users["pm"], users["dev"]}

        resp = client.post(base, json={"userId": users["dev"]}, headers=_as(users, "pm"))
        assert resp.status_code == 409

        resp = client.delete(f"{base}/{users['dev']}", headers=_as(users, "pm"))
        assert resp.status_code == 204
        resp = client.delete(f"{base}/{users['dev']}", headers=_as(users, "pm"))
        assert resp.status_code == 404

    def test_add_unknown_user_or_project(self, web_env):
        client, users = web_env
        project = _create_project(client, users)

        resp = client.post(
            f"/api/projects/{project['id']}/members", json={"userId": 999}, headers=_as(users, "pm")
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "User not found"

        resp = client.post(
            "/api/projects/999/members", json={"userId": users["dev"]}, headers=_as(users, "pm")
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Project not found"


class TestTasksAPI:
    def test_create_nested_and_list(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        base = f"/api/projects/{project['id']}/tasks"

        top = client.post(base, json={"name": "Phase 1"}, headers=_as(users, "pm"))
        assert top.status_code == 201
        top_id = top.json()["data"]["id"]

        child = client.post(
            base,
            json={"name": "Design", "parentTaskId": top_id, "plannedHours": 8},
            headers=_as(users, "pm"),
        )
        assert child.json()["data"]["level"] == 2
        assert child.json()["data"]["status"] == "未着手"

        tasks = client.get(base, headers=_as(users, "pm")).json()["data"]
        assert [t["name"] for t in tasks] == ["Phase 1", "Design"]
        assert tasks[1]["actualHours"] == 0

    def test_fourth_level(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        base = f"/api/projects/{project['id']}/tasks"
        parent_id = None
        for name in ("L1", "L2", "L3"):
            resp = client.post(
                base, json={"name": name, "parentTaskId": parent_id}, headers=_as(users, "pm")
            )
            parent_id = resp.json()["data"]["id"]

        resp = client.post(
            base, json={"name": "L4", "parentTaskId": parent_id}, headers=_as(users, "pm")
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "INVALID_HIERARCHY"

    def test_update_and_delete(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        base = f"/api/projects/{project['id']}/tasks"
        task_id = client.post(base, json={"name": "Work"}, headers=_as(users, "pm")).json()["data"]["id"]

        resp = client.put(
            f"{base}/{task_id}",
            json={"status": "進行中", "startDate": "2025-02-01", "endDate": "2025-01-31"},
            headers=_as(users, "pm"),
        )
        assert resp.status_code == 400

        resp = client.put(f"{base}/{task_id}", json={"status": "進行中"}, headers=_as(users, "pm"))
        assert resp.json()["data"]["status"] == "進行中"

        resp = client.delete(f"{base}/{task_id}", headers=_as(users, "pm"))
        assert resp.status_code == 204
        assert client.get(base, headers=_as(users, "pm")).json()["data"] == []

    def test_developer_cannot_write_tasks(self, web_env):
        client, users = web_env
        project = _create_project(client, users)
        resp = client.post(
            f"/api/projects/{project['id']}/tasks",
            json={"name": "Work"},
            headers=_as(users, "dev"),
        )
        assert resp.status_code == 403


class TestCurrentUserAPI:
    def test_first_login_then_change_password(self, web_env):
        client, users = web_env
        headers = _as(users, "dev")

        resp = client.get("/api/users/me/first-login", headers=headers)
        assert resp.json()["data"] == {"mustChangePassword": True}

        resp = client.put(
            "/api/users/me/password",
            json={"currentPassword": "Initial1", "newPassword": "Changed22"},
            headers=headers,
        )
        assert resp.status_code == 204

        resp = client.get("/api/users/me/first-login", headers=headers)
        assert resp.json()["data"] == {"mustChangePassword": False}

    def test_wrong_current_password(self, web_env):
        client, users = web_env
        resp = client.put(
            "/api/users/me/password",
            json={"currentPassword": "Wrong123", "newPassword": "Changed22"},
            headers=_as(users, "dev"),
        )
        assert resp.status_code == 401

    def test_reuse_is_conflict(self, web_env):
        client, users = web_env
        resp = client.put(
            "/api/users/me/password",
            json={"currentPassword": "Initial1", "newPassword": "Initial1"},
            headers=_as(users, "dev"),
        )
        assert resp.status_code == 409

    def test_password_hashing_runs_off_the_event_loop(self, web_env, monkeypatch):
        client, users = web_env
        seen = []
        original = AuthService.change_password

        def recording(self, *args):
            try:
                asyncio.get_running_loop()
                seen.append("loop")
            except RuntimeError:
                seen.append("worker")
            return original(self, *args)

        monkeypatch.setattr(AuthService, "change_password", recording)
        resp = client.put(
            "/api/users/me/password",
            json={"currentPassword": "Initial1", "newPassword": "Changed22"},
            headers=_as(users, "dev"),
        )
        assert resp.status_code == 204
        assert seen == ["worker"]
