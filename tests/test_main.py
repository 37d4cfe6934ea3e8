# ABOUTME: FastAPI TestClient tests for /auth, /goals, /mentor and /admin on an in-memory DB.
# ABOUTME: Covers signup/login, role checks, goal CRUD + help flag, revisions (If-Match) and mentor visibility.

from contextlib import contextmanager
from datetime import date, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from api.main import app
from core.auth import create_access_token, hash_password
from core.database import Goal, User


def _with_fake_session(fake_get_session):
    """Patch get_session in api and auth (where it is imported) so all app code uses the in-memory DB."""

    @contextmanager
    def _both():
        with (
            patch("api.main.get_session", fake_get_session),
            patch("core.auth.get_session", fake_get_session),
        ):
            yield

    return _both()


def _make_user(engine, username: str, role: str) -> tuple[str, dict]:
    """Insert a user and return (user id, bearer headers)."""
    with Session(engine) as session:
        user = User(username=username, password_hash=hash_password("testpass"), role=role)
        session.add(user)
        session.commit()
        session.refresh(user)
        token = create_access_token(user.id)
        return str(user.id), {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(fake_get_session):
    with _with_fake_session(fake_get_session):
        yield TestClient(app)


@pytest.fixture
def mentee(in_memory_engine):
    return _make_user(in_memory_engine, "mentee", "MENTEE")


@pytest.fixture
def mentor(in_memory_engine):
    return _make_user(in_memory_engine, "mentor", "MENTOR")


@pytest.fixture
def admin(in_memory_engine):
    return _make_user(in_memory_engine, "admin", "ADMIN")


@pytest.fixture
def assigned(client, admin, mentor, mentee):
    """Assign the mentee to the mentor through the admin API."""
    resp = client.post(
        "/admin/assignments",
        json={"mentorId": mentor[0], "menteeId": mentee[0]},
        headers=admin[1],
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create(client, headers, **body) -> dict:
    body.setdefault("title", "Learn FastAPI")
    resp = client.post("/goals", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# --- auth ----------------------------------------------------------------


def test_auth_signup_201_returns_id_username_and_role(client):
    """POST /auth/signup with valid body returns 201 and id, username, default MENTEE role."""
    resp = client.post(
        "/auth/signup",
        json={"username": "newuser", "password": "password123"},
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["username"] == "newuser"
    assert data["role"] == "MENTEE"
    assert "id" in data
    assert data["access_token"]


def test_auth_signup_as_mentor(client):
    resp = client.post(
        "/auth/signup",
        json={"username": "coach", "password": "password123", "role": "MENTOR"},
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "MENTOR"


def test_auth_signup_400_when_admin_requested(client):
    resp = client.post(
        "/auth/signup",
        json={"username": "sneaky", "password": "password123", "role": "ADMIN"},
    )
    assert resp.status_code == 400
    assert "MENTEE or MENTOR" in resp.json()["message"]


def test_auth_signup_409_when_username_taken(client):
    """POST /auth/signup with existing username returns 409."""
    client.post("/auth/signup", json={"username": "taken", "password": "password123"})
    resp = client.post("/auth/signup", json={"username": "taken", "password": "other4567"})
    assert resp.status_code == 409
    assert "already taken" in resp.json().get("message", "").lower()


def test_auth_signup_400_when_password_too_short(client):
    """POST /auth/signup with short password returns 400."""
    resp = client.post("/auth/signup", json={"username": "u", "password": "short"})
    assert resp.status_code == 400
    assert "password" in resp.json().get("message", "").lower()


def test_auth_login_200_returns_token(client, in_memory_engine):
    """POST /auth/login with valid credentials returns 200 and access_token."""
    _make_user(in_memory_engine, "logintest", "MENTEE")
    resp = client.post("/auth/login", json={"username": "logintest", "password": "testpass"})
    assert resp.status_code == 200
    data = resp.json()
    assert data.get("token_type") == "bearer"
    assert "access_token" in data
    assert data.get("expires_in") > 0


def test_auth_login_401_wrong_password(client, in_memory_engine):
    """POST /auth/login with wrong password returns 401."""
    _make_user(in_memory_engine, "u2", "MENTEE")
    resp = client.post("/auth/login", json={"username": "u2", "password": "wrong"})
    assert resp.status_code == 401
    assert "message" in resp.json()


def test_goals_401_without_token(client):
    assert client.get("/goals").status_code == 401
    assert client.post("/goals", json={"title": "x"}).status_code == 401
    assert client.get("/mentor/goals").status_code == 401


def test_role_checks_return_403(client, mentee, mentor):
    assert client.get("/mentor/goals", headers=mentee[1]).status_code == 403
    assert client.post("/goals", json={"title": "x"}, headers=mentor[1]).status_code == 403
    assert client.get("/admin/goals", headers=mentor[1]).status_code == 403


# --- mentee goals ----------------------------------------------------------------


def test_post_goal_persists_and_serializes_camel_case(client, in_memory_engine, mentee):
    data = _create(
        client,
        mentee[1],
        title="Read 12 books",
        category="LEARNING_OBJECTIVE",
        priority="HIGH",
        dueDate="2030-01-01",
    )
    assert data["title"] == "Read 12 books"
    assert data["ownerId"] == mentee[0]
    assert data["category"] == "LEARNING_OBJECTIVE"
    assert data["priority"] == "HIGH"
    assert data["status"] == "NOT_STARTED"
    assert data["effectiveStatus"] == "NOT_STARTED"
    assert data["dueDate"] == "2030-01-01"
    assert data["visibleToMentor"] is None
    assert data["needsHelp"] is False
    assert data["revision"] == 1
    assert data["createdAt"].endswith("Z") or "+00:00" in data["createdAt"]

    with Session(in_memory_engine) as session:
        goals = list(session.exec(select(Goal)))
        assert len(goals) == 1
        assert str(goals[0].owner_id) == mentee[0]


def test_post_goal_empty_title_422(client, mentee):
    resp = client.post("/goals", json={"title": "  "}, headers=mentee[1])
    assert resp.status_code == 422


def test_get_goals_creation_order_and_pagination(client, mentee):
    for i in range(3):
        _create(client, mentee[1], title=f"goal{i}")
    resp = client.get("/goals", headers=mentee[1])
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert [g["title"] for g in data["goals"]] == ["goal0", "goal1", "goal2"]

    page = client.get("/goals?limit=2&offset=1", headers=mentee[1]).json()
    assert page["total"] == 3
    assert [g["title"] for g in page["goals"]] == ["goal1", "goal2"]


def test_get_goals_invalid_params_return_422(client, mentee):
    assert client.get("/goals?offset=-1", headers=mentee[1]).status_code == 422
    assert client.get("/goals?limit=-1", headers=mentee[1]).status_code == 422
    assert client.get("/goals?status=DONE", headers=mentee[1]).status_code == 422


def test_get_goals_status_filter(client, mentee):
    yesterday = (date.today() - timedelta(days=2)).isoformat()
    _create(client, mentee[1], title="idle")
    _create(client, mentee[1], title="late", progress=10, dueDate=yesterday)
    resp = client.get("/goals?status=OVERDUE", headers=mentee[1])
    assert [g["title"] for g in resp.json()["goals"]] == ["late"]


def test_goals_scoped_by_user(client, in_memory_engine, mentee):
    _, other_headers = _make_user(in_memory_engine, "other", "MENTEE")
    goal = _create(client, mentee[1], title="Mine")
    _create(client, other_headers, title="Theirs")

    data = client.get("/goals", headers=mentee[1]).json()
    assert [g["title"] for g in data["goals"]] == ["Mine"]
    assert client.get(f"/goals/{goal['id']}", headers=other_headers).status_code == 404
    resp = client.patch(f"/goals/{goal['id']}", json={"title": "Stolen"}, headers=other_headers)
    assert resp.status_code == 404


def test_patch_goal_progress_and_milestones(client, mentee):
    goal = _create(client, mentee[1])
    resp = client.patch(f"/goals/{goal['id']}", json={"progress": 40}, headers=mentee[1])
    assert resp.status_code == 200
    assert resp.json()["effectiveStatus"] == "IN_PROGRESS"

    milestones = [{"title": f"m{i}", "completed": i == 0} for i in range(4)]
    resp = client.patch(f"/goals/{goal['id']}", json={"milestones": milestones}, headers=mentee[1])
    data = resp.json()
    assert data["progress"] == 25
    assert [m["title"] for m in data["milestones"]] == ["m0", "m1", "m2", "m3"]


def test_patch_goal_complete(client, mentee):
    goal = _create(client, mentee[1])
    data = client.patch(
        f"/goals/{goal['id']}", json={"status": "COMPLETED"}, headers=mentee[1]
    ).json()
    assert data["status"] == "COMPLETED"
    assert data["progress"] == 100
    assert data["completedAt"] is not None


def test_patch_goal_rejects_overdue_and_bad_progress(client, mentee):
    goal = _create(client, mentee[1])
    url = f"/goals/{goal['id']}"
    assert client.patch(url, json={"status": "OVERDUE"}, headers=mentee[1]).status_code == 422
    assert client.patch(url, json={"progress": 101}, headers=mentee[1]).status_code == 422


def test_patch_goal_status_contradicting_progress_400(client, mentee):
    goal = _create(client, mentee[1], progress=20)
    url = f"/goals/{goal['id']}"
    resp = client.patch(url, json={"progress": 40, "status": "COMPLETED"}, headers=mentee[1])
    assert resp.status_code == 400
    assert "COMPLETED" in resp.json()["message"]
    stored = client.get(url, headers=mentee[1]).json()
    assert stored["progress"] == 20
    assert stored["revision"] == goal["revision"]


def test_duplicate_milestone_ids_422(client, mentee):
    dupes = [{"id": "m1", "title": "a"}, {"id": "m1", "title": "b"}]
    resp = client.post("/goals", json={"title": "x", "milestones": dupes}, headers=mentee[1])
    assert resp.status_code == 422
    goal = _create(client, mentee[1])
    resp = client.patch(f"/goals/{goal['id']}", json={"milestones": dupes}, headers=mentee[1])
    assert resp.status_code == 422


def test_patch_goal_if_match_conflict(client, mentee):
    goal = _create(client, mentee[1])
    url = f"/goals/{goal['id']}"
    first = client.patch(url, json={"title": "A"}, headers={**mentee[1], "If-Match": "1"})
    assert first.status_code == 200
    assert first.json()["revision"] == 2
    stale = client.patch(url, json={"title": "B"}, headers={**mentee[1], "If-Match": "1"})
    assert stale.status_code == 409
    assert "revision" in stale.json()["message"]
    assert client.get(url, headers=mentee[1]).json()["title"] == "A"


def test_help_flag_endpoint(client, mentee):
    goal = _create(client, mentee[1])
    url = f"/goals/{goal['id']}/help"
    raised = client.put(url, json={"needsHelp": True}, headers=mentee[1]).json()
    assert raised["needsHelp"] is True
    assert raised["helpRequestedAt"] is not None

    again = client.put(url, json={"needsHelp": True}, headers=mentee[1]).json()
    assert again["helpRequestedAt"] == raised["helpRequestedAt"]

    lowered = client.put(url, json={"needsHelp": False}, headers=mentee[1]).json()
    assert lowered["needsHelp"] is False
    assert lowered["helpRequestedAt"] == raised["helpRequestedAt"]


def test_delete_goal_twice_returns_404(client, mentee):
    goal = _create(client, mentee[1])
    url = f"/goals/{goal['id']}"
    assert client.delete(url, headers=mentee[1]).status_code == 200
    resp = client.delete(url, headers=mentee[1])
    assert resp.status_code == 404
    assert resp.json()["message"] == "Goal not found."


def test_goal_stats_endpoint(client, mentee):
    _create(client, mentee[1], title="done", progress=100)
    _create(client, mentee[1], title="busy", progress=10)
    resp = client.get("/goals/stats", headers=mentee[1])
    assert resp.status_code == 200
    stats = resp.json()["stats"]
    assert stats["totalGoals"] == 2
    assert stats["completedGoals"] == 1
    assert stats["inProgressGoals"] == 1
    assert stats["completionRate"] == 50


def test_store_failure_returns_500(fake_get_session, mentee):
    @contextmanager
    def broken():
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))
        yield

    with (
        patch("api.main.get_session", broken),
        patch("core.auth.get_session", fake_get_session),
    ):
        client = TestClient(app)
        resp = client.get("/goals", headers=mentee[1])
    assert resp.status_code == 500
    assert resp.json()["message"] == "Could not load goals."


# --- mentor and admin ----------------------------------------------------------------


def test_mentor_sees_visible_goals_only(client, mentee, mentor, assigned):
    goal = _create(client, mentee[1], title="Shared")
    _create(client, mentee[1], title="Private", visibleToMentor=False)

    data = client.get("/mentor/goals", headers=mentor[1]).json()
    assert [g["title"] for g in data["goals"]] == ["Shared"]
    assert data["goals"][0]["effectiveStatus"] == "NOT_STARTED"

    client.patch(f"/goals/{goal['id']}", json={"visibleToMentor": False}, headers=mentee[1])
    assert client.get("/mentor/goals", headers=mentor[1]).json()["goals"] == []

    client.patch(f"/goals/{goal['id']}", json={"visibleToMentor": True}, headers=mentee[1])
    assert client.get("/mentor/goals", headers=mentor[1]).json()["total"] == 1


def test_mentor_help_requests(client, mentee, mentor, assigned):
    first = _create(client, mentee[1], title="first")
    second = _create(client, mentee[1], title="second")
    _create(client, mentee[1], title="fine")
    client.put(f"/goals/{second['id']}/help", json={"needsHelp": True}, headers=mentee[1])
    client.put(f"/goals/{first['id']}/help", json={"needsHelp": True}, headers=mentee[1])

    data = client.get("/mentor/goals/help", headers=mentor[1]).json()
    assert [g["title"] for g in data["goals"]] == ["second", "first"]


def test_mentor_single_mentee_view(client, in_memory_engine, mentee, mentor, assigned):
    _create(client, mentee[1], title="Shared")
    resp = client.get(f"/mentor/mentees/{mentee[0]}/goals", headers=mentor[1])
    assert resp.status_code == 200
    assert resp.json()["total"] == 1

    stranger_id, _ = _make_user(in_memory_engine, "stranger", "MENTEE")
    resp = client.get(f"/mentor/mentees/{stranger_id}/goals", headers=mentor[1])
    assert resp.status_code == 404


def test_unassigned_mentor_sees_nothing(client, mentee, mentor):
    _create(client, mentee[1])
    assert client.get("/mentor/goals", headers=mentor[1]).json()["goals"] == []


def test_admin_lists_all_goals(client, in_memory_engine, mentee, admin):
    _, other_headers = _make_user(in_memory_engine, "other", "MENTEE")
    _create(client, mentee[1], title="one")
    _create(client, other_headers, title="two")
    data = client.get("/admin/goals", headers=admin[1]).json()
    assert [g["title"] for g in data["goals"]] == ["one", "two"]


def test_admin_assignment_validates_roles(client, admin, mentee, mentor):
    resp = client.post(
        "/admin/assignments",
        json={"mentorId": mentee[0], "menteeId": mentor[0]},
        headers=admin[1],
    )
    assert resp.status_code == 400
    assert "mentor" in resp.json()["message"]


def test_admin_removes_assignment(client, admin, mentee, mentor, assigned):
    _create(client, mentee[1])
    body = {"mentorId": mentor[0], "menteeId": mentee[0]}
    resp = client.request("DELETE", "/admin/assignments", json=body, headers=admin[1])
    assert resp.status_code == 200
    assert client.get("/mentor/goals", headers=mentor[1]).json()["goals"] == []
    resp = client.request("DELETE", "/admin/assignments", json=body, headers=admin[1])
    assert resp.status_code == 404
