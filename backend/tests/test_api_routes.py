from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings, settings  # noqa: E402
from db.database import Base, get_db  # noqa: E402
from db.models import User  # noqa: E402
from main import app  # noqa: E402
from services.push_service import DispatchResult  # noqa: E402
from services.service_context import ServiceContext, get_service_context  # noqa: E402


class FakeDispatcher:
    def __init__(self):
        self.sent: list[tuple[str, dict, dict]] = []

    async def send(self, token, notification, data=None):
        self.sent.append((token, notification, data))
        return DispatchResult(success=True, message_id="projects/devtrack/messages/1")


@pytest.fixture
def env():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    dispatcher = FakeDispatcher()
    ctx = ServiceContext(settings=settings, session_factory=factory, push=dispatcher)

    def override_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_service_context] = lambda: ctx
    try:
        yield TestClient(app), factory, dispatcher
    finally:
        app.dependency_overrides.clear()


def _auth(user_id: str = "user-1") -> dict:
    token = jwt.encode({"sub": user_id}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def test_health_check(env):
    client, _, _ = env
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_requests_without_valid_bearer_are_rejected(env):
    client, _, _ = env
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_first_request_creates_user_with_default_preferences(env):
    client, factory, _ = env
    resp = client.get("/api/auth/me", headers=_auth())
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "user-1"
    assert body["onboardingCompleted"] is False
    assert body["preferences"] == {
        "reminderMode": "adaptive",
        "fixedTime": None,
        "breakDetection": False,
        "commitPattern": "end-only",
        "notifications": True,
    }
    db = factory()
    assert db.query(User).filter(User.id == "user-1").count() == 1
    db.close()


def test_profile_update_encrypts_github_token(env):
    client, factory, _ = env
    resp = client.put(
        "/api/auth/profile",
        headers=_auth(),
        json={
            "displayName": "Ada",
            "userGoal": "Working on side projects",
            "onboardingCompleted": True,
            "timezone": "UTC",
            "githubUsername": "ada",
            "githubToken": "ghp_secret",
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["displayName"] == "Ada"
    assert body["githubLinked"] is True
    assert "githubToken" not in body

    db = factory()
    user = db.query(User).filter(User.id == "user-1").one()
    assert user.github_token_encrypted and user.github_token_encrypted != "ghp_secret"
    db.close()


def test_profile_rejects_unknown_timezone(env):
    client, _, _ = env
    resp = client.put("/api/auth/profile", headers=_auth(), json={"timezone": "Mars/Olympus"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Unknown timezone: Mars/Olympus"}


def test_profile_null_onboarding_flag_is_ignored(env):
    client, _, _ = env
    client.put("/api/auth/profile", headers=_auth(), json={"onboardingCompleted": True})
    resp = client.put("/api/auth/profile", headers=_auth(), json={"onboardingCompleted": None, "displayName": "Ada"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["onboardingCompleted"] is True
    assert body["displayName"] == "Ada"


def test_preferences_partial_update_merges_over_defaults(env):
    client, _, _ = env
    resp = client.put(
        "/api/settings/preferences",
        headers=_auth(),
        json={"reminderMode": "fixed", "fixedTime": "8:30 PM"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["reminderMode"] == "fixed"

    resp = client.put("/api/settings/preferences", headers=_auth(), json={"breakDetection": True})
    prefs = resp.json()["data"]
    assert prefs["fixedTime"] == "8:30 PM"
    assert prefs["breakDetection"] is True
    assert prefs["notifications"] is True

    assert client.get("/api/settings/preferences", headers=_auth()).json()["data"] == prefs


def test_token_registration_keeps_preferences(env):
    client, _, _ = env
    client.put("/api/settings/preferences", headers=_auth(), json={"commitPattern": "frequent"})

    assert client.post("/api/notifications/register", headers=_auth(), json={"token": "tok1"}).status_code == 200
    assert client.post("/api/notifications/register", headers=_auth(), json={"token": "tok2"}).status_code == 200

    me = client.get("/api/auth/me", headers=_auth()).json()
    assert me["notificationsEnabled"] is True
    assert me["preferences"]["commitPattern"] == "frequent"

    status = client.get("/api/notifications/status", headers=_auth()).json()["data"]
    assert status["enabled"] is True
    assert status["tokenUpdatedAt"]

    assert client.delete("/api/notifications/register", headers=_auth()).status_code == 200
    assert client.get("/api/notifications/status", headers=_auth()).json()["data"]["enabled"] is False


def test_register_without_token_is_a_validation_error(env):
    client, _, _ = env
    resp = client.post("/api/notifications/register", headers=_auth(), json={"token": ""})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Push token is required"


def test_test_notification_uses_dispatcher(env):
    client, _, dispatcher = env
    no_token = client.post("/api/notifications/test", headers=_auth())
    assert no_token.status_code == 400
    assert no_token.json() == {"success": False, "error": "No push token registered"}

    client.post("/api/notifications/register", headers=_auth(), json={"token": "tok"})
    resp = client.post("/api/notifications/test", headers=_auth())
    assert resp.json() == {
        "success": True,
        "message": "Test notification sent",
        "messageId": "projects/devtrack/messages/1",
    }
    assert dispatcher.sent[0][0] == "tok"


def test_break_endpoint_reports_gating_reason(env):
    client, _, dispatcher = env
    client.post("/api/notifications/register", headers=_auth(), json={"token": "tok"})
    resp = client.post("/api/notifications/break", headers=_auth(), json={})
    assert resp.json() == {"success": False, "error": "Break detection disabled"}

    client.put(
        "/api/settings/preferences",
        headers=_auth(),
        json={"breakDetection": True, "commitPattern": "frequent"},
    )
    resp = client.post("/api/notifications/break", headers=_auth(), json={"inactiveMinutes": 120})
    assert resp.json()["success"] is True
    assert "120 minutes" in dispatcher.sent[-1][1]["body"]


def test_log_creation_requires_times(env):
    client, _, _ = env
    resp = client.post("/api/logs", headers=_auth(), json={"date": "2024-05-10"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Missing required fields: startTime, endTime"}


def test_log_crud_and_ownership(env):
    client, _, _ = env
    created = client.post(
        "/api/logs",
        headers=_auth(),
        json={
            "date": "2024-05-10",
            "startTime": "09:15",
            "endTime": "11:00",
            "learnedToday": "SQLAlchemy sessions",
            "tags": ["python", "sql", "python"],
        },
    )
    assert created.status_code == 201
    log = created.json()["data"]
    assert log["dayKey"] == "2024-05-10"
    assert log["tags"] == ["python", "sql"]
    assert log["mood"] == "good"

    me = client.get("/api/auth/me", headers=_auth()).json()
    assert me["lastStartTime"] == "09:15"
    assert me["lastEndTime"] == "11:00"

    log_id = log["id"]
    assert client.get(f"/api/logs/{log_id}", headers=_auth("intruder")).status_code == 403
    assert client.get("/api/logs/missing", headers=_auth()).status_code == 404

    updated = client.put(f"/api/logs/{log_id}", headers=_auth(), json={"startTime": "10:00", "mood": "great"})
    assert updated.json()["data"]["startTime"] == "10:00"
    assert updated.json()["data"]["endTime"] == "11:00"
    assert client.get("/api/auth/me", headers=_auth()).json()["lastStartTime"] == "10:00"

    listing = client.get("/api/logs?page=1&limit=10", headers=_auth()).json()
    assert listing["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    assert client.delete(f"/api/logs/{log_id}", headers=_auth("intruder")).status_code == 403
    assert client.delete(f"/api/logs/{log_id}", headers=_auth()).status_code == 200
    assert client.get(f"/api/logs/{log_id}", headers=_auth()).status_code == 404


def test_stats_endpoint(env):
    client, _, _ = env
    client.put("/api/auth/profile", headers=_auth(), json={"timezone": "UTC"})
    assert client.get("/api/logs/stats", headers=_auth()).json()["data"]["totalLogs"] == 0

    client.post(
        "/api/logs",
        headers=_auth(),
        json={"date": _today(), "startTime": "09:00", "endTime": "10:00", "tags": ["go"]},
    )
    stats = client.get("/api/logs/stats", headers=_auth()).json()["data"]
    assert stats["totalLogs"] == 1
    assert stats["currentStreak"] == 1
    assert stats["topTags"] == [{"tag": "go", "count": 1}]
    assert stats["lastLogDate"] == _today()


def test_delete_account_removes_user_and_logs(env):
    client, factory, _ = env
    client.post("/api/logs", headers=_auth(), json={"date": "2024-05-10", "startTime": "09:00", "endTime": "10:00"})
    resp = client.delete("/api/auth/me", headers=_auth())
    assert resp.json() == {"success": True, "message": "Account deleted", "logsDeleted": 1}
    db = factory()
    assert db.query(User).filter(User.id == "user-1").count() == 0
    db.close()


def test_reminder_check_requires_scheduler_key(env, monkeypatch):
    client, _, _ = env
    monkeypatch.setattr(settings, "SCHEDULER_API_KEY", "sched-key")

    assert client.post("/api/reminders/check").status_code == 401
    assert client.post("/api/reminders/check", headers={"x-api-key": "wrong"}).status_code == 401

    resp = client.post("/api/reminders/check", headers={"x-api-key": "sched-key"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["notificationsSent"] == 0

    dynamic = client.post("/api/reminders/dynamic-check", headers={"x-api-key": "sched-key"}).json()
    assert dynamic["usersChecked"] == 0


def test_production_config_requires_scheduler_key():
    prod = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="a-real-secret-value",
        ENCRYPTION_KEY="a-real-encryption-key",
        SCHEDULER_API_KEY="",
    )
    with pytest.raises(RuntimeError, match="SCHEDULER_API_KEY"):
        prod.validate_security_configuration()

    Settings(
        ENVIRONMENT="production",
        SECRET_KEY="a-real-secret-value",
        ENCRYPTION_KEY="a-real-encryption-key",
        SCHEDULER_API_KEY="sched",
    ).validate_security_configuration()
