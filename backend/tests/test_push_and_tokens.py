from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from firebase_admin import exceptions as firebase_exceptions, messaging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402
from db.database import Base  # noqa: E402
from db.models import User  # noqa: E402
from services import push_service  # noqa: E402
from services.errors import ValidationError  # noqa: E402
from services.push_service import DispatchResult, PushDispatcher, classify_provider_error  # noqa: E402
from services.reminder_service import NotificationDecision, TriggerKind, deliver  # noqa: E402
from services.service_context import ServiceContext  # noqa: E402
from services.token_registry import register_token, remove_token  # noqa: E402
from services.user_state import activity_state_from_row, merge_user_fields  # noqa: E402


def _session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'tokens.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _new_user(db, user_id: str = "u1", **fields) -> User:
    user = User(id=user_id, onboarding_completed=True, **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


class FakeDispatcher:
    def __init__(self, result: DispatchResult):
        self.result = result
        self.sent: list[tuple[str, dict, dict]] = []

    async def send(self, token, notification, data=None):
        self.sent.append((token, notification, data))
        return self.result


def _patch_send(monkeypatch, outcome):
    calls = []

    def fake_send(message, dry_run=False, app=None):
        calls.append((message, app))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(push_service.messaging, "send", fake_send)
    return calls


def test_dead_token_codes_ask_for_removal():
    for code in (
        "UNREGISTERED",
        "messaging/registration-token-not-registered",
        "messaging/invalid-registration-token",
    ):
        result = classify_provider_error(code, "gone")
        assert result.should_remove
        assert result.error == "invalid_token"

    bad_format = classify_provider_error("INVALID_ARGUMENT", "The registration token is not a valid FCM registration token")
    assert bad_format.should_remove


def test_transient_errors_keep_the_token():
    result = classify_provider_error("INTERNAL", "backend error")
    assert not result.should_remove
    assert result.error == "backend error"
    assert result.to_dict() == {"success": False, "error": "backend error", "shouldRemove": False}


def test_unconfigured_dispatcher_reports_without_network():
    dispatcher = PushDispatcher(credentials_path="")
    result = asyncio.run(dispatcher.send("tok", {"title": "t", "body": "b"}))
    assert not result.success
    assert result.error == "Push provider not configured"

    result = asyncio.run(PushDispatcher(app=object()).send("", {"title": "t", "body": "b"}))
    assert result.error == "No push token registered"


def test_dispatcher_sends_one_fcm_message(monkeypatch):
    app = object()
    calls = _patch_send(monkeypatch, "projects/devtrack/messages/42")
    dispatcher = PushDispatcher(link_url="https://app.example", app=app)
    result = asyncio.run(dispatcher.send("tok", {"title": "Hi", "body": "There"}, {"streak": 3, "skip": None}))

    assert result.success
    assert result.message_id == "projects/devtrack/messages/42"
    assert len(calls) == 1
    message, used_app = calls[0]
    assert used_app is app
    assert message.token == "tok"
    assert message.notification.title == "Hi"
    assert message.data == {"streak": "3", "click_action": "OPEN_APP"}
    assert message.webpush.fcm_options.link == "https://app.example"


def test_plain_http_link_is_left_off_the_message(monkeypatch):
    calls = _patch_send(monkeypatch, "m1")
    asyncio.run(PushDispatcher(link_url="http://localhost:5173", app=object()).send("tok", {"title": "t", "body": "b"}))
    message, _ = calls[0]
    assert message.webpush.fcm_options is None


def test_unregistered_token_asks_for_removal(monkeypatch):
    calls = _patch_send(monkeypatch, messaging.UnregisteredError("Requested entity was not found."))
    result = asyncio.run(PushDispatcher(app=object()).send("stale", {"title": "t", "body": "b"}))
    assert not result.success
    assert result.should_remove
    assert len(calls) == 1


def test_malformed_registration_token_asks_for_removal(monkeypatch):
    _patch_send(
        monkeypatch,
        firebase_exceptions.InvalidArgumentError("The registration token is not a valid FCM registration token"),
    )
    result = asyncio.run(PushDispatcher(app=object()).send("junk", {"title": "t", "body": "b"}))
    assert result.should_remove
    assert result.error == "invalid_token"


def test_transient_provider_error_keeps_token_without_retry(monkeypatch):
    calls = _patch_send(monkeypatch, firebase_exceptions.InternalError("backend error"))
    result = asyncio.run(PushDispatcher(app=object()).send("tok", {"title": "t", "body": "b"}))
    assert not result.success
    assert not result.should_remove
    assert result.error == "backend error"
    assert len(calls) == 1


def test_unexpected_send_failure_becomes_failed_result(monkeypatch):
    _patch_send(monkeypatch, ValueError("Unexpected response body"))
    result = asyncio.run(PushDispatcher(app=object()).send("tok", {"title": "t", "body": "b"}))
    assert not result.success
    assert not result.should_remove
    assert result.error == "Unexpected response body"


def test_register_token_replaces_previous_token(tmp_path):
    db = _session_factory(tmp_path)()
    _new_user(db, preferences=json.dumps({"reminderMode": "fixed", "fixedTime": "20:00"}))

    register_token(db, "u1", "tok1")
    register_token(db, "u1", "tok2")

    db.expire_all()
    user = db.query(User).filter(User.id == "u1").one()
    assert user.push_token == "tok2"
    assert user.push_token_updated_at is not None
    assert json.loads(user.preferences)["fixedTime"] == "20:00"


def test_register_token_does_not_clobber_concurrent_preference_update(tmp_path):
    factory = _session_factory(tmp_path)
    first = factory()
    second = factory()
    _new_user(first)

    # first session holds a stale copy of the row while the second writes preferences
    stale = first.query(User).filter(User.id == "u1").one()
    assert stale.preferences is None
    merge_user_fields(second, "u1", {"preferences": json.dumps({"breakDetection": True})})

    register_token(first, "u1", "tok")

    check = factory()
    user = check.query(User).filter(User.id == "u1").one()
    assert user.push_token == "tok"
    assert json.loads(user.preferences) == {"breakDetection": True}


def test_register_token_creates_missing_user_row(tmp_path):
    db = _session_factory(tmp_path)()
    register_token(db, "newcomer", "tok")
    user = db.query(User).filter(User.id == "newcomer").one()
    assert user.push_token == "tok"
    assert user.onboarding_completed is False


def test_register_empty_token_is_rejected(tmp_path):
    db = _session_factory(tmp_path)()
    with pytest.raises(ValidationError):
        register_token(db, "u1", "   ")


def test_remove_token_keeps_the_rest_of_the_row(tmp_path):
    db = _session_factory(tmp_path)()
    _new_user(db, push_token="tok", github_username="octocat", user_goal="Freelance work")

    remove_token(db, "u1")

    db.expire_all()
    user = db.query(User).filter(User.id == "u1").one()
    assert user.push_token is None
    assert user.github_username == "octocat"
    assert user.user_goal == "Freelance work"


def test_rejected_token_is_cleared_after_delivery(tmp_path):
    factory = _session_factory(tmp_path)
    db = factory()
    user = _new_user(db, push_token="stale", last_start_time="09:00", timezone="UTC")
    state = activity_state_from_row(user)

    dispatcher = FakeDispatcher(classify_provider_error("UNREGISTERED", "gone"))
    ctx = ServiceContext(settings=Settings(), session_factory=factory, push=dispatcher)
    now = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)
    result = asyncio.run(deliver(ctx, db, state, NotificationDecision(TriggerKind.ADAPTIVE_MATCH), now=now, seed=1))

    assert result["userId"] == "u1"
    assert result["success"] is False
    assert result["shouldRemove"] is True
    assert dispatcher.sent[0][0] == "stale"
    db.expire_all()
    assert db.query(User).filter(User.id == "u1").one().push_token is None


def test_successful_delivery_keeps_token_and_carries_reminder_data(tmp_path):
    factory = _session_factory(tmp_path)
    db = factory()
    user = _new_user(db, push_token="tok", last_start_time="09:00", timezone="UTC", user_goal="Freelance work")
    state = activity_state_from_row(user)

    dispatcher = FakeDispatcher(DispatchResult(success=True, message_id="m1"))
    ctx = ServiceContext(settings=Settings(), session_factory=factory, push=dispatcher)
    now = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)
    result = asyncio.run(deliver(ctx, db, state, NotificationDecision(TriggerKind.ADAPTIVE_MATCH), now=now, seed=1))

    assert result == {"userId": "u1", "trigger": "adaptive_match", "success": True, "messageId": "m1"}
    _, notification, data = dispatcher.sent[0]
    assert data["type"] == "consistency_reminder"
    assert data["userGoal"] == "Freelance work"
    assert notification["body"]
    db.expire_all()
    assert db.query(User).filter(User.id == "u1").one().push_token == "tok"
