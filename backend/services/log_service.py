from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from db.models import LearningLog, User
from services.errors import AccessDeniedError, NotFoundError, ValidationError
from services.user_state import get_or_create_user, touch_activity_times
from utils.date_values import (
    DateValue,
    coerce_date_value,
    date_value_to_json,
    deserialize_date_value,
    normalize_day_key,
    serialize_date_value,
)

UPDATABLE_FIELDS = {
    "startTime": "start_time",
    "endTime": "end_time",
    "learnedToday": "learned_today",
    "mood": "mood",
}


@dataclass
class LogEntry:
    owner_id: str
    date: DateValue | None
    start_time: str | None = None
    end_time: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    mood: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def parse_tags(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    items = raw
    if isinstance(raw, str):
        try:
            items = json.loads(raw)
        except ValueError:
            items = [part for part in raw.split(",")]
    if not isinstance(items, (list, tuple, set)):
        return ()
    cleaned = (str(tag).strip() for tag in items if tag is not None)
    # A tag counts once per entry; first spelling wins.
    return tuple(dict.fromkeys(tag for tag in cleaned if tag))


def entry_from_row(row: LearningLog) -> LogEntry:
    return LogEntry(
        owner_id=row.user_id,
        date=deserialize_date_value(row.date_kind, row.date_raw),
        start_time=row.start_time,
        end_time=row.end_time,
        tags=parse_tags(row.tags),
        mood=row.mood,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def serialize_log(row: LearningLog) -> dict:
    return {
        "id": row.id,
        "uid": row.user_id,
        "date": date_value_to_json(deserialize_date_value(row.date_kind, row.date_raw)),
        "dayKey": row.day_key,
        "startTime": row.start_time,
        "endTime": row.end_time,
        "learnedToday": row.learned_today,
        "tags": list(parse_tags(row.tags)),
        "mood": row.mood,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def _user_timezone(db: Session, user_id: str) -> str | None:
    user = db.query(User).filter(User.id == user_id).first()
    return user.timezone if user else None


def _apply_date(row: LearningLog, raw_date: Any, tz_name: str | None) -> None:
    value = coerce_date_value(raw_date)
    if value is None:
        raise ValidationError("date is required")
    row.date_kind, row.date_raw = serialize_date_value(value)
    row.day_key = normalize_day_key(value, tz_name)


def create_log(db: Session, user_id: str, payload: dict) -> LearningLog:
    missing = [name for name in ("date", "startTime", "endTime") if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    user = get_or_create_user(db, user_id)
    row = LearningLog(
        user_id=user_id,
        start_time=payload.get("startTime"),
        end_time=payload.get("endTime"),
        learned_today=payload.get("learnedToday"),
        tags=json.dumps(list(parse_tags(payload.get("tags") or []))),
        mood=payload.get("mood") or "good",
    )
    _apply_date(row, payload.get("date"), user.timezone)
    db.add(row)
    db.commit()
    db.refresh(row)

    touch_activity_times(db, user_id, row.start_time, row.end_time)
    return row


def get_owned_log(db: Session, user_id: str, log_id: str) -> LearningLog:
    row = db.query(LearningLog).filter(LearningLog.id == log_id).first()
    if not row:
        raise NotFoundError("Log not found")
    if row.user_id != user_id:
        raise AccessDeniedError("Access denied")
    return row


def update_log(db: Session, user_id: str, log_id: str, updates: dict) -> LearningLog:
    row = get_owned_log(db, user_id, log_id)
    for key, column in UPDATABLE_FIELDS.items():
        if key in updates:
            setattr(row, column, updates[key])
    if "tags" in updates:
        row.tags = json.dumps(list(parse_tags(updates.get("tags") or [])))
    if "date" in updates:
        _apply_date(row, updates.get("date"), _user_timezone(db, user_id))
    db.commit()
    db.refresh(row)

    if updates.get("startTime") or updates.get("endTime"):
        touch_activity_times(db, user_id, updates.get("startTime"), updates.get("endTime"))
    return row


def delete_log(db: Session, user_id: str, log_id: str) -> None:
    row = get_owned_log(db, user_id, log_id)
    db.delete(row)
    db.commit()


def list_logs(db: Session, user_id: str, page: int = 1, limit: int = 20) -> tuple[list[LearningLog], int]:
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    query = db.query(LearningLog).filter(LearningLog.user_id == user_id)
    total = query.count()
    rows = (
        query.order_by(LearningLog.day_key.desc(), LearningLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def load_entries(db: Session, user_id: str) -> list[LogEntry]:
    rows = db.query(LearningLog).filter(LearningLog.user_id == user_id).all()
    return [entry_from_row(row) for row in rows]


def has_log_for_day(db: Session, user_id: str, day: str) -> bool:
    return (
        db.query(LearningLog.id)
        .filter(LearningLog.user_id == user_id, LearningLog.day_key == day)
        .first()
        is not None
    )
