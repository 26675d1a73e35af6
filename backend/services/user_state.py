from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import LearningLog, User
from services.errors import NotFoundError
from services.preferences import Preferences, load_preferences

logger = logging.getLogger(__name__)


@dataclass
class UserActivityState:
    """Detached snapshot of a user row, safe to evaluate outside its session."""

    user_id: str
    last_start_time: str | None = None
    last_end_time: str | None = None
    push_token: str | None = None
    push_token_updated_at: datetime | None = None
    preferences: Preferences = field(default_factory=Preferences)
    github_username: str | None = None
    github_token_encrypted: str | None = None
    user_goal: str | None = None
    onboarding_completed: bool = False
    timezone: str | None = None
    updated_at: datetime | None = None

    @property
    def github_linked(self) -> bool:
        return bool(self.github_username and self.github_token_encrypted)


def activity_state_from_row(user: User) -> UserActivityState:
    return UserActivityState(
        user_id=user.id,
        last_start_time=user.last_start_time,
        last_end_time=user.last_end_time,
        push_token=user.push_token,
        push_token_updated_at=user.push_token_updated_at,
        preferences=load_preferences(user.preferences),
        github_username=user.github_username,
        github_token_encrypted=user.github_token_encrypted,
        user_goal=user.user_goal,
        onboarding_completed=bool(user.onboarding_completed),
        timezone=user.timezone,
        updated_at=user.updated_at,
    )


def merge_user_fields(db: Session, user_id: str, fields: dict) -> None:
    """Column-level upsert: only ``fields`` are written, everything else on the row stays.

    Mirrors a document ``set(..., merge=True)``; a missing row is created bare.
    """
    values = {**fields, "updated_at": datetime.utcnow()}
    updated = db.query(User).filter(User.id == user_id).update(values, synchronize_session="fetch")
    if updated:
        db.commit()
        return

    db.add(User(id=user_id, **values))
    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first; apply ours on top of it.
        db.rollback()
        db.query(User).filter(User.id == user_id).update(values, synchronize_session="fetch")
        db.commit()


def get_or_create_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user:
        return user
    merge_user_fields(db, user_id, {})
    return db.query(User).filter(User.id == user_id).one()


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def touch_activity_times(db: Session, user_id: str, start_time: str | None, end_time: str | None) -> None:
    fields = {}
    if start_time:
        fields["last_start_time"] = start_time
    if end_time:
        fields["last_end_time"] = end_time
    if fields:
        merge_user_fields(db, user_id, fields)


def delete_account(db: Session, user_id: str) -> int:
    """Delete the user row and every log they own; returns the number of logs removed."""
    get_user(db, user_id)
    removed = db.query(LearningLog).filter(LearningLog.user_id == user_id).delete(synchronize_session=False)
    db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Deleted account {user_id} and {removed} logs")
    return removed
