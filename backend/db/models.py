import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Text, Boolean, ForeignKey, Index,
    DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Per-user activity state, keyed by the identity provider's subject id."""

    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    display_name = Column(Text)
    email = Column(Text)
    user_goal = Column(Text)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    timezone = Column(Text)  # IANA name; NULL means server local time
    last_start_time = Column(Text)  # "HH:MM"
    last_end_time = Column(Text)  # "HH:MM"
    push_token = Column(Text)
    push_token_updated_at = Column(DateTime)
    preferences = Column(Text)  # JSON object
    github_username = Column(Text)
    github_token_encrypted = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    logs = relationship("LearningLog", back_populates="user", cascade="all, delete-orphan")


class LearningLog(Base):
    __tablename__ = "learning_logs"

    id = Column(Text, primary_key=True, default=_new_id)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False)
    date_kind = Column(Text, nullable=False, default="iso")  # epoch | calendar | iso
    date_raw = Column(Text, nullable=False)
    day_key = Column(Text, nullable=False)  # normalized YYYY-MM-DD
    start_time = Column(Text)
    end_time = Column(Text)
    learned_today = Column(Text)
    tags = Column(Text)  # JSON array
    mood = Column(Text, default="good")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="logs")

    __table_args__ = (
        Index("ix_learning_logs_user_day", "user_id", "day_key"),
    )
