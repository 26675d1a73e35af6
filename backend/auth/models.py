from typing import Any, Optional

from pydantic import BaseModel, Field


class ProfileUpdate(BaseModel):
    displayName: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = None
    userGoal: Optional[str] = None
    onboardingCompleted: Optional[bool] = None
    timezone: Optional[str] = None
    githubUsername: Optional[str] = None
    githubToken: Optional[str] = None


class ActivityUpdate(BaseModel):
    startTime: Optional[str] = None
    endTime: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    displayName: Optional[str] = None
    email: Optional[str] = None
    userGoal: Optional[str] = None
    onboardingCompleted: bool
    timezone: Optional[str] = None
    lastStartTime: Optional[str] = None
    lastEndTime: Optional[str] = None
    githubUsername: Optional[str] = None
    githubLinked: bool
    notificationsEnabled: bool
    preferences: dict[str, Any]
