from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.models import ActivityUpdate, ProfileUpdate, UserResponse
from auth.utils import get_current_user, get_current_user_id
from db.database import get_db
from db.models import User
from services.errors import ValidationError
from services.preferences import load_preferences
from services.user_state import delete_account, get_user, merge_user_fields, touch_activity_times
from utils.encryption import encrypt_secret

router = APIRouter(prefix="/auth", tags=["auth"])

_PROFILE_COLUMNS = {
    "displayName": "display_name",
    "email": "email",
    "userGoal": "user_goal",
    "onboardingCompleted": "onboarding_completed",
    "timezone": "timezone",
    "githubUsername": "github_username",
}


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        displayName=user.display_name,
        email=user.email,
        userGoal=user.user_goal,
        onboardingCompleted=bool(user.onboarding_completed),
        timezone=user.timezone,
        lastStartTime=user.last_start_time,
        lastEndTime=user.last_end_time,
        githubUsername=user.github_username,
        githubLinked=bool(user.github_username and user.github_token_encrypted),
        notificationsEnabled=bool(user.push_token),
        preferences=load_preferences(user.preferences).model_dump(),
    )


def _validate_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except Exception:
        raise ValidationError(f"Unknown timezone: {name}")


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return _user_response(user)


@router.put("/profile", response_model=UserResponse)
def update_profile(
    req: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = req.model_dump(exclude_unset=True)
    # The column is NOT NULL; an explicit null leaves the flag unchanged.
    if changes.get("onboardingCompleted") is None:
        changes.pop("onboardingCompleted", None)
    if changes.get("timezone"):
        _validate_timezone(changes["timezone"])

    fields = {column: changes[key] for key, column in _PROFILE_COLUMNS.items() if key in changes}
    if "githubToken" in changes:
        token = (changes["githubToken"] or "").strip()
        fields["github_token_encrypted"] = encrypt_secret(token) if token else None
    if fields:
        merge_user_fields(db, user.id, fields)

    db.expire_all()
    return _user_response(get_user(db, user.id))


@router.put("/activity")
def update_activity_time(
    req: ActivityUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    touch_activity_times(db, user_id, req.startTime, req.endTime)
    return {"success": True, "message": "Activity time updated"}


@router.delete("/me")
def delete_me(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    removed = delete_account(db, user_id)
    return {"success": True, "message": "Account deleted", "logsDeleted": removed}
