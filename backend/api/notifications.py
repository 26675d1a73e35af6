from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.preferences import load_preferences
from services.errors import ValidationError
from services.reminder_service import send_break_reminder, send_consistency_reminder
from services.service_context import ServiceContext, get_service_context
from services.token_registry import register_token, remove_token

router = APIRouter(prefix="/notifications", tags=["notifications"])


class TokenRequest(BaseModel):
    token: str = ""


class BreakRequest(BaseModel):
    inactiveMinutes: Optional[int] = Field(default=None, ge=0)


@router.post("/register")
def register(req: TokenRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    register_token(db, user.id, req.token)
    return {"success": True, "message": "Push token registered successfully"}


@router.delete("/register")
def unregister(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    remove_token(db, user.id)
    return {"success": True, "message": "Push token removed successfully"}


@router.post("/test")
async def send_test(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ctx: ServiceContext = Depends(get_service_context),
):
    result = await send_consistency_reminder(ctx, db, user.id)
    if not result.get("success"):
        raise ValidationError(result.get("error") or "Failed to send notification")
    return {"success": True, "message": "Test notification sent", "messageId": result.get("messageId")}


@router.post("/break")
async def send_break(
    req: BreakRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ctx: ServiceContext = Depends(get_service_context),
):
    minutes = req.inactiveMinutes if req.inactiveMinutes is not None else ctx.settings.DEFAULT_BREAK_MINUTES
    result = await send_break_reminder(ctx, db, user.id, minutes)
    if not result.get("success"):
        return {"success": False, "error": result.get("error")}
    return {"success": True, "message": "Break reminder sent", "messageId": result.get("messageId")}


@router.get("/status")
def get_status(user: User = Depends(get_current_user)):
    prefs = load_preferences(user.preferences)
    return {
        "success": True,
        "data": {
            "enabled": bool(user.push_token) and prefs.notifications,
            "lastStartTime": user.last_start_time,
            "lastEndTime": user.last_end_time,
            "tokenUpdatedAt": user.push_token_updated_at.isoformat() if user.push_token_updated_at else None,
        },
    }
