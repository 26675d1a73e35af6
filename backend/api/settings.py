from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.preferences import PreferencesUpdate, dump_preferences, load_preferences, merge_preferences
from services.user_state import merge_user_fields

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/preferences")
def get_preferences(user: User = Depends(get_current_user)):
    return {"success": True, "data": load_preferences(user.preferences).model_dump()}


@router.put("/preferences")
def update_preferences(
    req: PreferencesUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    merged = merge_preferences(load_preferences(user.preferences), req)
    # Only the preferences column is written; the push token is left alone.
    merge_user_fields(db, user.id, {"preferences": dump_preferences(merged)})
    return {"success": True, "data": merged.model_dump()}
