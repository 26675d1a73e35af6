import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.log_service import (
    create_log,
    delete_log,
    get_owned_log,
    list_logs,
    load_entries,
    serialize_log,
    update_log,
)
from services.stats_service import compute_stats

router = APIRouter(prefix="/logs", tags=["logs"])
logger = logging.getLogger(__name__)


class LogCreate(BaseModel):
    date: Any = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    learnedToday: Optional[str] = None
    tags: Optional[list[str]] = None
    mood: Optional[str] = None


class LogUpdate(BaseModel):
    date: Any = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    learnedToday: Optional[str] = None
    tags: Optional[list[str]] = None
    mood: Optional[str] = None


@router.get("/stats")
def get_stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entries = load_entries(db, user.id)
    snapshot = compute_stats(entries, tz_name=user.timezone)
    return {"success": True, "data": snapshot.to_dict()}


@router.get("")
def get_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = list_logs(db, user.id, page, limit)
    return {
        "success": True,
        "data": [serialize_log(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.post("", status_code=201)
def add_log(req: LogCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = create_log(db, user.id, req.model_dump())
    logger.info(f"Created log {row.id} for {user.id}")
    return {"success": True, "data": serialize_log(row)}


@router.get("/{log_id}")
def get_log(log_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "data": serialize_log(get_owned_log(db, user.id, log_id))}


@router.put("/{log_id}")
def edit_log(
    log_id: str,
    req: LogUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = update_log(db, user.id, log_id, req.model_dump(exclude_unset=True))
    return {"success": True, "data": serialize_log(row)}


@router.delete("/{log_id}")
def remove_log(log_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    delete_log(db, user.id, log_id)
    return {"success": True, "message": "Log deleted successfully"}
