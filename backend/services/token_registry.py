from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from services.errors import ValidationError
from services.user_state import merge_user_fields

logger = logging.getLogger(__name__)


def register_token(db: Session, user_id: str, token: str) -> None:
    """Attach ``token`` to the user; only the token columns are written."""
    token = (token or "").strip()
    if not token:
        raise ValidationError("Push token is required")
    merge_user_fields(
        db,
        user_id,
        {"push_token": token, "push_token_updated_at": datetime.utcnow()},
    )
    logger.info(f"Registered push token for {user_id}")


def remove_token(db: Session, user_id: str) -> None:
    """Clear the user's token; the user row and every other field stay."""
    merge_user_fields(
        db,
        user_id,
        {"push_token": None, "push_token_updated_at": datetime.utcnow()},
    )
    logger.info(f"Removed push token for {user_id}")
