from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from sqlalchemy.orm import Session

from ai.providers import AIProvider, get_provider
from config import Settings
from services.github_service import GitHubClient
from services.push_service import PushDispatcher
from services.user_state import UserActivityState
from utils.encryption import decrypt_secret

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Collaborators shared by the reminder flows, built once per process."""

    settings: Settings
    session_factory: Callable[[], Session]
    push: PushDispatcher
    ai: AIProvider | None = None
    github_factory: Callable[[str], GitHubClient] | None = None

    def github_for(self, state: UserActivityState) -> GitHubClient | None:
        """Return a client for the user's linked account, or None when not linked."""
        if not state.github_linked or self.github_factory is None:
            return None
        token = decrypt_secret(state.github_token_encrypted)
        if not token:
            return None
        return self.github_factory(token)


def build_service_context(app_settings: Settings, session_factory: Callable[[], Session]) -> ServiceContext:
    ai = None
    if app_settings.ai_enabled:
        ai = get_provider(
            "google",
            api_key=app_settings.GEMINI_API_KEY,
            model=app_settings.GEMINI_MODEL,
            timeout_seconds=app_settings.AI_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("GEMINI_API_KEY not set; notifications will use static text")

    push = PushDispatcher(
        credentials_path=app_settings.FIREBASE_CREDENTIALS_PATH,
        project_id=app_settings.FCM_PROJECT_ID,
        link_url=app_settings.PUSH_LINK_URL,
        timeout_seconds=app_settings.FCM_TIMEOUT_SECONDS,
    )
    if not app_settings.push_enabled:
        logger.warning("FIREBASE_CREDENTIALS_PATH not set; push delivery is disabled")

    def github_factory(token: str) -> GitHubClient:
        return GitHubClient(
            token,
            base_url=app_settings.GITHUB_API_URL,
            timeout_seconds=app_settings.GITHUB_TIMEOUT_SECONDS,
        )

    return ServiceContext(
        settings=app_settings,
        session_factory=session_factory,
        push=push,
        ai=ai,
        github_factory=github_factory,
    )


def get_service_context(request: Request) -> ServiceContext:
    return request.app.state.services
