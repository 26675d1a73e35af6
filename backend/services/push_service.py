"""Push delivery through Firebase Cloud Messaging via the Firebase Admin SDK."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging

from services.errors import InvalidTokenError

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "devtrack-push"

# Provider codes meaning the device token is dead and should be dropped.
INVALID_TOKEN_CODES = frozenset({
    "UNREGISTERED",
    "messaging/registration-token-not-registered",
    "messaging/invalid-registration-token",
})

_app_lock = threading.Lock()


@dataclass
class DispatchResult:
    success: bool
    message_id: str | None = None
    error: str | None = None
    should_remove: bool = False

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "messageId": self.message_id}
        return {"success": False, "error": self.error, "shouldRemove": self.should_remove}

    def raise_for_invalid_token(self) -> None:
        if self.should_remove:
            raise InvalidTokenError(self.error or "invalid_token")


def classify_provider_error(code: str | None, message: str | None = None) -> DispatchResult:
    """Map a provider error onto a result; dead-token codes ask for token removal."""
    normalized = (code or "").strip()
    text = (message or "").strip()
    if normalized in INVALID_TOKEN_CODES:
        return DispatchResult(success=False, error="invalid_token", should_remove=True)
    if normalized == "INVALID_ARGUMENT" and "registration token" in text.lower():
        return DispatchResult(success=False, error="invalid_token", should_remove=True)
    return DispatchResult(success=False, error=text or normalized or "push delivery failed")


def error_code(exc: firebase_exceptions.FirebaseError) -> str | None:
    # The SDK reports unregistered tokens as NOT_FOUND; the FCM code is what matters.
    if isinstance(exc, messaging.UnregisteredError):
        return "UNREGISTERED"
    return getattr(exc, "code", None)


def _stringify_data(data: dict | None) -> dict[str, str]:
    # FCM only accepts string values in the data map.
    out: dict[str, str] = {}
    for key, value in (data or {}).items():
        if value is None:
            continue
        out[str(key)] = value if isinstance(value, str) else str(value)
    return out


def build_message(token: str, notification: dict, data: dict | None, link_url: str) -> messaging.Message:
    # The SDK only accepts HTTPS links for web-push click-through.
    fcm_options = messaging.WebpushFCMOptions(link=link_url) if link_url.startswith("https://") else None
    return messaging.Message(
        token=token,
        notification=messaging.Notification(
            title=notification.get("title", ""),
            body=notification.get("body", ""),
        ),
        data={**_stringify_data(data), "click_action": "OPEN_APP"},
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                icon="/DevTrack.png",
                badge="/favicon.png",
                vibrate=[200, 100, 200],
            ),
            fcm_options=fcm_options,
        ),
    )


class PushDispatcher:
    """Sends one notification per call through a lazily initialised Firebase app.

    Credentials come from a service-account file, so the SDK refreshes its own
    OAuth tokens. Tests pass a ready ``app`` instead of a credentials path.
    """

    def __init__(
        self,
        credentials_path: str = "",
        project_id: str = "",
        link_url: str = "",
        timeout_seconds: float = 10,
        app: firebase_admin.App | None = None,
    ):
        self.credentials_path = credentials_path
        self.project_id = project_id
        self.link_url = link_url or ""
        self.timeout_seconds = timeout_seconds
        self._app = app

    @property
    def configured(self) -> bool:
        return self._app is not None or bool(self.credentials_path)

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app
        with _app_lock:
            if self._app is None:
                try:
                    self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
                except ValueError:
                    options = {"httpTimeout": self.timeout_seconds}
                    if self.project_id:
                        options["projectId"] = self.project_id
                    self._app = firebase_admin.initialize_app(
                        credentials.Certificate(self.credentials_path),
                        options,
                        name=FIREBASE_APP_NAME,
                    )
                    logger.info("Firebase Admin SDK initialised for push delivery")
        return self._app

    async def send(self, token: str, notification: dict, data: dict | None = None) -> DispatchResult:
        """Send one notification; never retries, the next scheduler tick is the retry."""
        if not token:
            return DispatchResult(success=False, error="No push token registered")
        if not self.configured:
            return DispatchResult(success=False, error="Push provider not configured")

        try:
            app = self._get_app()
            message = build_message(token, notification, data, self.link_url)
            message_id = await asyncio.to_thread(messaging.send, message, app=app)
        except firebase_exceptions.FirebaseError as e:
            code = error_code(e)
            logger.warning(f"Failed to send notification ({code}): {e}")
            return classify_provider_error(code, str(e))
        except Exception as e:
            logger.error(f"Push delivery failed: {e}")
            return DispatchResult(success=False, error=str(e) or "push delivery failed")

        logger.info(f"Notification sent: {message_id}")
        return DispatchResult(success=True, message_id=message_id)
