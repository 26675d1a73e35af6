from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "DevTrack"
    LOG_LEVEL: str = "INFO"
    SECRET_KEY: str = "change-me-in-production"
    ENCRYPTION_KEY: str = "change-me-in-production-32bytes!"
    DATABASE_URL: str = "sqlite:///data/devtrack.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str | None = None

    # Shared secret for the external scheduler hitting /reminders/*.
    # Empty disables the check.
    SCHEDULER_API_KEY: str = ""

    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    AI_TIMEOUT_SECONDS: int = 30

    # Service-account JSON for the Firebase Admin SDK.
    FIREBASE_CREDENTIALS_PATH: str = ""
    FCM_PROJECT_ID: str = ""
    FCM_TIMEOUT_SECONDS: int = 10
    PUSH_LINK_URL: str = "http://localhost:5173"

    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TIMEOUT_SECONDS: int = 10

    REMINDER_WINDOW_MINUTES: int = 5
    MISSED_ACTIVITY_HOUR_LOCAL: int = 20
    PROJECT_REVIVAL_MIN_DAYS: int = 14
    PROJECT_REVIVAL_MAX_DAYS: int = 90
    PROJECT_REVIVAL_REPO_LIMIT: int = 5
    REMINDER_SWEEP_CONCURRENCY: int = 8
    DEFAULT_BREAK_MINUTES: int = 90

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    @property
    def ai_enabled(self) -> bool:
        return bool((self.GEMINI_API_KEY or "").strip())

    @property
    def push_enabled(self) -> bool:
        return bool((self.FIREBASE_CREDENTIALS_PATH or "").strip())

    def validate_security_configuration(self) -> None:
        if not self.is_production_like:
            return

        errors: list[str] = []
        if self.SECRET_KEY == "change-me-in-production":
            errors.append("SECRET_KEY must be changed from the default value")
        if self.ENCRYPTION_KEY == "change-me-in-production-32bytes!":
            errors.append("ENCRYPTION_KEY must be changed from the default value")
        if len((self.ENCRYPTION_KEY or "").strip()) < 16:
            errors.append("ENCRYPTION_KEY must be at least 16 characters")
        if not (self.SCHEDULER_API_KEY or "").strip():
            errors.append("SCHEDULER_API_KEY must be set so the reminder sweep is not publicly callable")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Insecure production configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
