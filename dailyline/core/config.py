import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database & Queue
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: str = "redis://localhost:6379"
    ENTRY_HOOK_QUEUE_ENABLED: bool = False  # RQ hand-off; in-process background task when off

    # Web Push (VAPID)
    VAPID_PUBLIC_KEY: Optional[str] = None
    VAPID_PRIVATE_KEY: Optional[str] = None
    VAPID_SUBJECT: str = "mailto:support@dailyline.app"
    PUSH_TIMEOUT_SECONDS: int = 10
    PUSH_TTL_SECONDS: int = 3600
    NOTIFICATION_URL: str = "/"
    NOTIFICATION_ICON: str = "/icons/icon-192x192.png"
    NOTIFICATION_BADGE: str = "/icons/badge-72x72.png"

    # Continuity accounting
    CONTINUITY_TIMEZONE: str = "Asia/Tokyo"  # reference zone for streak day boundaries
    WEEKLY_GRACE_TOKENS: int = 2

    # Scheduler
    TICK_CONCURRENCY: int = 20
    TICK_LOOP_SECONDS: int = 60
    NOTIFICATION_LOG_RETENTION_DAYS: int = 90
    CRON_SECRET: Optional[str] = None  # bearer token for /v1/internal/* triggers

    # Caller identity forwarded by the auth gateway as X-User-Id
    REQUIRE_CALLER_ID: bool = False

    # App URLs
    BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()


def vapid_config(settings_obj: Optional[Settings] = None) -> dict:
    cfg = settings_obj or settings
    return {
        "public_key": cfg.VAPID_PUBLIC_KEY,
        "private_key": cfg.VAPID_PRIVATE_KEY,
        "subject": cfg.VAPID_SUBJECT,
    }


def validate_vapid_config(config: dict) -> List[str]:
    """Return the list of VAPID problems (empty when push can be sent)."""
    errors = []
    if not (config.get("public_key") or "").strip():
        errors.append("VAPID_PUBLIC_KEY is not set")
    if not (config.get("private_key") or "").strip():
        errors.append("VAPID_PRIVATE_KEY is not set")
    subject = config.get("subject") or ""
    if not subject.startswith(("mailto:", "https://")):
        errors.append("VAPID_SUBJECT must be a mailto: or https:// URI")
    return errors


def is_push_configured(settings_obj: Optional[Settings] = None) -> bool:
    return not validate_vapid_config(vapid_config(settings_obj))


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("dailyline")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "VAPID_PUBLIC_KEY",
        "VAPID_PRIVATE_KEY",
        "CRON_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
