from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_FROM_EMAIL = "noreply@yourdomain.com"


@dataclass(frozen=True)
class Settings:
    database_url: str
    timezone: str
    supabase_url: str | None
    supabase_service_role_key: str | None
    resend_api_key: str | None
    from_email: str
    email_timeout_seconds: float
    identity_timeout_seconds: float
    app_host: str
    app_port: int
    sqlite_busy_timeout_ms: int
    database_url_configured: bool = True
    from_email_configured: bool = False

    def environment_check(self) -> dict[str, bool]:
        return {
            "has_database_url": self.database_url_configured,
            "has_supabase_url": bool(self.supabase_url),
            "has_service_key": bool(self.supabase_service_role_key),
            "has_resend_key": bool(self.resend_api_key),
            "has_from_email": self.from_email_configured,
        }


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def get_settings() -> Settings:
    from_email = _optional("FROM_EMAIL")
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./paywatch.db"),
        timezone=os.getenv("TZ", "UTC"),
        supabase_url=_optional("SUPABASE_URL"),
        supabase_service_role_key=_optional("SUPABASE_SERVICE_ROLE_KEY"),
        resend_api_key=_optional("RESEND_API_KEY"),
        from_email=from_email or DEFAULT_FROM_EMAIL,
        email_timeout_seconds=float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10")),
        identity_timeout_seconds=float(os.getenv("IDENTITY_TIMEOUT_SECONDS", "10")),
        app_host=os.getenv("APP_HOST", "0.0.0.0"),
        app_port=int(os.getenv("APP_PORT", "8000")),
        sqlite_busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        database_url_configured=_optional("DATABASE_URL") is not None,
        from_email_configured=from_email is not None,
    )
