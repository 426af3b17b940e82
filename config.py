import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """
    Process configuration, built once at startup and handed to create_app.
    Handlers read it from request.app.state.settings.
    """
    model_config = {"frozen": True}

    database_url: str = "mongodb://localhost:27017"
    database_name: str = "content_platform"

    jwt_secret: str = "super-secret-key-change-me"
    jwt_alg: str = "HS256"
    jwt_expires_min: int = 60 * 24 * 7
    reset_token_ttl_min: int = 60

    google_client_id: Optional[str] = None

    email_api_key: Optional[str] = None
    email_api_url: str = "https://api.resend.com/emails"
    email_from: str = "noreply@example.com"
    email_timeout: float = 10.0
    app_name: str = "App"
    frontend_url: str = "http://localhost:3000"

    fuel_api_key: Optional[str] = None
    fuel_api_host: str = "daily-petrol-diesel-lpg-cng-fuel-prices-in-india.p.rapidapi.com"
    fuel_api_timeout: float = 10.0
    fuel_schedule_hour: int = Field(9, ge=0, le=23)
    fuel_schedule_minute: int = Field(0, ge=0, le=59)
    fuel_scheduler_enabled: bool = True

    like_rate_limit: int = 30
    like_rate_window_sec: int = 15 * 60

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "content_platform"),
            jwt_secret=os.getenv("JWT_SECRET", "super-secret-key-change-me"),
            jwt_alg=os.getenv("JWT_ALG", "HS256"),
            jwt_expires_min=int(os.getenv("JWT_EXPIRES_MIN", str(60 * 24 * 7))),
            reset_token_ttl_min=int(os.getenv("RESET_TOKEN_TTL_MIN", "60")),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
            email_api_key=os.getenv("EMAIL_API_KEY") or None,
            email_api_url=os.getenv("EMAIL_API_URL", "https://api.resend.com/emails"),
            email_from=os.getenv("EMAIL_FROM", "noreply@example.com"),
            email_timeout=float(os.getenv("EMAIL_TIMEOUT", "10")),
            app_name=os.getenv("APP_NAME", "App"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            fuel_api_key=os.getenv("FUEL_API_KEY") or None,
            fuel_api_host=os.getenv(
                "FUEL_API_HOST", "daily-petrol-diesel-lpg-cng-fuel-prices-in-india.p.rapidapi.com"
            ),
            fuel_api_timeout=float(os.getenv("FUEL_API_TIMEOUT", "10")),
            fuel_schedule_hour=int(os.getenv("FUEL_SCHEDULE_HOUR", "9")),
            fuel_schedule_minute=int(os.getenv("FUEL_SCHEDULE_MINUTE", "0")),
            fuel_scheduler_enabled=_env_bool("FUEL_SCHEDULER_ENABLED", True),
            like_rate_limit=int(os.getenv("LIKE_RATE_LIMIT", "30")),
            like_rate_window_sec=int(os.getenv("LIKE_RATE_WINDOW_SEC", str(15 * 60))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
