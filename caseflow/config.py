import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/caseflow"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Case intelligence services (comparison, policy matching, OCR, ...)
    intelligence_base_url: str = os.getenv(
        "INTELLIGENCE_BASE_URL", "http://localhost:8081"
    )
    intelligence_api_key: str = os.getenv("INTELLIGENCE_API_KEY", "")
    intelligence_timeout_seconds: float = float(
        os.getenv("INTELLIGENCE_TIMEOUT_SECONDS", "120")
    )

    # Roles allowed to close a case without an approved supervisor review
    review_bypass_roles: str = os.getenv(
        "REVIEW_BYPASS_ROLES", "hr_manager,hr_business_partner"
    )

    # Celery / case events
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    case_events_webhook_url: str = os.getenv("CASE_EVENTS_WEBHOOK_URL", "")
    case_events_webhook_secret: str = os.getenv("CASE_EVENTS_WEBHOOK_SECRET", "")

    # Branding
    brand_name: str = os.getenv("BRAND_NAME", "Caseflow")


settings = Settings()
