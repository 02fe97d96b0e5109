"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Campus Eats API"
    debug: bool = False
    log_level: str = "INFO"

    # Database (SQLite for local development, PostgreSQL in production)
    database_url: str = "sqlite+aiosqlite:///./campus_eats.db"
    # Create missing tables at startup instead of running alembic (local use)
    create_tables: bool = False

    # Auth
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 72

    # Bootstrap administrator (skipped when empty)
    admin_email: str = ""
    admin_password: str = ""
    admin_display_name: str = "Administrator"

    # Uploads
    upload_dir: str = "uploads"
    public_base_url: str = "/api/v1/uploads"
    upload_max_bytes: int = 5 * 1024 * 1024

    # Listing
    default_page_size: int = 10
    max_page_size: int = 100

    # Idempotency
    idempotency_ttl_seconds: int = 24 * 3600
    idempotency_purge_minutes: int = 30

    # Scheduler
    scheduler_enabled: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
