import os

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(".env")

INSECURE_MARKERS = ("postgres:postgres@", "changeme", "change-me", "replace-me", "root@")


def _default_db_url() -> str:
    env_url = os.getenv("APP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_url:
        return env_url

    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_name = os.getenv("POSTGRES_DB", "library")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{db_name}"


class Settings(BaseSettings):
    app_name: str = "Library Inventory"
    version: str = "1.0.0"
    database_url: str = Field(default_factory=_default_db_url)
    echo_sql: bool = False
    default_page_size: int = Field(default=10, ge=1, le=500)
    strict_security: bool = False
    otel_enabled: bool = False
    otel_service_name: str = "library-inventory"
    otel_endpoint: str = "http://otel-collector:4318"

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


def get_settings() -> Settings:
    settings = Settings()
    if settings.strict_security:
        if settings.database_url and any(marker in settings.database_url for marker in INSECURE_MARKERS):
            raise RuntimeError("Insecure database credentials detected")
    return settings
