from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"
    app_name: str = "DevSync API"
    app_version: str = "0.1.0"
    secret_key: str = "replace_me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    token_clock_skew_seconds: int = 0
    database_url: str = "sqlite+pysqlite:///./devsync.db"
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    log_level: str = "INFO"
    redact_fields: List[str] = ["authorization", "password", "hashed_password", "token", "secret"]
    redaction_placeholder: str = "***"
    notifications_default_limit: int = 20
    notifications_max_limit: int = 100
    realtime_send_timeout_seconds: float = 5.0
    task_status_forward_only: bool = False
    revoke_project_membership_on_team_removal: bool = False
    api_base_url: str = "http://localhost:8000"
    httpx_connect_timeout: float = 5.0
    httpx_read_timeout: float = 30.0
    metrics_enabled: bool = False
    metrics_namespace: str = "devsync"

    model_config = SettingsConfigDict(
        env_file=(".env", "/app/.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("access_token_expire_minutes", mode="before")
    @classmethod
    def validate_access_token_expiry(cls, value: int | str) -> int:
        int_value = int(value) if isinstance(value, str) else value
        if int_value <= 0:
            raise ValueError("ACCESS_TOKEN_EXPIRE_MINUTES must be greater than zero")
        return int_value

    @field_validator("token_clock_skew_seconds", mode="before")
    @classmethod
    def validate_clock_skew(cls, value: int | str) -> int:
        int_value = int(value) if isinstance(value, str) else value
        if int_value < 0:
            raise ValueError("TOKEN_CLOCK_SKEW_SECONDS must be zero or a positive integer")
        return int_value

    @field_validator("notifications_default_limit", "notifications_max_limit", mode="before")
    @classmethod
    def validate_positive_integers(cls, value: int | str) -> int:
        int_value = int(value) if isinstance(value, str) else value
        if int_value <= 0:
            raise ValueError("Value must be greater than zero")
        return int_value

    @field_validator(
        "realtime_send_timeout_seconds",
        "httpx_connect_timeout",
        "httpx_read_timeout",
        mode="before",
    )
    @classmethod
    def validate_positive_float(cls, value: float | str) -> float:
        float_value = float(value) if isinstance(value, str) else value
        if float_value <= 0:
            raise ValueError("Value must be greater than zero")
        return float_value

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str | None) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return level

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_cors_origins(cls, value: List[str] | str | None) -> List[str]:
        if isinstance(value, list):
            origins = [origin.strip() for origin in value if isinstance(origin, str) and origin.strip()]
        elif isinstance(value, str):
            origins = [origin.strip() for origin in value.split(",") if origin.strip()]
        elif value is None:
            return []
        else:
            raise ValueError("Invalid format for CORS_ORIGINS")
        if "*" in origins and len(origins) > 1:
            raise ValueError("CORS_ORIGINS cannot include '*' alongside specific origins")
        return origins

    @field_validator("redact_fields", mode="before")
    @classmethod
    def split_redact_fields(cls, value: List[str] | str | None) -> List[str]:
        if value is None:
            return []
        if isinstance(value, list):
            return [item.strip().lower() for item in value if isinstance(item, str) and item.strip()]
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        raise ValueError("Invalid format for REDACT_FIELDS")

    @field_validator("redaction_placeholder", mode="before")
    @classmethod
    def validate_redaction_placeholder(cls, value: str | None) -> str:
        if value is None:
            return "***"
        placeholder = value.strip()
        if not placeholder:
            raise ValueError("REDACTION_PLACEHOLDER cannot be empty")
        return placeholder

    @field_validator("metrics_namespace", mode="before")
    @classmethod
    def normalize_metrics_namespace(cls, value: str | None) -> str:
        if value is None:
            return "devsync"
        namespace = value.strip()
        if not namespace:
            raise ValueError("METRICS_NAMESPACE cannot be empty")
        return namespace

    @field_validator("api_base_url", mode="before")
    @classmethod
    def normalize_api_base_url(cls, value: str | None) -> str:
        base_url = str(value or "").strip().rstrip("/")
        if not base_url:
            raise ValueError("API_BASE_URL cannot be empty")
        return base_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
