"""Settings for the Quizroom backend."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    # Unset means the in-process memory store is used instead of Postgres.
    postgres_url: Optional[str] = _env_field(None, "POSTGRES_URL", "DATABASE_URL")
    postgres_min_pool_size: int = _env_field(0, "POSTGRES_MIN_POOL_SIZE")
    postgres_max_pool_size: int = _env_field(5, "POSTGRES_MAX_POOL_SIZE")
    postgres_command_timeout: float = _env_field(5.0, "POSTGRES_COMMAND_TIMEOUT")
    secret_key: str = _env_field("dev-secret", "SECRET_KEY")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    service_name: str = _env_field("quizroom-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

    # Activities
    activity_min_duration_s: int = _env_field(10, "ACTIVITY_MIN_DURATION_S")
    activity_default_duration_s: int = _env_field(600, "ACTIVITY_DEFAULT_DURATION_S")
    activity_create_limit_per_day: int = _env_field(50, "ACTIVITY_CREATE_LIMIT_PER_DAY")
    answer_submit_limit_per_minute: int = _env_field(240, "ANSWER_SUBMIT_LIMIT_PER_MINUTE")
    notify_timeout_seconds: float = _env_field(2.0, "NOTIFY_TIMEOUT_SECONDS")
    scoring_policy: str = _env_field("always_correct", "SCORING_POLICY")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("cors_allow_origins", mode="before")
    def _split_cors(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        return ()

    @field_validator("scoring_policy", mode="before")
    def _normalise_policy(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return "always_correct"
        return str(value).strip().lower().replace("-", "_")


def _normalise_level(level: str) -> str:
    return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
