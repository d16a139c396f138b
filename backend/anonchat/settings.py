"""Settings for the anonymous chat backend."""

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
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("anonchat-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    cors_allow_origins: Any = _env_field((), "CORS_ALLOW_ORIGINS")

    # Seconds a searching participant waits for a human before the persona steps in
    match_fallback_seconds: float = _env_field(10.0, "MATCH_FALLBACK_SECONDS")
    persona_enabled: bool = _env_field(True, "PERSONA_ENABLED")
    persona_id: str = _env_field("persona", "PERSONA_ID")
    persona_display_name: str = _env_field("Sam", "PERSONA_DISPLAY_NAME")
    # Simulated typing delay bounds for persona replies
    persona_reply_min_seconds: float = _env_field(1.0, "PERSONA_REPLY_MIN_SECONDS")
    persona_reply_max_seconds: float = _env_field(3.0, "PERSONA_REPLY_MAX_SECONDS")

    # Participants silent for longer than this are swept as disconnected
    presence_stale_seconds: int = 180
    presence_sweep_interval_seconds: float = 30.0

    room_max_members: int = _env_field(10, "ROOM_MAX_MEMBERS")
    message_max_length: int = _env_field(2000, "MESSAGE_MAX_LENGTH")
    rate_limit_enabled: bool = _env_field(True, "RATE_LIMIT_ENABLED")

    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
    )

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    @field_validator("cors_allow_origins", mode="before")
    def _split_cors(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        return ()

    @field_validator("obs_log_level", mode="after")
    def _normalise_level(cls, value: str) -> str:  # type: ignore[override]
        return value.upper()


settings = Settings()
