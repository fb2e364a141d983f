"""Settings for the videogate service."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://redis:6379/0", "REDIS_URL")
    host: str = _env_field("0.0.0.0", "HOST")
    port: int = _env_field(8080, "PORT")

    # Catalog. The root is kept as a plain string because it is also part of
    # the counter keys (fraction_read-<ip>-./videos/clip.mp4).
    video_root: str = _env_field("./videos", "VIDEO_ROOT")
    stream_chunk_bytes: int = _env_field(64 * 1024, "STREAM_CHUNK_BYTES")

    # Identity
    forwarded_for_header: str = _env_field("X-Forwarded-For", "FORWARDED_FOR_HEADER")
    identity_mask_ipv4: bool = _env_field(False, "IDENTITY_MASK_IPV4")

    # Quotas and windows
    byte_quota: int = _env_field(1024 * 1024 * 1024, "BYTE_QUOTA")
    byte_window_seconds: int = _env_field(86400, "BYTE_WINDOW_SECONDS")
    fraction_quota: float = _env_field(10.0, "FRACTION_QUOTA")
    fraction_window_seconds: int = _env_field(3600, "FRACTION_WINDOW_SECONDS")
    ban_ttl_seconds: int = _env_field(86400, "BAN_TTL_SECONDS")

    # Partial-read detection
    partial_read_min_bytes: int = _env_field(100, "PARTIAL_READ_MIN_BYTES")
    partial_read_max_bytes: int = _env_field(1024 * 1024, "PARTIAL_READ_MAX_BYTES")
    partial_read_max_fraction: float = _env_field(0.25, "PARTIAL_READ_MAX_FRACTION")
    partial_read_grace_seconds: float = _env_field(10.0, "PARTIAL_READ_GRACE_SECONDS")
    recent_access_ttl_seconds: float = _env_field(10.0, "RECENT_ACCESS_TTL_SECONDS")

    # Reads at or below this size are not logged (HEAD-style probes).
    trivial_read_bytes: int = _env_field(100, "TRIVIAL_READ_BYTES")
    rejection_body: str = _env_field("NOPE", "REJECTION_BODY")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
    service_name: str = _env_field("videogate", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("video_root", mode="before")
    def _strip_trailing_slash(cls, value):  # type: ignore[override]
        """Keep `./videos/` and `./videos` producing the same resource keys."""
        if isinstance(value, str) and len(value) > 1:
            return value.rstrip("/") or "/"
        return value

    @field_validator("obs_log_level", mode="before")
    def _normalise_level(cls, value):  # type: ignore[override]
        return str(value or "INFO").upper()


settings = Settings()

