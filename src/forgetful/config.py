from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FORGETFUL_", env_file=".env", extra="ignore")

    # Name of the running context (popup, options, background)
    context_name: str = Field(default="background", validation_alias="FORGETFUL_CONTEXT")

    # Per-owner bookmark collection cache
    collection_capacity: int = Field(default=20, ge=1, validation_alias="COLLECTION_CAPACITY")

    bookmarks_ttl: float = Field(default=5 * 60, validation_alias="BOOKMARKS_TTL")  # seconds

    # Store quotas (per item / whole area), mirrors browser sync storage limits
    item_quota_bytes: int = Field(default=8192, validation_alias="ITEM_QUOTA_BYTES")
    total_quota_bytes: int = Field(default=102400, validation_alias="TOTAL_QUOTA_BYTES")

    # Redis-backed store and broadcast channel
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    store_namespace: str = Field(default="forgetful:store", validation_alias="STORE_NAMESPACE")
    change_channel: str = Field(default="forgetful:changes", validation_alias="CHANGE_CHANNEL")
    broadcast_channel: str = Field(
        default="forgetful:broadcast", validation_alias="BROADCAST_CHANNEL"
    )

    # Current schema version of persisted blobs
    schema_version: int = Field(default=1, validation_alias="SCHEMA_VERSION")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=False, validation_alias="LOG_JSON")


settings = Settings()
