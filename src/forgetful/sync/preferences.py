"""User configuration synchronized across contexts.

Holds the user_preferences blob (status types, backend connection,
display settings) and embeds the per-owner bookmark collection cache,
which is invalidated wholesale whenever an owner's records change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from forgetful.cache.collection import CachedCollection
from forgetful.cache.keys import StorageKeys
from forgetful.config import settings
from forgetful.exceptions import ConfigValidationError
from forgetful.storage.base import PersistentStore
from forgetful.sync.broadcast import Broadcaster
from forgetful.sync.messages import MessageType
from forgetful.sync.synchronizer import ModelCodec, StateSynchronizer, SyncSummary

DEFAULT_STATUS_TYPES = ["read", "good-reference", "low-value", "revisit-later"]


class BackendConfig(BaseModel):
    """Connection settings for the hosted backend."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    url: str
    anon_key: str

    @field_validator("url")
    @classmethod
    def _https_only(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("URL must start with https://")
        return value

    @field_validator("anon_key")
    @classmethod
    def _jwt_shaped(cls, value: str) -> str:
        if not value.startswith("eyJ"):
            raise ValueError("Invalid anon key format")
        return value


class UserPreferences(BaseModel):
    """Preferences stored under user_preferences (camelCase in storage)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )

    custom_status_types: list[str] = Field(default_factory=lambda: list(DEFAULT_STATUS_TYPES))
    backend: BackendConfig | None = None
    default_status: str = "read"
    auto_sync: bool = True
    show_notifications: bool = True
    compact_view: bool = False
    items_per_page: int = Field(default=25, ge=1, le=100)
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    theme: Literal["system", "light", "dark"] = "system"

    @field_validator("custom_status_types")
    @classmethod
    def _non_empty_names(cls, value: list[str]) -> list[str]:
        for status in value:
            if not status or not status.strip():
                raise ValueError("Status type must be a non-empty string")
        return value


@dataclass(frozen=True)
class ConfigSummary(SyncSummary):
    backend_configured: bool = False
    status_types_count: int = 0
    cached_owners: list[str] = field(default_factory=list)


class ConfigurationSynchronizer(StateSynchronizer[UserPreferences]):
    """Synchronizes the user_preferences key and caches bookmark collections."""

    default_message_type = MessageType.CONFIG_CHANGED

    def __init__(
        self,
        store: PersistentStore,
        broadcaster: Broadcaster | None = None,
        *,
        origin: str | None = None,
        bookmarks: CachedCollection | None = None,
    ):
        super().__init__(
            StorageKeys.USER_PREFERENCES,
            store,
            broadcaster,
            codec=ModelCodec(UserPreferences),
            origin=origin,
        )
        self.bookmarks = bookmarks or CachedCollection(
            capacity=settings.collection_capacity, ttl=settings.bookmarks_ttl
        )

    async def get_preferences(self) -> UserPreferences:
        """Stored preferences, or defaults when none were saved yet."""
        return await self.get_value() or UserPreferences()

    async def update_preferences(self, **changes: Any) -> UserPreferences:
        """Merge changes into the current preferences and save them."""
        current = await self.get_preferences()
        merged = {**current.model_dump(), **changes}
        try:
            preferences = UserPreferences.model_validate(merged)
        except pydantic.ValidationError as e:
            raise ConfigValidationError(f"Invalid preferences: {e}") from e
        await self.set_value(preferences)
        return preferences

    # -------------------------------------------------------------------------
    # Backend connection
    # -------------------------------------------------------------------------

    async def set_backend_config(self, url: str, anon_key: str) -> BackendConfig:
        if not url or not anon_key:
            raise ConfigValidationError("Both URL and anon key are required")
        try:
            backend = BackendConfig(url=url, anon_key=anon_key)
        except pydantic.ValidationError as e:
            raise ConfigValidationError(f"Invalid backend configuration: {e}") from e
        await self.update_preferences(backend=backend)
        return backend

    async def get_backend_config(self) -> BackendConfig | None:
        return (await self.get_preferences()).backend

    async def is_backend_configured(self) -> bool:
        return await self.get_backend_config() is not None

    # -------------------------------------------------------------------------
    # Status types
    # -------------------------------------------------------------------------

    async def get_custom_status_types(self) -> list[str]:
        return list((await self.get_preferences()).custom_status_types)

    async def set_custom_status_types(self, status_types: list[str]) -> None:
        if not isinstance(status_types, list):
            raise ConfigValidationError("Status types must be a list")
        await self.update_preferences(custom_status_types=status_types)

    async def add_custom_status_type(self, status_type: str) -> None:
        if not isinstance(status_type, str) or not status_type.strip():
            raise ConfigValidationError("Status type must be a non-empty string")
        current = await self.get_custom_status_types()
        if status_type not in current:
            await self.set_custom_status_types([*current, status_type])

    async def remove_custom_status_type(self, status_type: str) -> None:
        current = await self.get_custom_status_types()
        if status_type in current:
            await self.set_custom_status_types([s for s in current if s != status_type])

    # -------------------------------------------------------------------------
    # Bookmark collections
    # -------------------------------------------------------------------------

    def invalidate_bookmarks(self, owner_id: str | None = None) -> None:
        """Drop one owner's cached collection, or all of them."""
        if owner_id is None:
            self.bookmarks.invalidate_all()
        else:
            self.bookmarks.invalidate(owner_id)

    # -------------------------------------------------------------------------
    # Backup
    # -------------------------------------------------------------------------

    async def export_config(self) -> dict[str, Any]:
        preferences = await self.get_preferences()
        return {
            "version": settings.schema_version,
            "timestamp": datetime.now(UTC).isoformat(),
            "preferences": self.codec.dump(preferences),
        }

    async def import_config(self, data: dict[str, Any]) -> None:
        """Restore preferences from an export_config() payload."""
        if not isinstance(data, dict):
            raise ConfigValidationError("Invalid configuration data")
        if data.get("preferences") is not None:
            try:
                preferences = UserPreferences.model_validate(data["preferences"])
            except pydantic.ValidationError as e:
                raise ConfigValidationError(f"Invalid preferences: {e}") from e
            await self.set_value(preferences)

    def summary(self) -> ConfigSummary:
        preferences = self.current
        return ConfigSummary(
            key=self.key,
            state=self.state,
            initialized=self.initialized,
            has_value=preferences is not None,
            backend_configured=bool(preferences and preferences.backend),
            status_types_count=len(preferences.custom_status_types) if preferences else 0,
            cached_owners=self.bookmarks.owners(),
        )
