"""Tests for the configuration synchronizer."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from forgetful.cache.collection import CachedCollection
from forgetful.exceptions import ConfigValidationError
from forgetful.storage.memory import InMemoryStore
from forgetful.sync.preferences import (
    DEFAULT_STATUS_TYPES,
    BackendConfig,
    ConfigurationSynchronizer,
    UserPreferences,
)

ANON_KEY = "eyJhbGciOiJIUzI1NiJ9.payload.signature"


@pytest.fixture
def config_sync(store: InMemoryStore, clock) -> ConfigurationSynchronizer:
    return ConfigurationSynchronizer(
        store,
        origin="options",
        bookmarks=CachedCollection(capacity=5, ttl=300, clock=clock),
    )


class TestUserPreferences:
    """Tests for the preferences model."""

    def test_defaults(self) -> None:
        preferences = UserPreferences()

        assert preferences.custom_status_types == DEFAULT_STATUS_TYPES
        assert preferences.items_per_page == 25
        assert preferences.sort_by == "created_at"
        assert preferences.backend is None

    def test_camel_case_storage_shape(self) -> None:
        preferences = UserPreferences.model_validate(
            {"customStatusTypes": ["read"], "itemsPerPage": 50, "unknownKey": 1}
        )

        assert preferences.custom_status_types == ["read"]
        assert preferences.items_per_page == 50
        dumped = preferences.model_dump(by_alias=True)
        assert "customStatusTypes" in dumped
        assert "unknownKey" not in dumped

    @pytest.mark.parametrize("items_per_page", [0, 101])
    def test_items_per_page_bounds(self, items_per_page: int) -> None:
        with pytest.raises(ValueError):
            UserPreferences(items_per_page=items_per_page)

    def test_empty_status_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            UserPreferences(custom_status_types=["read", " "])


class TestBackendConfig:
    """Tests for backend connection validation."""

    def test_valid(self) -> None:
        backend = BackendConfig(url="https://project.example.co", anon_key=ANON_KEY)
        assert backend.model_dump(by_alias=True) == {
            "url": "https://project.example.co",
            "anonKey": ANON_KEY,
        }

    def test_http_rejected(self) -> None:
        with pytest.raises(ValueError):
            BackendConfig(url="http://project.example.co", anon_key=ANON_KEY)

    def test_bad_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            BackendConfig(url="https://project.example.co", anon_key="secret")


class TestConfigurationSynchronizer:
    """Tests for preference operations."""

    async def test_defaults_when_nothing_stored(
        self, config_sync: ConfigurationSynchronizer
    ) -> None:
        preferences = await config_sync.get_preferences()

        assert preferences == UserPreferences()
        assert config_sync.current is None

    async def test_update_preferences_merges(
        self, config_sync: ConfigurationSynchronizer, store: InMemoryStore
    ) -> None:
        await config_sync.update_preferences(theme="dark")
        await config_sync.update_preferences(items_per_page=50)

        preferences = await config_sync.get_preferences()
        assert preferences.theme == "dark"
        assert preferences.items_per_page == 50

        stored = await store.get("user_preferences")
        assert stored["theme"] == "dark"
        assert stored["itemsPerPage"] == 50

    async def test_invalid_update_rejected(self, config_sync: ConfigurationSynchronizer) -> None:
        with pytest.raises(ConfigValidationError):
            await config_sync.update_preferences(items_per_page=500)
        assert config_sync.current is None

    async def test_backend_config(
        self, config_sync: ConfigurationSynchronizer, store: InMemoryStore
    ) -> None:
        assert await config_sync.is_backend_configured() is False

        await config_sync.set_backend_config("https://project.example.co", ANON_KEY)

        assert await config_sync.is_backend_configured() is True
        backend = await config_sync.get_backend_config()
        assert backend is not None
        assert backend.url == "https://project.example.co"
        assert (await store.get("user_preferences"))["backend"]["anonKey"] == ANON_KEY

    @pytest.mark.parametrize(
        ("url", "anon_key"),
        [
            ("", ANON_KEY),
            ("https://project.example.co", ""),
            ("http://project.example.co", ANON_KEY),
            ("https://project.example.co", "not-a-jwt"),
        ],
    )
    async def test_invalid_backend_config(
        self, config_sync: ConfigurationSynchronizer, url: str, anon_key: str
    ) -> None:
        with pytest.raises(ConfigValidationError):
            await config_sync.set_backend_config(url, anon_key)
        assert await config_sync.is_backend_configured() is False

    async def test_custom_status_types(self, config_sync: ConfigurationSynchronizer) -> None:
        await config_sync.add_custom_status_type("archived")
        await config_sync.add_custom_status_type("archived")
        assert await config_sync.get_custom_status_types() == [*DEFAULT_STATUS_TYPES, "archived"]

        await config_sync.remove_custom_status_type("low-value")
        await config_sync.remove_custom_status_type("missing")
        assert "low-value" not in await config_sync.get_custom_status_types()

        await config_sync.set_custom_status_types(["read"])
        assert await config_sync.get_custom_status_types() == ["read"]

    async def test_invalid_status_types(self, config_sync: ConfigurationSynchronizer) -> None:
        with pytest.raises(ConfigValidationError):
            await config_sync.add_custom_status_type("  ")
        with pytest.raises(ConfigValidationError):
            await config_sync.set_custom_status_types("read")  # type: ignore[arg-type]
        with pytest.raises(ConfigValidationError):
            await config_sync.set_custom_status_types(["read", ""])

    async def test_listener_notified_on_update(
        self, config_sync: ConfigurationSynchronizer
    ) -> None:
        await config_sync.initialize()
        listener = MagicMock()
        config_sync.add_listener(listener)

        await config_sync.update_preferences(theme="dark")
        await config_sync.update_preferences(theme="dark")

        listener.assert_called_once()
        assert listener.call_args.args[0].theme == "dark"

    async def test_change_from_other_context(self, store: InMemoryStore) -> None:
        popup = ConfigurationSynchronizer(store, origin="popup")
        options = ConfigurationSynchronizer(store, origin="options")
        await popup.initialize()

        await options.update_preferences(compact_view=True)

        assert (await popup.get_preferences()).compact_view is True


class TestBookmarkCollections:
    """Tests for the embedded collection cache."""

    async def test_invalidate_one_owner(self, config_sync: ConfigurationSynchronizer) -> None:
        config_sync.bookmarks.set("user-1", [{"id": "1"}])
        config_sync.bookmarks.set("user-2", [])

        config_sync.invalidate_bookmarks("user-1")

        assert config_sync.bookmarks.get("user-1") is None
        assert config_sync.bookmarks.get("user-2") == []

    async def test_invalidate_all(self, config_sync: ConfigurationSynchronizer) -> None:
        config_sync.bookmarks.set("user-1", [{"id": "1"}])
        config_sync.bookmarks.set("user-2", [])

        config_sync.invalidate_bookmarks()

        assert config_sync.bookmarks.owners() == []

    async def test_summary(self, config_sync: ConfigurationSynchronizer) -> None:
        await config_sync.set_backend_config("https://project.example.co", ANON_KEY)
        config_sync.bookmarks.set("user-1", [])

        summary = config_sync.summary()

        assert summary.initialized is True
        assert summary.backend_configured is True
        assert summary.status_types_count == len(DEFAULT_STATUS_TYPES)
        assert summary.cached_owners == ["user-1"]


class TestConfigBackup:
    """Tests for export/import."""

    async def test_export_import(self, config_sync: ConfigurationSynchronizer) -> None:
        await config_sync.update_preferences(theme="dark", custom_status_types=["read"])
        exported = await config_sync.export_config()

        assert exported["version"] == 1
        assert "timestamp" in exported
        assert exported["preferences"]["customStatusTypes"] == ["read"]

        restored = ConfigurationSynchronizer(InMemoryStore())
        await restored.import_config(exported)

        preferences = await restored.get_preferences()
        assert preferences.theme == "dark"
        assert preferences.custom_status_types == ["read"]

    async def test_import_rejects_invalid_data(
        self, config_sync: ConfigurationSynchronizer
    ) -> None:
        with pytest.raises(ConfigValidationError):
            await config_sync.import_config("not a dict")  # type: ignore[arg-type]
        with pytest.raises(ConfigValidationError):
            await config_sync.import_config({"preferences": {"itemsPerPage": 0}})
