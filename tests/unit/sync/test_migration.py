"""Tests for persisted schema migrations."""

from __future__ import annotations

from unittest.mock import AsyncMock

from forgetful.storage.memory import InMemoryStore
from forgetful.sync.migration import SchemaMigrator


class TestSchemaMigrator:
    """Tests for running migration steps."""

    async def test_missing_version_is_zero(self, store: InMemoryStore) -> None:
        migrator = SchemaMigrator(store, target_version=1)

        assert await migrator.current_version() == 0
        assert await migrator.needs_migration() is True

    async def test_non_integer_version_is_zero(self, store: InMemoryStore) -> None:
        await store.set("configVersion", "1.0")
        assert await SchemaMigrator(store).current_version() == 0

    async def test_moves_legacy_status_types(self, store: InMemoryStore) -> None:
        await store.set("customStatusTypes", ["read", "later"])
        await store.set("user_preferences", {"theme": "dark"})

        version = await SchemaMigrator(store, target_version=1).migrate()

        assert version == 1
        assert await store.get("configVersion") == 1
        assert await store.get("customStatusTypes") is None
        assert await store.get("user_preferences") == {
            "theme": "dark",
            "customStatusTypes": ["read", "later"],
        }

    async def test_existing_preferences_win(self, store: InMemoryStore) -> None:
        await store.set("customStatusTypes", ["legacy"])
        await store.set("user_preferences", {"customStatusTypes": ["current"]})

        await SchemaMigrator(store, target_version=1).migrate()

        assert (await store.get("user_preferences"))["customStatusTypes"] == ["current"]

    async def test_fresh_store_records_version(self, store: InMemoryStore) -> None:
        assert await SchemaMigrator(store, target_version=1).migrate() == 1
        assert await store.get("configVersion") == 1
        assert await store.get("user_preferences") is None

    async def test_steps_run_in_order_once(self, store: InMemoryStore) -> None:
        calls: list[int] = []

        def step(n: int):
            async def run(s) -> None:
                calls.append(n)

            return run

        migrator = SchemaMigrator(
            store, steps={3: step(3), 1: step(1), 2: step(2)}, target_version=3
        )

        assert await migrator.migrate() == 3
        assert await migrator.migrate() == 3
        assert calls == [1, 2, 3]
        assert await migrator.needs_migration() is False

    async def test_failing_step_stops_at_last_good_version(self, store: InMemoryStore) -> None:
        second = AsyncMock(side_effect=RuntimeError("bad data"))
        third = AsyncMock()
        migrator = SchemaMigrator(
            store, steps={1: AsyncMock(), 2: second, 3: third}, target_version=3
        )

        assert await migrator.migrate() == 1
        assert await store.get("configVersion") == 1
        third.assert_not_called()

    async def test_missing_steps_jump_to_target(self, store: InMemoryStore) -> None:
        migrator = SchemaMigrator(store, steps={}, target_version=4)

        assert await migrator.migrate() == 4
        assert await store.get("configVersion") == 4

    async def test_already_current(self, store: InMemoryStore) -> None:
        await store.set("configVersion", 5)
        step = AsyncMock()

        assert await SchemaMigrator(store, steps={1: step}, target_version=1).migrate() == 5
        step.assert_not_called()
