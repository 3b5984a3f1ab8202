"""Schema migrations for persisted blobs.

The store keeps a schema-version integer under configVersion (missing
means 0). Steps registered for higher versions run in order before the
synchronizers trust what they load. A failing step is logged and stops
the run; startup continues on the last version that migrated cleanly.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from forgetful.cache.keys import StorageKeys
from forgetful.config import settings
from forgetful.storage.base import PersistentStore

logger = logging.getLogger(__name__)

MigrationStep = Callable[[PersistentStore], Awaitable[None]]


async def _move_legacy_status_types(store: PersistentStore) -> None:
    """v1: fold the top-level customStatusTypes key into user_preferences."""
    legacy = await store.get("customStatusTypes")
    if legacy is None:
        return

    preferences = await store.get(StorageKeys.USER_PREFERENCES) or {}
    preferences.setdefault("customStatusTypes", legacy)
    await store.set(StorageKeys.USER_PREFERENCES, preferences)
    await store.remove("customStatusTypes")


DEFAULT_STEPS: dict[int, MigrationStep] = {
    1: _move_legacy_status_types,
}


class SchemaMigrator:
    """Runs pending migration steps against a store."""

    def __init__(
        self,
        store: PersistentStore,
        steps: dict[int, MigrationStep] | None = None,
        target_version: int | None = None,
    ):
        self.store = store
        self.steps = dict(DEFAULT_STEPS if steps is None else steps)
        self.target_version = target_version or settings.schema_version

    async def current_version(self) -> int:
        version = await self.store.get(StorageKeys.SCHEMA_VERSION)
        return version if isinstance(version, int) else 0

    async def needs_migration(self) -> bool:
        return await self.current_version() < self.target_version

    async def migrate(self) -> int:
        """Run every pending step. Returns the version reached."""
        version = await self.current_version()

        for step_version in sorted(v for v in self.steps if version < v <= self.target_version):
            step = self.steps[step_version]
            try:
                await step(self.store)
                await self.store.set(StorageKeys.SCHEMA_VERSION, step_version)
            except Exception:
                logger.exception(f"Migration to schema version {step_version} failed")
                return version
            logger.info(f"Migrated store schema to version {step_version}")
            version = step_version

        if version < self.target_version:
            # No step registered for the remaining versions
            try:
                await self.store.set(StorageKeys.SCHEMA_VERSION, self.target_version)
            except Exception:
                logger.exception("Failed to record schema version")
                return version
            version = self.target_version

        return version
