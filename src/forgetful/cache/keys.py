"""Storage key schema.

Persisted keys are stable across versions:
- auth_session: authentication session blob
- user_preferences: user preferences blob
- configVersion: schema-version integer checked before initialization

In-process collection keys use the format {prefix}:{owner_id}.
"""

from __future__ import annotations


class StorageKeys:
    """Key generator following consistent naming convention."""

    USER_SESSION = "auth_session"
    USER_PREFERENCES = "user_preferences"
    SCHEMA_VERSION = "configVersion"

    BOOKMARKS_PREFIX = "bookmarks"

    @classmethod
    def persisted(cls) -> tuple[str, ...]:
        """All keys written to the persistent store by this layer."""
        return (cls.USER_SESSION, cls.USER_PREFERENCES, cls.SCHEMA_VERSION)

    @classmethod
    def bookmark_collection(cls, owner_id: str) -> str:
        """Key for an owner's cached bookmark collection."""
        return f"{cls.BOOKMARKS_PREFIX}:{owner_id}"

    @classmethod
    def parse_collection_key(cls, key: str) -> str | None:
        """Return the owner id of a collection key, or None if it isn't one."""
        prefix, sep, owner_id = key.partition(":")
        if not sep or prefix != cls.BOOKMARKS_PREFIX or not owner_id:
            return None
        return owner_id

    @classmethod
    def namespaced(cls, namespace: str, key: str) -> str:
        """Key as stored in a shared backend (e.g. Redis)."""
        return f"{namespace}:{key}"
