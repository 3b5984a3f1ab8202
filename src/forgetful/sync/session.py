"""Authentication session synchronized across contexts.

The stored blob is validated into a Session on every load. A context is
anonymous when the synchronized value is None.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from forgetful.cache.keys import StorageKeys
from forgetful.storage.base import PersistentStore
from forgetful.sync.broadcast import Broadcaster
from forgetful.sync.messages import MessageType
from forgetful.sync.synchronizer import ModelCodec, StateSynchronizer, SyncSummary


class SessionUser(BaseModel):
    """User the session belongs to."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    email: str | None = None


class Session(BaseModel):
    """Authenticated session issued by the backend."""

    model_config = ConfigDict(extra="allow", frozen=True)

    user: SessionUser
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = None  # epoch seconds

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at


@dataclass(frozen=True)
class SessionSummary(SyncSummary):
    is_authenticated: bool = False
    user_id: str | None = None
    email: str | None = None
    expires_at: int | None = None


class SessionSynchronizer(StateSynchronizer[Session]):
    """Synchronizes the auth_session key."""

    default_message_type = MessageType.AUTH_STATE_CHANGED

    def __init__(
        self,
        store: PersistentStore,
        broadcaster: Broadcaster | None = None,
        *,
        origin: str | None = None,
    ):
        super().__init__(
            StorageKeys.USER_SESSION,
            store,
            broadcaster,
            codec=ModelCodec(Session),
            origin=origin,
        )

    async def is_authenticated(self) -> bool:
        return await self.get_value() is not None

    async def user_id(self) -> str | None:
        session = await self.get_value()
        return session.user.id if session else None

    def is_expired(self, now: float | None = None) -> bool:
        """True when a session is held and its access token has expired."""
        return self.current is not None and self.current.is_expired(now)

    def summary(self) -> SessionSummary:
        session = self.current
        return SessionSummary(
            key=self.key,
            state=self.state,
            initialized=self.initialized,
            has_value=session is not None,
            is_authenticated=session is not None,
            user_id=session.user.id if session else None,
            email=session.user.email if session else None,
            expires_at=session.expires_at if session else None,
        )
