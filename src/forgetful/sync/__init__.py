"""Cross-context state synchronization.

- StateSynchronizer: generic value kept consistent across contexts
- SessionSynchronizer / ConfigurationSynchronizer: the two synchronized fields
- Broadcaster: best-effort direct notifications between contexts
- SyncContext: wiring for one context
"""

from forgetful.sync.broadcast import (
    Broadcaster,
    BroadcastHub,
    InMemoryBroadcaster,
    RedisBroadcaster,
)
from forgetful.sync.context import SyncContext
from forgetful.sync.messages import MessageType, SyncMessage
from forgetful.sync.migration import SchemaMigrator
from forgetful.sync.preferences import (
    BackendConfig,
    ConfigSummary,
    ConfigurationSynchronizer,
    UserPreferences,
)
from forgetful.sync.session import Session, SessionSummary, SessionSynchronizer, SessionUser
from forgetful.sync.synchronizer import (
    JsonCodec,
    ModelCodec,
    StateSynchronizer,
    SyncState,
    SyncSummary,
    ValueCodec,
)

__all__ = [
    "BackendConfig",
    "BroadcastHub",
    "Broadcaster",
    "ConfigSummary",
    "ConfigurationSynchronizer",
    "InMemoryBroadcaster",
    "JsonCodec",
    "MessageType",
    "ModelCodec",
    "RedisBroadcaster",
    "SchemaMigrator",
    "Session",
    "SessionSummary",
    "SessionSynchronizer",
    "SessionUser",
    "StateSynchronizer",
    "SyncContext",
    "SyncMessage",
    "SyncState",
    "SyncSummary",
    "UserPreferences",
    "ValueCodec",
]
