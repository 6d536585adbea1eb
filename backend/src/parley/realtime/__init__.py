"""In-process presence tracking and event fan-out over websockets."""

from .errors import ChatNotFoundError, InvalidCredentialError, RealtimeError, StorageError
from .events import EventKind, InboundKind, OutboundEvent, SessionUser
from .hub import RealtimeConfig, RealtimeHub, build_realtime_hub
from .lifecycle import ChatDirectory, ConnectionLifecycleHandler, ConnectionState, CredentialVerifier
from .presence import PresenceTracker
from .registry import ClientConnection, ConnectionRegistry
from .router import EventRouter

__all__ = [
    "ChatDirectory",
    "ChatNotFoundError",
    "ClientConnection",
    "ConnectionLifecycleHandler",
    "ConnectionRegistry",
    "ConnectionState",
    "CredentialVerifier",
    "EventKind",
    "EventRouter",
    "InboundKind",
    "InvalidCredentialError",
    "OutboundEvent",
    "PresenceTracker",
    "RealtimeConfig",
    "RealtimeError",
    "RealtimeHub",
    "SessionUser",
    "StorageError",
    "build_realtime_hub",
]
