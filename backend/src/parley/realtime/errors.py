"""Error types raised across the realtime layer."""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for realtime failures."""


class InvalidCredentialError(RealtimeError):
    """Raised when a connection handshake carries no usable session token."""


class ChatNotFoundError(RealtimeError):
    """Raised when a chat-scoped event references an unknown chat."""


class StorageError(RealtimeError):
    """Raised when the durable store rejects a write."""
