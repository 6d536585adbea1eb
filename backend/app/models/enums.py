from __future__ import annotations

from enum import Enum


class FriendRequestStatus(str, Enum):
    """Lifecycle states for friend requests."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
