"""Process-local set of users who announced themselves online."""

from __future__ import annotations

from app.monitoring.metrics import realtime_online_users


class PresenceTracker:
    """Tracks online users independently of connection state.

    A user can be present without a resolvable connection (and the other way
    round); the lifecycle handler keeps the two in step on disconnect.
    """

    def __init__(self) -> None:
        self._online: set[str] = set()

    def __len__(self) -> int:
        return len(self._online)

    def __contains__(self, user_id: object) -> bool:
        return str(user_id) in self._online

    def mark_present(self, user_id: str) -> bool:
        key = str(user_id)
        if key in self._online:
            return False
        self._online.add(key)
        realtime_online_users.set(len(self._online))
        return True

    def mark_absent(self, user_id: str) -> bool:
        key = str(user_id)
        if key not in self._online:
            return False
        self._online.discard(key)
        realtime_online_users.set(len(self._online))
        return True

    def snapshot(self) -> list[str]:
        return sorted(self._online)

    def clear(self) -> None:
        self._online.clear()
        realtime_online_users.set(0)
