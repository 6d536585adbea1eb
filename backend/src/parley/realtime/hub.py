"""Owner of the registry, presence tracker and router for one process."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from fastapi import status

from .events import OutboundEvent
from .presence import PresenceTracker
from .registry import ConnectionRegistry
from .router import EventRouter

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from app.config import Settings


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RealtimeConfig:
    """Tunables for connection handling."""

    outbound_queue_size: int = 256
    keepalive_timeout_seconds: float = 30
    keepalive_ping_interval_seconds: float = 25
    message_max_length: int = 2000
    auth_cookie_name: str = "parley-token"


class RealtimeHub:
    """Bundles the in-memory realtime state created at application startup."""

    def __init__(self, config: RealtimeConfig | None = None) -> None:
        self.config = config or RealtimeConfig()
        self.registry = ConnectionRegistry()
        self.presence = PresenceTracker()
        self.router = EventRouter(self.registry)

    def emit(self, user_ids: Iterable[str], event: OutboundEvent) -> int:
        """Queue ``event`` for every connected user in ``user_ids``."""

        return self.router.emit_to_users(user_ids, event)

    async def shutdown(self) -> None:
        connections = self.registry.clear()
        self.presence.clear()
        if not connections:
            return
        logger.info("Closing %d realtime connections", len(connections))
        await asyncio.gather(
            *(
                connection.close(code=status.WS_1001_GOING_AWAY, reason="Server shutting down")
                for connection in connections
            ),
            return_exceptions=True,
        )


def build_realtime_hub(settings: "Settings") -> RealtimeHub:
    config = RealtimeConfig(
        outbound_queue_size=settings.realtime_outbound_queue_size,
        keepalive_timeout_seconds=settings.websocket_keepalive_timeout_seconds,
        keepalive_ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        message_max_length=settings.chat_message_max_length,
        auth_cookie_name=settings.auth_cookie_name,
    )
    return RealtimeHub(config)
