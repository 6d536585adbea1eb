"""Fan-out of outbound events to connected users."""

from __future__ import annotations

import logging
from typing import Iterable

from app.monitoring.metrics import realtime_events_total

from .events import OutboundEvent
from .registry import ClientConnection, ConnectionRegistry


logger = logging.getLogger(__name__)


class EventRouter:
    """Resolve recipients through the registry and queue events on their connections.

    Delivery is fire-and-forget: offline recipients are skipped silently and
    nothing is retried. Each connection preserves the order in which events
    were queued on it.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def emit_to_users(self, user_ids: Iterable[str], event: OutboundEvent) -> int:
        targets = self._registry.resolve(user_ids)
        if not targets:
            return 0
        return self._deliver(targets, event, action="emit")

    def broadcast_all(self, event: OutboundEvent) -> int:
        targets = self._registry.connections()
        if not targets:
            return 0
        return self._deliver(targets, event, action="broadcast")

    def _deliver(self, targets: list[ClientConnection], event: OutboundEvent, *, action: str) -> int:
        payload = event.to_wire()
        queued = 0
        for connection in targets:
            if connection.enqueue(payload):
                queued += 1
        realtime_events_total.labels(event.kind.value, "outbound", action).inc(queued)
        logger.debug(
            "Queued %s on %d of %d connections",
            event.kind.value,
            queued,
            len(targets),
            extra={"chat_id": event.chat_id},
        )
        return queued
