"""Bridge from request handlers to the realtime hub."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

import anyio

from parley.realtime.events import OutboundEvent
from parley.realtime.hub import RealtimeHub

logger = logging.getLogger(__name__)


def notify(hub: RealtimeHub, user_ids: Iterable[int | str], event: OutboundEvent) -> int:
    """Emit ``event`` to ``user_ids`` from either the event loop or a worker thread.

    Connection queues belong to the event loop, so calls made from sync
    endpoints are handed over to it.
    """

    recipients = [str(user_id) for user_id in user_ids]
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        try:
            return anyio.from_thread.run_sync(hub.emit, recipients, event)
        except RuntimeError:
            logger.debug("No event loop to deliver %s; dropping", event.kind.value)
            return 0
    return hub.emit(recipients, event)
