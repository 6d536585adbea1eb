"""WebSocket endpoint for presence and chat events."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket

from app.api.deps import get_chat_store, get_realtime_hub, get_session_verifier
from app.services import SqlChatStore, TokenSessionVerifier
from parley.realtime.hub import RealtimeHub
from parley.realtime.lifecycle import ConnectionLifecycleHandler

router = APIRouter(prefix="/ws", tags=["ws"])

logger = logging.getLogger(__name__)


@router.websocket("/events")
async def websocket_events(
    websocket: WebSocket,
    hub: RealtimeHub = Depends(get_realtime_hub),
    verifier: TokenSessionVerifier = Depends(get_session_verifier),
    store: SqlChatStore = Depends(get_chat_store),
) -> None:
    handler = ConnectionLifecycleHandler(hub, verifier, store)
    await handler.serve(websocket)
    logger.debug("Realtime session finished in state %s", handler.state.value)
