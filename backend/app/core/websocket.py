"""
WebSocket endpoint + Redis PubSub bridge for live events.

WS /ws/events/{organization_id}                  -> events:{org}
WS /ws/events/{organization_id}?thumbnails=true  -> events:{org}:with-thumbnails

Each connection owns its own PubSub subscription, so the subscriber count on
a channel equals the number of connected clients (the thumbnail gate relies
on it).
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from core.channels import event_channel, event_thumbnail_channel

logger = logging.getLogger("fusion.websocket")

router = APIRouter()


# ---------------------------------------------------------------------------
# Connection Manager
# ---------------------------------------------------------------------------

class ConnectionManager:
    """Tracks active WebSocket connections per organization."""

    def __init__(self) -> None:
        self.connections: dict[str, list[WebSocket]] = {}

    async def connect(self, organization_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self.connections.setdefault(organization_id, []).append(ws)
        logger.info(
            "WS client connected org=%s (%d for org)",
            organization_id, len(self.connections[organization_id]),
        )

    def disconnect(self, organization_id: str, ws: WebSocket) -> None:
        conns = self.connections.get(organization_id, [])
        if ws in conns:
            conns.remove(ws)
        if not conns:
            self.connections.pop(organization_id, None)
        logger.info("WS client disconnected org=%s (%d remaining)", organization_id, len(conns))

    def count(self, organization_id: str | None = None) -> int:
        if organization_id is not None:
            return len(self.connections.get(organization_id, []))
        return sum(len(c) for c in self.connections.values())


manager = ConnectionManager()


# ---------------------------------------------------------------------------
# PubSub → WebSocket forwarding
# ---------------------------------------------------------------------------

async def forward_pubsub_messages(pubsub: PubSub, websocket: WebSocket) -> int:
    """Relay every published message to the client as text. Returns the count sent."""
    sent = 0
    async for message in pubsub.listen():
        if message["type"] != "message":
            continue
        payload = message["data"]
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        await websocket.send_text(payload)
        sent += 1
    return sent


async def _receive_until_disconnect(websocket: WebSocket) -> None:
    while True:
        data = await websocket.receive_text()
        if data == "ping":
            await websocket.send_text("pong")


# ---------------------------------------------------------------------------
# WebSocket Endpoint
# ---------------------------------------------------------------------------

@router.websocket("/ws/events/{organization_id}")
async def ws_events(
    websocket: WebSocket,
    organization_id: str,
    thumbnails: bool = Query(False),
) -> None:
    channel = event_thumbnail_channel(organization_id) if thumbnails else event_channel(organization_id)
    redis: Redis = websocket.app.state.redis

    await manager.connect(organization_id, websocket)
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)
    logger.debug("WS subscribed to %s", channel)

    forward_task = asyncio.create_task(forward_pubsub_messages(pubsub, websocket))
    receive_task = asyncio.create_task(_receive_until_disconnect(websocket))
    try:
        done, _ = await asyncio.wait(
            {forward_task, receive_task}, return_when=asyncio.FIRST_COMPLETED,
        )
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.debug("WS error on %s: %s", channel, exc)
    finally:
        for task in (forward_task, receive_task):
            task.cancel()
        await asyncio.gather(forward_task, receive_task, return_exceptions=True)
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        manager.disconnect(organization_id, websocket)
