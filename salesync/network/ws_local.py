"""
ws_local.py - Local WebSocket Bridge for the UI

Pushes sync status to connected UI clients whenever the sync status or
reachability changes, and answers status queries.
"""

import asyncio
import json
import logging
from typing import Optional, Set

import websockets

from ..services.context import SyncContext
from ..services.event_bus import REACHABILITY, SYNC_STATUS

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("LocalBridge")


class StatusBridge:

    def __init__(self, context: SyncContext):
        self.context = context
        self.clients: Set = set()
        self._unsubscribers = []

    def status_message(self) -> str:
        engine = self.context.engine
        identity = self.context.session.identity
        return json.dumps({
            "type": "status",
            "data": {
                **engine.get_sync_status(),
                "identity": identity.to_dict() if identity else None,
            },
        })

    async def broadcast_status(self, _payload=None):
        """Broadcast current status to all connected clients."""
        if not self.clients:
            return
        message = self.status_message()
        await asyncio.gather(
            *[client.send(message) for client in list(self.clients)],
            return_exceptions=True,
        )

    async def handle_message(self, websocket, message: str):
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.error("Invalid JSON received")
            await websocket.send(json.dumps({
                "type": "error",
                "error": "Invalid JSON format",
            }))
            return

        msg_type = data.get("type") if isinstance(data, dict) else None
        logger.info(f"Received: {msg_type}")

        if msg_type == "get_status":
            await websocket.send(self.status_message())

        elif msg_type == "get_pending":
            await websocket.send(json.dumps({
                "type": "pending_info",
                "count": self.context.pending_log.count(),
            }))

        elif msg_type == "ping":
            await websocket.send(json.dumps({
                "type": "pong",
                "timestamp": data.get("timestamp"),
            }))

        else:
            logger.warning(f"Unknown message type: {msg_type}")
            await websocket.send(json.dumps({
                "type": "error",
                "error": f"Unknown message type: {msg_type}",
            }))

    async def handler(self, websocket):
        logger.info(f"Client connected: {websocket.remote_address}")
        self.clients.add(websocket)
        try:
            await websocket.send(self.status_message())
            async for message in websocket:
                await self.handle_message(websocket, message)
        except websockets.exceptions.ConnectionClosed:
            logger.info("Client disconnected")
        finally:
            self.clients.discard(websocket)

    def attach(self):
        """Broadcast on every status or reachability change."""
        if self._unsubscribers:
            return
        bus = self.context.event_bus
        self._unsubscribers = [
            bus.subscribe(SYNC_STATUS, self.broadcast_status),
            bus.subscribe(REACHABILITY, self.broadcast_status),
        ]

    def detach(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def serve(self, host: str = "0.0.0.0", port: int = 8002, stop: Optional[asyncio.Event] = None):
        """Run the bridge until `stop` is set (or forever)."""
        self.attach()
        try:
            async with websockets.serve(self.handler, host, port):
                logger.info(f"Local WebSocket Bridge started on ws://{host}:{port}")
                await (stop.wait() if stop else asyncio.Future())
        finally:
            self.detach()
