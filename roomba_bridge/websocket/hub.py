"""
WebSocket fan-out for live updates.
Every connected browser receives schedule lifecycle events and status notices.
"""

import asyncio
import json
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from ..logger import logger


class BroadcastHub:
    """Tracks connected WebSocket clients and pushes JSON messages to them."""

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._send_tasks: set[asyncio.Task] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info(f"WebSocket client connected ({len(self._clients)} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logger.info(f"WebSocket client disconnected ({len(self._clients)} total)")

    def broadcast(self, message: Any) -> None:
        """Queue ``message`` for every client without waiting for delivery.

        Accepts a dict, a pydantic model, or any object with ``to_message()``.
        """
        if not self._clients:
            return
        text = json.dumps(self._to_dict(message), ensure_ascii=False)
        for websocket in list(self._clients):
            task = asyncio.create_task(self._send(websocket, text))
            self._send_tasks.add(task)
            task.add_done_callback(self._send_tasks.discard)

    async def send(self, websocket: WebSocket, message: Any) -> None:
        """Send ``message`` to a single client."""
        await self._send(websocket, json.dumps(self._to_dict(message), ensure_ascii=False))

    async def handle_connection(self, websocket: WebSocket, greeting: dict[str, Any]) -> None:
        """Register the client, send ``greeting`` and hold the socket open until it closes."""
        await self.connect(websocket)
        try:
            await self.send(websocket, greeting)
            while True:
                # Clients do not send commands over the socket; drain and ignore
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(websocket)

    async def _send(self, websocket: WebSocket, text: str) -> None:
        try:
            await websocket.send_text(text)
        except Exception as e:
            logger.warning(f"Dropping WebSocket client after send failure: {e}")
            self.disconnect(websocket)

    @staticmethod
    def _to_dict(message: Any) -> Any:
        if hasattr(message, "to_message"):
            return message.to_message()
        if isinstance(message, BaseModel):
            return message.model_dump(mode="json", by_alias=True)
        return message
