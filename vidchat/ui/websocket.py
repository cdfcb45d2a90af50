from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vidchat.telemetry.logging import get_logger
from vidchat.voice.events import UIState


class UIBridge:
    """Fans state messages out to the overlay page.

    The latest payload per state is kept so a page that connects late (or
    reloads) is brought up to date before live messages arrive.
    """

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._latest: dict[str, dict[str, Any]] = {}
        self._router = APIRouter()
        self._router.add_api_websocket_route("/ws/state", self._websocket_handler)
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    @property
    def router(self) -> APIRouter:
        return self._router

    def latest(self, state: UIState) -> dict[str, Any] | None:
        return self._latest.get(state)

    async def _websocket_handler(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
            backlog = [{"state": state, "payload": payload} for state, payload in self._latest.items()]
        self._logger.info("ui.client.connected", count=len(self._clients), replay=len(backlog))
        try:
            for message in backlog:
                await websocket.send_json(message)
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            self._logger.info("ui.client.disconnected", count=len(self._clients) - 1)
        finally:
            async with self._lock:
                self._clients.discard(websocket)

    async def publish_state(self, state: UIState, payload: dict[str, Any] | None = None) -> None:
        message = {"state": state, "payload": payload or {}}
        async with self._lock:
            self._latest[state] = message["payload"]
            clients = list(self._clients)
        if not clients:
            return
        results = await asyncio.gather(*(client.send_json(message) for client in clients), return_exceptions=True)
        failed = [client for client, result in zip(clients, results) if isinstance(result, Exception)]
        if failed:
            self._logger.warning("ui.publish.failed", state=state, clients=len(failed))
            async with self._lock:
                self._clients.difference_update(failed)


__all__ = ["UIBridge"]
