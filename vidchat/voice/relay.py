from __future__ import annotations

import asyncio
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from vidchat.telemetry.logging import get_logger
from vidchat.voice.backend import RecognitionBackend, RecognitionUnavailable
from vidchat.voice.events import RecognitionErrorKind, SessionHandle


class BrowserRelayBackend(RecognitionBackend):
    """Drives the page's Web Speech recogniser over a websocket.

    The server sends ``start``/``stop`` commands; the browser answers with
    ``start``, ``result``, ``end``, ``error`` and ``unsupported`` events tagged
    with the session id.
    """

    def __init__(self, lang: str = "en-US") -> None:
        super().__init__()
        self._lang = lang
        self._client: WebSocket | None = None
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._sessions: dict[int, SessionHandle] = {}
        self._unsupported: str | None = None
        self._logger = get_logger(__name__)

    @property
    def available(self) -> bool:
        return self._client is not None and self._unsupported is None

    @property
    def unavailable_reason(self) -> str | None:
        if self._unsupported:
            return self._unsupported
        if self._client is None:
            return "no browser is connected for speech recognition"
        return None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def start_session(self, automatic: bool = False) -> SessionHandle:
        if not self.available:
            raise RecognitionUnavailable(self.unavailable_reason or "speech recognition unavailable")
        session = self._new_handle(automatic)
        self._sessions[session.id] = session
        self._outbox.put_nowait(
            {
                "type": "start",
                "session": session.id,
                "lang": self._lang,
                "continuous": True,
                "interim_results": False,
            }
        )
        return session

    def stop_session(self, session: SessionHandle) -> None:
        if session.id not in self._sessions:
            return
        self._outbox.put_nowait({"type": "stop", "session": session.id})

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        previous = self._client
        self._client = websocket
        self._unsupported = None
        outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._outbox = outbox
        if previous is not None:
            self._logger.info("recognition.client.replaced")
            self._drop_sessions()
            await previous.close()
        self._logger.info("recognition.client.connected")
        await websocket.send_json({"type": "hello", "lang": self._lang, "continuous": True})
        sender = asyncio.create_task(self._pump(websocket, outbox), name="recognition-relay-sender")
        try:
            while True:
                message = await websocket.receive_json()
                self.dispatch(message)
        except WebSocketDisconnect:
            self._logger.info("recognition.client.disconnected")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            if self._client is websocket:
                self._client = None
                self._drop_sessions()

    def dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "unsupported":
            self._unsupported = str(message.get("reason") or "SpeechRecognition not supported in this browser")
            self._logger.warning("recognition.client.unsupported", reason=self._unsupported)
            return

        session = self._sessions.get(self._session_id(message))
        if session is None:
            self._logger.debug("recognition.event.unknown_session", payload=message)
            return

        if kind == "start":
            self.events.on_session_started(session)
        elif kind == "result":
            self.events.on_transcript(session, str(message.get("text") or ""), bool(message.get("is_final", True)))
        elif kind == "error":
            self.events.on_session_error(session, RecognitionErrorKind.parse(message.get("error")))
        elif kind == "end":
            self._sessions.pop(session.id, None)
            self.events.on_session_ended(session)
        else:
            self._logger.debug("recognition.event.unknown", payload=message)

    async def close(self) -> None:
        client = self._client
        self._client = None
        if client is not None:
            await client.close()

    @staticmethod
    async def _pump(websocket: WebSocket, outbox: asyncio.Queue[dict[str, Any]]) -> None:
        while True:
            command = await outbox.get()
            await websocket.send_json(command)

    def _drop_sessions(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            self.events.on_session_error(session, RecognitionErrorKind.OTHER)
            self.events.on_session_ended(session)

    @staticmethod
    def _session_id(message: dict[str, Any]) -> int:
        try:
            return int(message.get("session", 0))
        except (TypeError, ValueError):
            return 0


__all__ = ["BrowserRelayBackend"]
