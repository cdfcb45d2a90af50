from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from vidchat.llm.client import APOLOGY, build_prompt
from vidchat.telemetry.logging import get_logger
from vidchat.voice.events import UIState

GREETING = "Corning: Unparalleled Expertise. Chat with me here!"


class StatePublisher(Protocol):
    async def publish_state(self, state: UIState, payload: dict[str, Any] | None = None) -> None: ...


class ChatBackend(Protocol):
    async def invoke(self, prompt: str) -> str: ...


@dataclass(slots=True)
class ChatMessage:
    id: int
    text: str
    is_ai: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "is_ai": self.is_ai,
            "timestamp": self.timestamp.isoformat(),
        }


class ChatSession:
    def __init__(self, llm: ChatBackend, ui: StatePublisher, greeting: str = GREETING) -> None:
        self._llm = llm
        self._ui = ui
        self._ids = itertools.count(1)
        self._messages: list[ChatMessage] = []
        self._visible = False
        self._pending = False
        self._logger = get_logger(__name__)
        if greeting:
            self.add_message(greeting, is_ai=True)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def pending(self) -> bool:
        return self._pending

    def add_message(self, text: str, is_ai: bool = False) -> ChatMessage:
        message = ChatMessage(id=next(self._ids), text=text, is_ai=is_ai)
        self._messages.append(message)
        return message

    async def open(self) -> None:
        await self._set_visible(True)

    async def close(self) -> None:
        await self._set_visible(False)

    async def send(self, text: str) -> ChatMessage | None:
        """Post a user message and append the assistant's reply.

        Blank input, or input arriving while a reply is outstanding, is dropped.
        """
        message = text.strip()
        if not message or self._pending:
            self._logger.info("chat.send.ignored", empty=not message, pending=self._pending)
            return None

        self._pending = True
        user = self.add_message(message, is_ai=False)
        try:
            await self._ui.publish_state("CHAT", {"message": user.to_dict()})
            await self._ui.publish_state("RESPONDING", {"pending": True})
            reply = await self._llm.invoke(build_prompt(message))
        except Exception as exc:
            self._logger.error("chat.reply.failed", error=str(exc))
            reply = APOLOGY
        finally:
            self._pending = False
            await self._ui.publish_state("RESPONDING", {"pending": False})

        answer = self.add_message(reply, is_ai=True)
        await self._ui.publish_state("CHAT", {"message": answer.to_dict()})
        return answer

    async def _set_visible(self, visible: bool) -> None:
        if self._visible == visible:
            return
        self._visible = visible
        self._logger.info("chat.panel", visible=visible)
        await self._ui.publish_state("CHAT", {"visible": visible})


__all__ = ["ChatMessage", "ChatSession", "StatePublisher", "GREETING"]
