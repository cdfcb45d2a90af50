from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from vidchat.chat.session import ChatMessage, ChatSession, StatePublisher
from vidchat.chat.video import VideoSource
from vidchat.telemetry.logging import get_logger
from vidchat.voice.controller import VoiceSessionController
from vidchat.voice.events import ListenMode


class VoiceChatHost:
    """Application side of the voice controller: panel, transcript and push-to-talk."""

    def __init__(
        self,
        chat: ChatSession,
        video: VideoSource,
        ui: StatePublisher,
        manual_send_delay: float = 2.5,
    ) -> None:
        self._chat = chat
        self._video = video
        self._ui = ui
        self._manual_send_delay = manual_send_delay
        self._controller: VoiceSessionController | None = None
        self._manual_active = False
        self._tasks: set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    def attach(self, controller: VoiceSessionController) -> None:
        self._controller = controller

    @property
    def controller(self) -> VoiceSessionController:
        if self._controller is None:
            raise RuntimeError("No voice controller attached.")
        return self._controller

    @property
    def manual_active(self) -> bool:
        return self._manual_active

    # Controller callbacks

    def on_listening_changed(self, listening: bool) -> None:
        state = self.controller.state
        self._spawn(self._ui.publish_state("LISTENING", {"active": listening, "mode": state.mode.value}))

    def on_wake_triggered(self) -> None:
        self._logger.info("host.wake")
        self.controller.set_mode(ListenMode.ACTIVE_DICTATION)
        self._spawn(self._chat.open())
        self.controller.start()

    def on_close_triggered(self) -> None:
        self._logger.info("host.close")
        self.controller.set_mode(ListenMode.WAKE_LISTENING)
        self._spawn(self._chat.close())
        self.controller.start()

    def on_dictation_result(self, text: str) -> None:
        self._spawn(self._answer_dictation(text))

    def on_listening_resumed(self) -> None:
        self._spawn(self._ui.publish_state("NOTICE", {"kind": "listening_resumed", "message": "Listening again"}))

    def on_capability_unavailable(self, reason: str) -> None:
        self._spawn(self._ui.publish_state("NOTICE", {"kind": "capability", "message": reason}))

    def on_restarts_exhausted(self) -> None:
        self._spawn(
            self._ui.publish_state(
                "NOTICE",
                {"kind": "idle", "message": "Voice listening paused. Start playback or tap the mic to resume."},
            )
        )

    # Host actions

    async def playback_started(self) -> None:
        await self._video.set_playing(True)
        self.controller.start()

    async def open_chat(self) -> None:
        self.controller.set_mode(ListenMode.ACTIVE_DICTATION)
        await self._chat.open()

    async def close_chat(self) -> None:
        self.controller.set_mode(ListenMode.WAKE_LISTENING)
        await self._chat.close()

    async def send_text(self, text: str) -> ChatMessage | None:
        return await self._chat.send(text)

    def begin_manual_dictation(self) -> None:
        if self._manual_active:
            return
        self._manual_active = True
        self._logger.info("host.manual.begin")
        self.controller.set_suppressed(True)

    async def submit_manual_dictation(self, text: str) -> ChatMessage | None:
        self.begin_manual_dictation()
        try:
            await asyncio.sleep(self._manual_send_delay)
            return await self._chat.send(text)
        finally:
            self.cancel_manual_dictation()

    def cancel_manual_dictation(self) -> None:
        if not self._manual_active:
            return
        self._manual_active = False
        self._logger.info("host.manual.end")
        self.controller.set_suppressed(False)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def _answer_dictation(self, text: str) -> None:
        self._logger.info("host.dictation", chars=len(text))
        try:
            await self._chat.send(text)
        finally:
            self.controller.start()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


__all__ = ["VoiceChatHost"]
