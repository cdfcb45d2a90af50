from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import Protocol

from vidchat.voice.events import RecognitionErrorKind, SessionHandle


class RecognitionUnavailable(RuntimeError):
    """Speech recognition is not supported where the backend runs."""


class RecognitionEvents(Protocol):
    def on_session_started(self, session: SessionHandle) -> None: ...

    def on_transcript(self, session: SessionHandle, text: str, is_final: bool) -> None: ...

    def on_session_ended(self, session: SessionHandle) -> None: ...

    def on_session_error(self, session: SessionHandle, kind: RecognitionErrorKind) -> None: ...


class RecognitionBackend(ABC):
    """Continuous speech-to-text engine driven by the session controller.

    Implementations report every event for a session through the bound
    `RecognitionEvents`, tagged with the handle `start_session` returned.
    """

    def __init__(self) -> None:
        self._events: RecognitionEvents | None = None
        self._ids = itertools.count(1)

    def bind(self, events: RecognitionEvents) -> None:
        self._events = events

    @property
    def events(self) -> RecognitionEvents:
        if self._events is None:
            raise RuntimeError("Recognition backend is not bound to a controller.")
        return self._events

    def _new_handle(self, automatic: bool) -> SessionHandle:
        return SessionHandle(id=next(self._ids), automatic=automatic)

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether a session can be started right now."""

    @property
    def unavailable_reason(self) -> str | None:
        return None

    @abstractmethod
    def start_session(self, automatic: bool = False) -> SessionHandle:
        """Begin capturing; raise RecognitionUnavailable when unsupported."""

    @abstractmethod
    def stop_session(self, session: SessionHandle) -> None:
        """Request the session to end; the end event follows asynchronously."""

    async def close(self) -> None:
        """Cleanup resources."""


__all__ = ["RecognitionBackend", "RecognitionEvents", "RecognitionUnavailable"]
