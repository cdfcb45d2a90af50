from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Literal


class Trigger(str, Enum):
    WAKE = "wake"
    CLOSE = "close"
    NONE = "none"


class ListenMode(str, Enum):
    WAKE_LISTENING = "wake_listening"
    ACTIVE_DICTATION = "active_dictation"


class Phase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    ENDED = "ended"


class RecognitionErrorKind(str, Enum):
    NO_SPEECH = "no-speech"
    PERMISSION_DENIED = "permission-denied"
    ABORTED = "aborted"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> "RecognitionErrorKind":
        """Map backend error names (including the Web Speech ones) onto the closed set."""
        name = (value or "").strip().lower()
        if name in {"not-allowed", "service-not-allowed", "permission-denied", "audio-capture"}:
            return cls.PERMISSION_DENIED
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class SessionHandle:
    id: int
    automatic: bool = False


@dataclass(slots=True)
class ControllerState:
    phase: Phase = Phase.IDLE
    mode: ListenMode = ListenMode.WAKE_LISTENING
    suppressed: bool = False
    restart_attempts: int = 0
    max_restarts: int = 3
    should_restart: bool = True
    rearm_requested: bool = False
    awaiting_host: bool = False
    session: SessionHandle | None = None
    generation: int = 0

    @property
    def live(self) -> bool:
        return self.session is not None

    @property
    def stopping(self) -> bool:
        return self.session is not None and self.phase is Phase.ENDED

    def snapshot(self) -> "ControllerState":
        return replace(self)

    def to_dict(self) -> dict[str, object]:
        return {
            "phase": self.phase.value,
            "mode": self.mode.value,
            "suppressed": self.suppressed,
            "restart_attempts": self.restart_attempts,
            "max_restarts": self.max_restarts,
            "should_restart": self.should_restart,
            "rearm_requested": self.rearm_requested,
            "awaiting_host": self.awaiting_host,
            "session": self.session.id if self.session else None,
        }


UIState = Literal["IDLE", "LISTENING", "WAKE", "CHAT", "RESPONDING", "VIDEO", "NOTICE"]


__all__ = [
    "Trigger",
    "ListenMode",
    "Phase",
    "RecognitionErrorKind",
    "SessionHandle",
    "ControllerState",
    "UIState",
]
