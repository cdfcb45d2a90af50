from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from vidchat.config import VoiceSettings
from vidchat.telemetry.logging import get_logger
from vidchat.voice.backend import RecognitionBackend, RecognitionUnavailable
from vidchat.voice.classifier import classify, normalize
from vidchat.voice.events import ControllerState, ListenMode, Phase, RecognitionErrorKind, SessionHandle, Trigger
from vidchat.voice.timers import LoopScheduler, Scheduler, TimerHandle, cancel


class VoiceHost(Protocol):
    def on_listening_changed(self, listening: bool) -> None: ...

    def on_wake_triggered(self) -> None: ...

    def on_close_triggered(self) -> None: ...

    def on_dictation_result(self, text: str) -> None: ...

    def on_listening_resumed(self) -> None: ...

    def on_capability_unavailable(self, reason: str) -> None: ...

    def on_restarts_exhausted(self) -> None: ...


class VoiceSessionController:
    """Owns the single recognition session and multiplexes it between wake and dictation listening.

    Every public method returns immediately; progress happens in backend and
    timer callbacks. A session handle is compared against the live one on each
    callback so events from a superseded session are dropped.
    """

    def __init__(
        self,
        backend: RecognitionBackend,
        host: VoiceHost,
        scheduler: Scheduler | None = None,
        *,
        wake_words: Sequence[str] = ("wake up",),
        close_words: Sequence[str] = ("close chat",),
        silence_timeout: float = 60.0,
        max_restarts: int = 3,
        restart_delay: float = 0.5,
        suppression_release_delay: float = 2.5,
    ) -> None:
        if not 0 <= max_restarts <= 10:
            raise ValueError("max_restarts must be between 0 and 10")
        self._backend = backend
        self._host = host
        self._scheduler = scheduler or LoopScheduler()
        self._wake_words = [normalize(word) for word in wake_words]
        self._close_words = [normalize(word) for word in close_words]
        self._silence_timeout = silence_timeout
        self._restart_delay = restart_delay
        self._release_delay = suppression_release_delay
        self._state = ControllerState(max_restarts=max_restarts)
        self._deadline: TimerHandle | None = None
        self._restart_timer: TimerHandle | None = None
        self._resume_timer: TimerHandle | None = None
        self._announced = False
        self._capability_reported = False
        self._closed = False
        self._logger = get_logger(__name__)
        backend.bind(self)

    @classmethod
    def from_settings(
        cls,
        backend: RecognitionBackend,
        host: VoiceHost,
        settings: VoiceSettings,
        scheduler: Scheduler | None = None,
    ) -> "VoiceSessionController":
        return cls(
            backend,
            host,
            scheduler,
            wake_words=settings.wake_words,
            close_words=settings.close_words,
            silence_timeout=settings.silence_timeout,
            max_restarts=settings.max_restarts,
            restart_delay=settings.restart_delay,
            suppression_release_delay=settings.suppression_release_delay,
        )

    @property
    def state(self) -> ControllerState:
        return self._state.snapshot()

    @property
    def restart_pending(self) -> bool:
        return self._restart_timer is not None

    # Host-facing operations

    def start(self) -> None:
        self._start(automatic=False)

    def stop(self, disable_restart: bool = False) -> None:
        state = self._state
        if disable_restart:
            state.should_restart = False
            state.rearm_requested = False
            self._restart_timer = self._cancel(self._restart_timer)
            self._resume_timer = self._cancel(self._resume_timer)
        if state.session is None:
            if disable_restart and state.phase is Phase.ENDED:
                state.phase = Phase.IDLE
            return
        self._logger.info("voice.stop", session=state.session.id, disable_restart=disable_restart)
        self._end_session(disable_restart=disable_restart)

    def set_suppressed(self, flag: bool) -> None:
        state = self._state
        if flag == state.suppressed:
            return
        state.suppressed = flag
        self._resume_timer = self._cancel(self._resume_timer)
        if flag:
            self._logger.info("voice.suppressed", live=state.live)
            self.stop(disable_restart=True)
            return
        self._logger.info("voice.suppression.released", resume_in=self._release_delay)
        self._resume_timer = self._scheduler.call_later(self._release_delay, self._resume_after_suppression)

    def set_mode(self, mode: ListenMode) -> None:
        if self._state.mode is mode:
            return
        self._logger.info("voice.mode", mode=mode.value)
        self._state.mode = mode

    def close(self) -> None:
        self.stop(disable_restart=True)
        self._deadline = self._cancel(self._deadline)
        self._closed = True
        self._logger.info("voice.controller.closed")

    # Backend events

    def on_session_started(self, session: SessionHandle) -> None:
        if not self._is_current(session, "started"):
            return
        state = self._state
        if state.phase is not Phase.STARTING:
            return
        state.phase = Phase.LISTENING
        self._capability_reported = False
        self._logger.info("voice.session.started", session=session.id, mode=state.mode.value, automatic=session.automatic)
        self._announce(True)
        if session.automatic:
            self._notify("on_listening_resumed")

    def on_transcript(self, session: SessionHandle, text: str, is_final: bool) -> None:
        if not self._is_current(session, "transcript"):
            return
        state = self._state
        if state.phase not in (Phase.STARTING, Phase.LISTENING):
            self._logger.debug("voice.transcript.ignored", session=session.id, reason="stopping")
            return
        if not is_final:
            return
        transcript = normalize(text)
        if not transcript:
            return

        trigger = classify(transcript, self._wake_words, self._close_words)
        self._logger.info("voice.transcript.heard", session=session.id, transcript=transcript, trigger=trigger.value)
        if trigger is Trigger.WAKE:
            self._hand_off()
            self._notify("on_wake_triggered")
        elif trigger is Trigger.CLOSE:
            self._hand_off()
            self._notify("on_close_triggered")
        elif state.mode is ListenMode.ACTIVE_DICTATION:
            self._end_session(disable_restart=True)
            self._notify("on_dictation_result", text.strip())

    def on_session_error(self, session: SessionHandle, kind: RecognitionErrorKind) -> None:
        if not self._is_current(session, "error"):
            return
        if kind is RecognitionErrorKind.NO_SPEECH:
            self._logger.info("voice.session.no_speech", session=session.id)
        else:
            self._logger.warning("voice.session.error", session=session.id, kind=kind.value)
        if not self._state.stopping:
            self._end_session(disable_restart=False)

    def on_session_ended(self, session: SessionHandle) -> None:
        if not self._is_current(session, "ended"):
            return
        state = self._state
        self._deadline = self._cancel(self._deadline)
        state.session = None
        state.phase = Phase.ENDED
        self._logger.info("voice.session.ended", session=session.id, should_restart=state.should_restart)
        self._announce(False)
        self._after_end()

    # Internals

    def _start(self, automatic: bool) -> None:
        state = self._state
        if self._closed:
            return
        if state.suppressed:
            self._logger.info("voice.start.ignored", reason="suppressed")
            return
        if state.session is not None:
            if state.phase is Phase.ENDED and not automatic:
                state.rearm_requested = True
                self._logger.info("voice.start.deferred", session=state.session.id)
            else:
                self._logger.debug("voice.start.ignored", reason="already_listening")
            return
        if not self._backend.available:
            self._report_unavailable(self._backend.unavailable_reason)
            state.phase = Phase.IDLE
            return

        self._restart_timer = self._cancel(self._restart_timer)
        if not automatic:
            state.restart_attempts = 0
        state.should_restart = True
        state.rearm_requested = False
        state.awaiting_host = False
        try:
            session = self._backend.start_session(automatic=automatic)
        except RecognitionUnavailable as exc:
            self._report_unavailable(str(exc))
            state.phase = Phase.IDLE
            return
        except Exception as exc:
            self._logger.error("voice.session.start_failed", error=str(exc), automatic=automatic)
            state.phase = Phase.ENDED
            self._after_end()
            return

        state.generation += 1
        state.session = session
        state.phase = Phase.STARTING
        generation = state.generation
        self._deadline = self._scheduler.call_later(self._silence_timeout, lambda: self._on_deadline(generation))
        self._logger.info(
            "voice.session.requested",
            session=session.id,
            automatic=automatic,
            attempt=state.restart_attempts,
        )

    def _on_deadline(self, generation: int) -> None:
        self._deadline = None
        state = self._state
        if generation != state.generation or state.session is None or state.stopping:
            return
        self._logger.info("voice.session.timeout", session=state.session.id, seconds=self._silence_timeout)
        self._end_session(disable_restart=False)

    def _hand_off(self) -> None:
        self._state.restart_attempts = 0
        self._state.awaiting_host = True
        self._end_session(disable_restart=False)

    def _end_session(self, disable_restart: bool) -> None:
        state = self._state
        self._deadline = self._cancel(self._deadline)
        if disable_restart:
            state.should_restart = False
        session = state.session
        if session is None or state.phase is Phase.ENDED:
            return
        state.phase = Phase.ENDED
        try:
            self._backend.stop_session(session)
        except Exception as exc:
            self._logger.error("voice.session.stop_failed", session=session.id, error=str(exc))
            self.on_session_ended(session)

    def _after_end(self) -> None:
        state = self._state
        if state.suppressed:
            state.rearm_requested = False
            state.awaiting_host = False
            state.phase = Phase.IDLE
            return
        if state.rearm_requested:
            state.rearm_requested = False
            state.awaiting_host = False
            self._restart_timer = self._scheduler.call_later(self._restart_delay, self._rearm)
            return
        if state.awaiting_host:
            state.awaiting_host = False
            state.phase = Phase.IDLE
            self._logger.info("voice.session.handoff")
            return
        if not state.should_restart:
            state.phase = Phase.IDLE
            return
        if state.restart_attempts < state.max_restarts:
            state.restart_attempts += 1
            self._logger.info("voice.session.restart", attempt=state.restart_attempts, delay=self._restart_delay)
            self._restart_timer = self._scheduler.call_later(self._restart_delay, self._restart)
            return
        state.phase = Phase.IDLE
        self._logger.warning("voice.session.restarts_exhausted", max_restarts=state.max_restarts)
        self._notify("on_restarts_exhausted")

    def _restart(self) -> None:
        self._restart_timer = None
        self._start(automatic=True)

    def _rearm(self) -> None:
        self._restart_timer = None
        self._start(automatic=False)

    def _resume_after_suppression(self) -> None:
        self._resume_timer = None
        state = self._state
        if state.suppressed or state.live:
            self._logger.debug("voice.resume.skipped", live=state.live, suppressed=state.suppressed)
            return
        self._start(automatic=False)

    def _is_current(self, session: SessionHandle, event: str) -> bool:
        current = self._state.session
        if current is None or current.id != session.id:
            self._logger.debug("voice.event.stale", callback=event, session=session.id)
            return False
        return True

    def _announce(self, listening: bool) -> None:
        if self._announced == listening:
            return
        self._announced = listening
        self._notify("on_listening_changed", listening)

    def _report_unavailable(self, reason: str | None) -> None:
        if self._capability_reported:
            return
        self._capability_reported = True
        message = reason or "speech recognition is not supported"
        self._logger.warning("voice.capability.unavailable", reason=message)
        self._notify("on_capability_unavailable", message)

    def _notify(self, callback: str, *args: object) -> None:
        try:
            getattr(self._host, callback)(*args)
        except Exception as exc:  # pragma: no cover
            self._logger.error("voice.host.callback_failed", callback=callback, error=str(exc))

    @staticmethod
    def _cancel(handle: TimerHandle | None) -> None:
        cancel(handle)
        return None


__all__ = ["VoiceHost", "VoiceSessionController"]
