from __future__ import annotations

import pytest
from fakes import FakeBackend, ManualScheduler, RecordingHost

from vidchat.voice.backend import RecognitionUnavailable
from vidchat.voice.controller import VoiceSessionController
from vidchat.voice.events import ListenMode, Phase, RecognitionErrorKind, SessionHandle


class RearmingHost(RecordingHost):
    controller: VoiceSessionController

    def on_wake_triggered(self) -> None:
        super().on_wake_triggered()
        self.controller.set_mode(ListenMode.ACTIVE_DICTATION)
        self.controller.start()


def make_controller(
    host: RecordingHost | None = None,
    backend: FakeBackend | None = None,
    **kwargs,
) -> tuple[VoiceSessionController, FakeBackend, RecordingHost, ManualScheduler]:
    host = host or RecordingHost()
    backend = backend or FakeBackend()
    scheduler = ManualScheduler()
    options = {
        "wake_words": ["wake up"],
        "close_words": ["close chat"],
        "silence_timeout": 60.0,
        "max_restarts": 3,
        "restart_delay": 0.5,
        "suppression_release_delay": 2.5,
    }
    options.update(kwargs)
    controller = VoiceSessionController(backend, host, scheduler, **options)
    return controller, backend, host, scheduler


def test_start_opens_one_session_and_arms_deadline() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.start()
    controller.start()

    assert len(backend.started) == 1
    assert controller.state.phase is Phase.STARTING
    assert [timer.due for timer in scheduler.pending()] == [60.0]

    backend.emit_start()
    assert controller.state.phase is Phase.LISTENING
    assert host.calls == [("listening_changed", True)]


def test_wake_round_trip_notifies_once_and_permits_restart() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    backend.emit_result("Please WAKE UP now")

    assert host.count("wake") == 1
    assert backend.stopped == [backend.current]
    assert scheduler.pending() == []
    assert controller.state.should_restart is True
    assert controller.state.awaiting_host is True
    assert controller.state.to_dict()["awaiting_host"] is True

    backend.emit_result("wake up")
    assert host.count("wake") == 1

    backend.emit_end()
    assert controller.state.phase is Phase.IDLE
    assert controller.state.live is False
    assert controller.state.awaiting_host is False


def test_host_rearm_during_wake_starts_fresh_session_after_debounce() -> None:
    host = RearmingHost()
    controller, backend, _, scheduler = make_controller(host=host)
    host.controller = controller
    controller.start()
    backend.emit_start()
    backend.emit_result("wake up")
    backend.emit_end()

    assert controller.restart_pending
    scheduler.advance(0.5)

    assert len(backend.started) == 2
    assert backend.current.automatic is False
    assert controller.state.restart_attempts == 0
    assert controller.state.mode is ListenMode.ACTIVE_DICTATION


def test_unmatched_transcript_keeps_listening() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    backend.emit_result("this video is great")

    assert backend.stopped == []
    assert controller.state.phase is Phase.LISTENING
    assert host.calls == [("listening_changed", True)]
    assert len(scheduler.pending()) == 1


def test_interim_results_are_ignored() -> None:
    controller, backend, host, _ = make_controller()
    controller.start()
    backend.emit_start()

    backend.emit_result("wake up", is_final=False)

    assert host.count("wake") == 0
    assert backend.stopped == []


def test_wake_takes_precedence_over_close() -> None:
    controller, backend, host, _ = make_controller()
    controller.start()
    backend.emit_start()

    backend.emit_result("wake up and close chat")

    assert host.count("wake") == 1
    assert host.count("close") == 0


def test_dictation_forwards_raw_text_and_disables_restart() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.set_mode(ListenMode.ACTIVE_DICTATION)
    controller.start()
    backend.emit_start()

    backend.emit_result("  What is this video about?  ")

    assert ("dictation", "What is this video about?") in host.calls
    assert controller.state.should_restart is False
    backend.emit_end()
    scheduler.advance(10)
    assert len(backend.started) == 1
    assert controller.state.phase is Phase.IDLE


@pytest.mark.parametrize("max_restarts", [0, 1, 3, 10])
def test_restart_ceiling_bounds_automatic_restarts(max_restarts: int) -> None:
    controller, backend, host, scheduler = make_controller(max_restarts=max_restarts)
    controller.start()

    for _ in range(max_restarts + 5):
        if controller.state.live:
            backend.emit_end()
        scheduler.advance(0.5)

    assert len(backend.started) == max_restarts + 1
    assert controller.state.phase is Phase.IDLE
    assert host.count("exhausted") == 1
    scheduler.advance(600)
    assert len(backend.started) == max_restarts + 1

    controller.start()
    assert len(backend.started) == max_restarts + 2
    assert controller.state.restart_attempts == 0


def test_automatic_restart_announces_resume() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.start()
    backend.emit_start()
    backend.emit_end()
    scheduler.advance(0.5)
    backend.emit_start()

    assert backend.current.automatic is True
    assert controller.state.restart_attempts == 1
    assert host.count("resumed") == 1
    assert host.calls[:3] == [
        ("listening_changed", True),
        ("listening_changed", False),
        ("listening_changed", True),
    ]


def test_hard_stop_prevents_restart_while_listening() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    controller.stop(disable_restart=True)
    backend.emit_end()
    scheduler.advance(60)

    assert len(backend.started) == 1
    assert controller.state.phase is Phase.IDLE


def test_hard_stop_cancels_pending_restart() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_end()
    assert controller.restart_pending

    controller.stop(disable_restart=True)
    scheduler.advance(60)

    assert len(backend.started) == 1
    assert controller.state.phase is Phase.IDLE


def test_hard_stop_when_idle_is_noop() -> None:
    controller, backend, _, _ = make_controller()
    controller.stop(disable_restart=True)
    controller.stop()
    assert backend.stopped == []


def test_soft_stop_lets_restart_policy_decide() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    controller.stop()
    backend.emit_end()
    scheduler.advance(0.5)

    assert len(backend.started) == 2
    assert controller.state.restart_attempts == 1


def test_deadline_ends_session_without_touching_restart_flag() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    scheduler.advance(60)

    assert backend.stopped == [backend.started[0]]
    assert controller.state.should_restart is True
    backend.emit_end()
    scheduler.advance(0.5)
    assert len(backend.started) == 2


def test_suppression_blocks_results_and_start() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.set_mode(ListenMode.ACTIVE_DICTATION)
    controller.start()
    backend.emit_start()

    controller.set_suppressed(True)
    backend.emit_result("wake up")
    backend.emit_result("what is this")

    assert host.count("wake") == 0
    assert host.count("dictation") == 0
    assert backend.stopped == [backend.started[0]]

    controller.start()
    backend.emit_end()
    scheduler.advance(60)
    assert len(backend.started) == 1


def test_suppression_release_resumes_after_delay() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()
    controller.set_suppressed(True)
    backend.emit_end()

    controller.set_suppressed(False)
    scheduler.advance(2.0)
    assert len(backend.started) == 1

    scheduler.advance(1.0)
    assert len(backend.started) == 2
    assert controller.state.should_restart is True
    assert controller.state.restart_attempts == 0


def test_suppression_release_is_noop_when_already_listening() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.set_suppressed(True)
    controller.set_suppressed(False)
    scheduler.advance(1.0)
    controller.start()

    scheduler.advance(5.0)

    assert len(backend.started) == 1


def test_suppression_preempts_deadline_restart_sequence() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()
    scheduler.advance(60)
    backend.emit_end()
    assert controller.restart_pending

    controller.set_suppressed(True)
    scheduler.advance(60)

    assert len(backend.started) == 1
    assert not controller.restart_pending


@pytest.mark.parametrize(
    "kind",
    [RecognitionErrorKind.NO_SPEECH, RecognitionErrorKind.ABORTED, RecognitionErrorKind.OTHER],
)
def test_errors_end_session_through_restart_policy(kind: RecognitionErrorKind) -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    backend.emit_error(kind)
    assert backend.stopped == [backend.started[0]]
    assert scheduler.pending() == []

    backend.emit_end()
    scheduler.advance(0.5)
    assert len(backend.started) == 2


def test_stale_callbacks_are_ignored() -> None:
    controller, backend, host, scheduler = make_controller()
    controller.start()
    first = backend.current
    backend.emit_end(first)
    scheduler.advance(0.5)
    second = backend.current
    backend.emit_start(second)

    backend.emit_end(first)
    backend.emit_result("wake up", session=first)
    backend.emit_error(RecognitionErrorKind.OTHER, session=first)

    assert controller.state.session == second
    assert controller.state.phase is Phase.LISTENING
    assert host.count("wake") == 0


def test_duplicate_end_after_idle_is_ignored() -> None:
    controller, backend, host, scheduler = make_controller(max_restarts=0)
    controller.start()
    first = backend.current
    backend.emit_start(first)
    backend.emit_end(first)
    assert controller.state.phase is Phase.IDLE

    backend.emit_end(first)
    backend.emit_start(first)

    assert controller.state.phase is Phase.IDLE
    assert controller.state.session is None
    assert host.count("exhausted") == 1
    assert scheduler.pending() == []


def test_capability_absent_is_reported_once() -> None:
    controller, backend, host, _ = make_controller(backend=FakeBackend(available=False))
    controller.start()
    controller.start()

    assert backend.started == []
    assert host.calls == [("unavailable", "SpeechRecognition not supported.")]
    assert controller.state.phase is Phase.IDLE


def test_backend_unavailable_on_start_is_reported() -> None:
    class RefusingBackend(FakeBackend):
        def start_session(self, automatic: bool = False) -> SessionHandle:
            raise RecognitionUnavailable("permission denied")

    controller, _, host, _ = make_controller(backend=RefusingBackend())
    controller.start()

    assert host.calls == [("unavailable", "permission denied")]
    assert controller.state.live is False


def test_failed_start_is_bounded_by_restart_policy() -> None:
    controller, backend, host, scheduler = make_controller(backend=FakeBackend(fail_start=True), max_restarts=2)
    controller.start()
    scheduler.advance(5)

    assert controller.state.phase is Phase.IDLE
    assert controller.state.restart_attempts == 2
    assert host.count("exhausted") == 1


def test_start_while_stopping_is_deferred() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()
    controller.stop(disable_restart=True)

    controller.start()
    assert len(backend.started) == 1

    backend.emit_end()
    scheduler.advance(0.5)
    assert len(backend.started) == 2
    assert backend.current.automatic is False


def test_close_cancels_everything() -> None:
    controller, backend, _, scheduler = make_controller()
    controller.start()
    backend.emit_start()

    controller.close()
    backend.emit_end()
    controller.start()
    scheduler.advance(600)

    assert len(backend.started) == 1


def test_max_restarts_must_be_bounded() -> None:
    with pytest.raises(ValueError):
        make_controller(max_restarts=11)


def test_close_phrase_after_timeout_restart_scenario() -> None:
    controller, backend, host, scheduler = make_controller(
        wake_words=["hello system"],
        close_words=["goodbye system"],
        silence_timeout=60.0,
        max_restarts=3,
    )
    controller.start()
    backend.emit_start()

    scheduler.advance(60)
    backend.emit_error(RecognitionErrorKind.NO_SPEECH)
    backend.emit_end()
    scheduler.advance(0.5)

    assert len(backend.started) == 2
    assert controller.state.restart_attempts == 1
    backend.emit_start()

    backend.emit_result("goodbye system please")

    assert host.count("close") == 1
    assert scheduler.pending() == []
    backend.emit_end()
    scheduler.advance(600)
    assert len(backend.started) == 2
    assert host.count("close") == 1
    assert controller.state.phase is Phase.IDLE

    controller.start()
    assert len(backend.started) == 3
