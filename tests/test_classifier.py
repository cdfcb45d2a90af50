from __future__ import annotations

import pytest

from vidchat.voice.classifier import classify, normalize
from vidchat.voice.events import RecognitionErrorKind, Trigger

WAKE = ["wake up", "Hey Video"]
CLOSE = ["close chat", "goodbye system"]


@pytest.mark.parametrize(
    "transcript",
    ["wake up", "please wake up now", "WAKE UP", "ok hey video, what's this?", "wake up and close chat"],
)
def test_wake_phrases_match_as_substrings(transcript: str) -> None:
    assert classify(transcript, WAKE, CLOSE) is Trigger.WAKE


@pytest.mark.parametrize("transcript", ["close chat", "Goodbye System please", "could you close chat"])
def test_close_phrases_match(transcript: str) -> None:
    assert classify(transcript, WAKE, CLOSE) is Trigger.CLOSE


@pytest.mark.parametrize("transcript", ["", "   ", "what is this video about", "wake", "chat"])
def test_unmatched_transcripts(transcript: str) -> None:
    assert classify(transcript, WAKE, CLOSE) is Trigger.NONE


def test_blank_phrases_never_match() -> None:
    assert classify("anything at all", ["", "  "], [""]) is Trigger.NONE


def test_normalize_strips_and_lowercases() -> None:
    assert normalize("  Hello System \n") == "hello system"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("no-speech", RecognitionErrorKind.NO_SPEECH),
        ("not-allowed", RecognitionErrorKind.PERMISSION_DENIED),
        ("service-not-allowed", RecognitionErrorKind.PERMISSION_DENIED),
        ("aborted", RecognitionErrorKind.ABORTED),
        ("network", RecognitionErrorKind.OTHER),
        (None, RecognitionErrorKind.OTHER),
    ],
)
def test_error_kind_parsing(raw: str | None, expected: RecognitionErrorKind) -> None:
    assert RecognitionErrorKind.parse(raw) is expected
