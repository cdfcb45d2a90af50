from __future__ import annotations

from collections.abc import Sequence

from vidchat.voice.events import Trigger


def normalize(text: str) -> str:
    return text.strip().lower()


def _contains_any(transcript: str, phrases: Sequence[str]) -> bool:
    for phrase in phrases:
        needle = normalize(phrase)
        if needle and needle in transcript:
            return True
    return False


def classify(transcript: str, wake_words: Sequence[str], close_words: Sequence[str]) -> Trigger:
    """Wake wins over close when a transcript carries both."""
    text = normalize(transcript)
    if not text:
        return Trigger.NONE
    if _contains_any(text, wake_words):
        return Trigger.WAKE
    if _contains_any(text, close_words):
        return Trigger.CLOSE
    return Trigger.NONE


__all__ = ["classify", "normalize"]
