from __future__ import annotations

import functools
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class VoiceSettings(BaseModel):
    wake_words: list[str] = Field(default_factory=lambda: ["wake up"])
    close_words: list[str] = Field(default_factory=lambda: ["close chat"])
    silence_timeout: float = 60.0
    max_restarts: int = Field(default=3, ge=0, le=10)
    restart_delay: float = 0.5
    suppression_release_delay: float = 2.5
    manual_send_delay: float = 2.5
    lang: str = "en-US"
    backend: Literal["browser", "vosk"] = "browser"
    vosk_model_path: str | None = None
    sample_rate: int = 16_000


class LLMSettings(BaseModel):
    backend_url: str = "http://localhost:5000"
    timeout: float = 60.0


class TelemetrySettings(BaseModel):
    log_level: str = "INFO"
    otlp_endpoint: str | None = None


class UISettings(BaseModel):
    origin: str = "http://localhost:3000"


class VideoSettings(BaseModel):
    default_url: str = "https://youtu.be/6pxRHBw-k8M"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", ".env.local"), env_file_encoding="utf-8", extra="ignore")

    WAKE_WORDS: list[str] = ["wake up"]
    CLOSE_WORDS: list[str] = ["close chat"]
    SILENCE_TIMEOUT_SECONDS: float = 60.0
    MAX_RESTARTS: int = 3
    RESTART_DELAY_SECONDS: float = 0.5
    SUPPRESSION_RELEASE_DELAY_SECONDS: float = 2.5
    MANUAL_SEND_DELAY_SECONDS: float = 2.5
    RECOGNITION_LANG: str = "en-US"
    RECOGNITION_BACKEND: Literal["browser", "vosk"] = "browser"
    VOSK_MODEL_PATH: str | None = None
    AUDIO_SAMPLE_RATE: int = 16_000
    BACKEND_URL: str = "http://localhost:5000"
    LLM_TIMEOUT_SECONDS: float = 60.0
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    UI_ORIGIN: str = "http://localhost:3000"
    DEFAULT_VIDEO_URL: str = "https://youtu.be/6pxRHBw-k8M"

    @field_validator("MAX_RESTARTS")
    @classmethod
    def _bound_restarts(cls, value: int) -> int:
        if not 0 <= value <= 10:
            raise ValueError("MAX_RESTARTS must be between 0 and 10")
        return value

    @field_validator("WAKE_WORDS", "CLOSE_WORDS")
    @classmethod
    def _normalize_phrases(cls, value: list[str]) -> list[str]:
        return [phrase.strip().lower() for phrase in value if phrase.strip()]

    @property
    def voice(self) -> VoiceSettings:
        return VoiceSettings(
            wake_words=self.WAKE_WORDS,
            close_words=self.CLOSE_WORDS,
            silence_timeout=self.SILENCE_TIMEOUT_SECONDS,
            max_restarts=self.MAX_RESTARTS,
            restart_delay=self.RESTART_DELAY_SECONDS,
            suppression_release_delay=self.SUPPRESSION_RELEASE_DELAY_SECONDS,
            manual_send_delay=self.MANUAL_SEND_DELAY_SECONDS,
            lang=self.RECOGNITION_LANG,
            backend=self.RECOGNITION_BACKEND,
            vosk_model_path=self.VOSK_MODEL_PATH,
            sample_rate=self.AUDIO_SAMPLE_RATE,
        )

    @property
    def llm(self) -> LLMSettings:
        return LLMSettings(backend_url=self.BACKEND_URL, timeout=self.LLM_TIMEOUT_SECONDS)

    @property
    def telemetry(self) -> TelemetrySettings:
        return TelemetrySettings(log_level=self.LOG_LEVEL, otlp_endpoint=self.OTEL_EXPORTER_OTLP_ENDPOINT)

    @property
    def ui(self) -> UISettings:
        return UISettings(origin=self.UI_ORIGIN)

    @property
    def video(self) -> VideoSettings:
        return VideoSettings(default_url=self.DEFAULT_VIDEO_URL)


@functools.lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return AppSettings()


__all__ = ["AppSettings", "VoiceSettings", "LLMSettings", "load_settings"]
