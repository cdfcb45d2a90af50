from __future__ import annotations

import asyncio
import json
from pathlib import Path

try:
    import sounddevice as sd  # type: ignore[import]
    from vosk import KaldiRecognizer, Model, SetLogLevel  # type: ignore[import]
except ImportError:  # pragma: no cover - optional dependency
    sd = None
    KaldiRecognizer = Model = SetLogLevel = None  # type: ignore[assignment]

from vidchat.telemetry.logging import get_logger
from vidchat.voice.backend import RecognitionBackend, RecognitionUnavailable
from vidchat.voice.events import RecognitionErrorKind, SessionHandle


class VoskRecognitionBackend(RecognitionBackend):
    """Continuous recognition from the local microphone with a Vosk model."""

    def __init__(
        self,
        model_path: str | None,
        sample_rate: int = 16_000,
        frame_ms: int = 100,
        device: str | int | None = None,
    ) -> None:
        super().__init__()
        self._model_path = model_path
        self._sample_rate = sample_rate
        self._blocksize = int(sample_rate * frame_ms / 1000)
        self._device = device
        self._model: object | None = None
        self._stops: dict[int, asyncio.Event] = {}
        self._tasks: set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def available(self) -> bool:
        return self.unavailable_reason is None

    @property
    def unavailable_reason(self) -> str | None:
        if KaldiRecognizer is None or sd is None:
            return "vosk and sounddevice must be installed for local recognition"
        if not self._model_path or not Path(self._model_path).exists():
            return f"Vosk model not found at {self._model_path!r}"
        return None

    def start_session(self, automatic: bool = False) -> SessionHandle:
        reason = self.unavailable_reason
        if reason is not None:
            raise RecognitionUnavailable(reason)
        session = self._new_handle(automatic)
        stop = asyncio.Event()
        self._stops[session.id] = stop
        task = asyncio.create_task(self._run(session, stop), name=f"vosk-session:{session.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session

    def stop_session(self, session: SessionHandle) -> None:
        stop = self._stops.get(session.id)
        if stop is not None:
            stop.set()

    async def close(self) -> None:
        for stop in self._stops.values():
            stop.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(self, session: SessionHandle, stop: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        frames: asyncio.Queue[bytes] = asyncio.Queue(maxsize=256)

        def callback(indata, _frames, _time_info, status) -> None:  # type: ignore[no-untyped-def]
            if status:
                self._logger.warning("vosk.capture.status", status=str(status))
            loop.call_soon_threadsafe(self._offer, frames, bytes(indata))

        try:
            recognizer = KaldiRecognizer(await self._load_model(), self._sample_rate)
            stream = sd.RawInputStream(
                samplerate=self._sample_rate,
                blocksize=self._blocksize,
                dtype="int16",
                channels=1,
                callback=callback,
                device=self._device,
            )
        except Exception as exc:
            self._logger.error("vosk.session.open_failed", session=session.id, error=str(exc))
            self.events.on_session_error(session, RecognitionErrorKind.OTHER)
            self._finish(session)
            return

        try:
            with stream:
                self.events.on_session_started(session)
                while not stop.is_set():
                    try:
                        pcm = await asyncio.wait_for(frames.get(), timeout=0.25)
                    except asyncio.TimeoutError:
                        continue
                    if recognizer.AcceptWaveform(pcm):
                        text = self.result_text(recognizer.Result())
                        if text:
                            self.events.on_transcript(session, text, True)
        finally:
            self._finish(session)

    async def _load_model(self) -> object:
        if self._model is None:
            SetLogLevel(-1)
            loop = asyncio.get_running_loop()
            self._model = await loop.run_in_executor(None, Model, self._model_path)
            self._logger.info("vosk.model.loaded", path=self._model_path)
        return self._model

    def _finish(self, session: SessionHandle) -> None:
        self._stops.pop(session.id, None)
        self.events.on_session_ended(session)

    def _offer(self, frames: asyncio.Queue[bytes], pcm: bytes) -> None:
        try:
            frames.put_nowait(pcm)
        except asyncio.QueueFull:
            self._logger.debug("vosk.capture.dropped", bytes=len(pcm))

    @staticmethod
    def result_text(payload: str) -> str:
        if not payload:
            return ""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return ""
        return str(data.get("text") or "").strip()


__all__ = ["VoskRecognitionBackend"]
