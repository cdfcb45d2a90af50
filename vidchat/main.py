from __future__ import annotations

from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from vidchat.chat.host import VoiceChatHost
from vidchat.chat.session import ChatSession
from vidchat.chat.video import VideoSource
from vidchat.config import AppSettings, load_settings
from vidchat.llm.client import LLMClient
from vidchat.telemetry.logging import configure_logging, get_logger
from vidchat.telemetry.tracing import configure_tracing
from vidchat.ui.websocket import UIBridge
from vidchat.voice.backend import RecognitionBackend
from vidchat.voice.controller import VoiceSessionController
from vidchat.voice.local import VoskRecognitionBackend
from vidchat.voice.relay import BrowserRelayBackend
from vidchat.voice.timers import Scheduler

logger = get_logger(__name__)


class ChatRequest(BaseModel):
    text: str


class StopRequest(BaseModel):
    disable_restart: bool = False


class SuppressRequest(BaseModel):
    suppressed: bool


class VideoRequest(BaseModel):
    url: str


class PlaybackRequest(BaseModel):
    playing: bool = True


class Runtime:
    def __init__(
        self,
        settings: AppSettings,
        ui: UIBridge,
        llm: LLMClient,
        chat: ChatSession,
        video: VideoSource,
        host: VoiceChatHost,
        backend: RecognitionBackend,
        controller: VoiceSessionController,
    ) -> None:
        self.settings = settings
        self.ui = ui
        self.llm = llm
        self.chat = chat
        self.video = video
        self.host = host
        self.backend = backend
        self.controller = controller
        self._logger = get_logger(__name__)

    async def shutdown(self) -> None:
        self._logger.info("runtime.shutdown.start")
        self.controller.close()
        await self.host.shutdown()
        await self.backend.close()
        await self.llm.aclose()
        self._logger.info("runtime.shutdown.complete")


def build_backend(settings: AppSettings) -> RecognitionBackend:
    voice = settings.voice
    if voice.backend == "vosk":
        return VoskRecognitionBackend(voice.vosk_model_path, sample_rate=voice.sample_rate)
    return BrowserRelayBackend(lang=voice.lang)


def build_runtime(
    settings: AppSettings,
    ui: UIBridge,
    backend: RecognitionBackend | None = None,
    llm_transport: httpx.AsyncBaseTransport | None = None,
    scheduler: Scheduler | None = None,
) -> Runtime:
    llm = LLMClient(settings.llm.backend_url, timeout=settings.llm.timeout, transport=llm_transport)
    chat = ChatSession(llm, ui)
    video = VideoSource(ui, settings.video.default_url)
    host = VoiceChatHost(chat, video, ui, manual_send_delay=settings.voice.manual_send_delay)
    backend = backend or build_backend(settings)
    controller = VoiceSessionController.from_settings(backend, host, settings.voice, scheduler)
    host.attach(controller)
    logger.info(
        "runtime.built",
        backend=type(backend).__name__,
        wake_words=settings.voice.wake_words,
        close_words=settings.voice.close_words,
        max_restarts=settings.voice.max_restarts,
    )
    return Runtime(settings, ui, llm, chat, video, host, backend, controller)


def _runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Assistant not ready yet.")
    return runtime


def create_app(
    settings: AppSettings | None = None,
    backend: RecognitionBackend | None = None,
    llm_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.telemetry.log_level)
    configure_tracing("vidchat", settings.telemetry.otlp_endpoint)

    app = FastAPI(title="Video Chat Voice Assistant")
    ui_bridge = UIBridge()
    app.include_router(ui_bridge.router)

    origins = {settings.ui.origin}
    if "localhost" in settings.ui.origin:
        origins.add(settings.ui.origin.replace("localhost", "127.0.0.1"))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    @app.on_event("startup")
    async def startup_event() -> None:
        app.state.runtime = build_runtime(settings, ui_bridge, backend=backend, llm_transport=llm_transport)
        logger.info("runtime.started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        runtime = getattr(app.state, "runtime", None)
        if runtime:
            await runtime.shutdown()
            app.state.runtime = None

    @app.post("/chat")
    async def chat_endpoint(body: ChatRequest, request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        reply = await runtime.host.send_text(body.text)
        if reply is None:
            return {"status": "ignored"}
        return {"status": "ok", "reply": reply.to_dict()}

    @app.get("/chat/messages")
    async def chat_messages(request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        return {
            "messages": [message.to_dict() for message in runtime.chat.messages],
            "visible": runtime.chat.visible,
            "pending": runtime.chat.pending,
        }

    @app.post("/chat/open")
    async def chat_open(request: Request) -> dict[str, bool]:
        runtime = _runtime(request)
        await runtime.host.open_chat()
        return {"visible": runtime.chat.visible}

    @app.post("/chat/close")
    async def chat_close(request: Request) -> dict[str, bool]:
        runtime = _runtime(request)
        await runtime.host.close_chat()
        return {"visible": runtime.chat.visible}

    @app.get("/voice/state")
    async def voice_state(request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        return runtime.controller.state.to_dict() | {"manual_active": runtime.host.manual_active}

    @app.post("/voice/start")
    async def voice_start(request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        runtime.controller.start()
        logger.info("voice.endpoint.start")
        return runtime.controller.state.to_dict()

    @app.post("/voice/stop")
    async def voice_stop(body: StopRequest, request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        runtime.controller.stop(body.disable_restart)
        logger.info("voice.endpoint.stop", disable_restart=body.disable_restart)
        return runtime.controller.state.to_dict()

    @app.post("/voice/suppress")
    async def voice_suppress(body: SuppressRequest, request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        runtime.controller.set_suppressed(body.suppressed)
        return runtime.controller.state.to_dict()

    @app.post("/voice/manual/begin")
    async def manual_begin(request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        runtime.host.begin_manual_dictation()
        return runtime.controller.state.to_dict()

    @app.post("/voice/manual/submit")
    async def manual_submit(body: ChatRequest, request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        reply = await runtime.host.submit_manual_dictation(body.text)
        if reply is None:
            return {"status": "ignored"}
        return {"status": "ok", "reply": reply.to_dict()}

    @app.post("/voice/manual/cancel")
    async def manual_cancel(request: Request) -> dict[str, Any]:
        runtime = _runtime(request)
        runtime.host.cancel_manual_dictation()
        return runtime.controller.state.to_dict()

    @app.get("/video")
    async def video_state(request: Request) -> dict[str, object]:
        return _runtime(request).video.to_dict()

    @app.post("/video")
    async def video_change(body: VideoRequest, request: Request) -> dict[str, object]:
        runtime = _runtime(request)
        if not await runtime.video.change(body.url):
            raise HTTPException(status_code=422, detail="Video URL must not be empty.")
        return runtime.video.to_dict()

    @app.post("/video/playback")
    async def video_playback(body: PlaybackRequest, request: Request) -> dict[str, object]:
        runtime = _runtime(request)
        if body.playing:
            await runtime.host.playback_started()
        else:
            await runtime.video.set_playing(False)
        return runtime.video.to_dict()

    @app.websocket("/ws/recognition")
    async def recognition_socket(websocket: WebSocket) -> None:
        runtime = getattr(websocket.app.state, "runtime", None)
        if runtime is None or not isinstance(runtime.backend, BrowserRelayBackend):
            await websocket.close(code=1008)
            return
        await runtime.backend.serve(websocket)

    return app


app = create_app()
