from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from vidchat.chat.session import StatePublisher
from vidchat.telemetry.logging import get_logger

DEFAULT_VIDEO_ID = "6pxRHBw-k8M"


def extract_video_id(url: str) -> str | None:
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    host = parsed.hostname or ""
    if "youtube.com" in host:
        return parse_qs(parsed.query).get("v", [None])[0]
    if "youtu.be" in host:
        return parsed.path.lstrip("/") or None
    return None


class VideoSource:
    def __init__(self, ui: StatePublisher, url: str) -> None:
        self._ui = ui
        self._url = url
        self._playing = False
        self._logger = get_logger(__name__)

    @property
    def url(self) -> str:
        return self._url

    @property
    def video_id(self) -> str:
        return extract_video_id(self._url) or DEFAULT_VIDEO_ID

    @property
    def playing(self) -> bool:
        return self._playing

    def to_dict(self) -> dict[str, object]:
        return {"url": self._url, "video_id": self.video_id, "playing": self._playing}

    async def change(self, url: str) -> bool:
        candidate = url.strip()
        if not candidate:
            return False
        self._url = candidate
        self._playing = False
        self._logger.info("video.changed", url=candidate, video_id=self.video_id)
        await self._ui.publish_state("VIDEO", self.to_dict())
        return True

    async def set_playing(self, playing: bool) -> None:
        self._playing = playing
        await self._ui.publish_state("VIDEO", self.to_dict())


__all__ = ["VideoSource", "extract_video_id", "DEFAULT_VIDEO_ID"]
