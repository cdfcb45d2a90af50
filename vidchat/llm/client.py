from __future__ import annotations

import httpx

from vidchat.telemetry.logging import get_logger
from vidchat.telemetry.tracing import span

APOLOGY = "I'm sorry, I encountered an error. Please try again!"

PROMPT_TEMPLATE = (
    "You are ChatGPT, a large language model by OpenAI. You are having a friendly and helpful "
    "conversation with a user who is watching a YouTube video. Keep your responses concise and "
    'engaging. User\'s message: "{message}"'
)


def build_prompt(message: str) -> str:
    return PROMPT_TEMPLATE.format(message=message)


class LLMClient:
    """Sends a prompt to the assistant backend and returns reply text.

    Failures come back as text for the chat transcript rather than exceptions.
    """

    def __init__(self, backend_url: str, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(base_url=backend_url.rstrip("/"), timeout=timeout, transport=transport)
        self._logger = get_logger(__name__)

    async def invoke(self, prompt: str) -> str:
        with span("llm.invoke", prompt_chars=len(prompt)):
            try:
                resp = await self._client.post("/api/invoke-llm", json={"prompt": prompt})
            except httpx.HTTPError as exc:
                self._logger.error("llm.invoke.failed", error=str(exc))
                return APOLOGY

            if resp.is_error:
                self._logger.error("llm.invoke.server_error", status=resp.status_code, body=resp.text[:200])
                return f"Server error ({resp.status_code}): {resp.text}"

            try:
                data = resp.json()
            except ValueError as exc:
                self._logger.error("llm.invoke.bad_payload", error=str(exc))
                return APOLOGY
            reply = data.get("reply") if isinstance(data, dict) else None
            if not isinstance(reply, str):
                self._logger.error("llm.invoke.missing_reply", payload=str(data)[:200])
                return APOLOGY
            self._logger.info("llm.invoke.reply", chars=len(reply))
            return reply

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["LLMClient", "build_prompt", "APOLOGY"]
