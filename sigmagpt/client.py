"""
Async client for the SigmaGPT HTTP API.

Wraps the REST endpoints and parses the SSE stream of the streaming send:

    async with ChatClient("http://localhost:3001/api") as client:
        conv = await client.create_conversation()
        await client.stream_message(conv["id"], "Hello", on_data=print)
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001/api"

DONE = object()


def parse_sse_line(line: str):
    """
    Decode one line of the event stream.
    Returns the parsed event dict, DONE for the sentinel, or None for lines to skip
    (blank lines, non-data lines, malformed JSON).
    """
    if not line.startswith("data: "):
        return None
    payload = line[6:]
    if payload.strip() == "[DONE]":
        return DONE
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Failed to parse SSE data: %r", payload[:200])
        return None


async def _call(callback: Callable | None, *args):
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ChatClient:
    """Thin client over the conversation endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _json(self, method: str, path: str, **kwargs) -> Any:
        resp = await self._http.request(method, path, **kwargs)
        resp.raise_for_status()
        return resp.json()

    async def health(self) -> dict:
        return await self._json("GET", "/health")

    async def debug(self) -> dict:
        return await self._json("GET", "/debug")

    async def get_conversations(self) -> list[dict]:
        return await self._json("GET", "/conversations")

    async def get_conversation(self, conversation_id: str) -> dict:
        return await self._json("GET", f"/conversations/{conversation_id}")

    async def create_conversation(self) -> dict:
        return await self._json("POST", "/conversations")

    async def delete_conversation(self, conversation_id: str) -> dict:
        return await self._json("DELETE", f"/conversations/{conversation_id}")

    async def send_message(self, conversation_id: str, message: str) -> dict:
        return await self._json(
            "POST", f"/conversations/{conversation_id}/messages", json={"message": message}
        )

    async def stream_message(
        self,
        conversation_id: str,
        message: str,
        on_data: Callable[[dict], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        on_complete: Callable[[], Any] | None = None,
    ) -> None:
        """
        POST to the streaming endpoint and dispatch events as they arrive.
        on_complete fires on `[DONE]`; network errors and non-2xx statuses go to on_error.
        Callbacks may be plain functions or coroutines.
        """
        try:
            async with self._http.stream(
                "POST",
                f"/conversations/{conversation_id}/stream",
                json={"message": message},
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise httpx.HTTPStatusError(
                        f"HTTP error! status: {resp.status_code}",
                        request=resp.request,
                        response=resp,
                    )

                # aiter_text decodes UTF-8 incrementally; lines may straddle chunks
                buffer = ""
                async for text in resp.aiter_text():
                    buffer += text
                    *lines, buffer = buffer.split("\n")
                    for line in lines:
                        event = parse_sse_line(line.rstrip("\r"))
                        if event is DONE:
                            await _call(on_complete)
                            return
                        if event is not None:
                            await _call(on_data, event)

                if buffer:
                    event = parse_sse_line(buffer.rstrip("\r"))
                    if event is DONE:
                        await _call(on_complete)
                    elif event is not None:
                        await _call(on_data, event)
        except httpx.HTTPError as e:
            await _call(on_error, e)
