"""
OpenAI chat-completions backend.

Speaks the /v1/chat/completions wire format, so it also works against any
OpenAI-compatible endpoint (vLLM, llama.cpp server, LocalAI, ...) by pointing
`url` somewhere else.
"""

from __future__ import annotations

import json
import logging
import time

import httpx

from sigmagpt.backends.base import BaseBackend, BackendResponse
from sigmagpt.errors import ProviderError

logger = logging.getLogger(__name__)


class OpenAIBackend(BaseBackend):
    """Backend for OpenAI and OpenAI-compatible endpoints."""

    provider = "openai"

    def __init__(
        self,
        name: str = "openai",
        url: str = "https://api.openai.com",
        api_key: str = "",
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(name, url, timeout, transport)
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _body(self, history: list[dict], stream: bool = False) -> dict:
        body = {
            "model": self.model,
            "messages": history,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if stream:
            body["stream"] = True
        return body

    @staticmethod
    def _extract_content(data: dict) -> str:
        choices = data.get("choices", [])
        if choices:
            return choices[0].get("message", {}).get("content") or ""
        return ""

    @staticmethod
    def _extract_delta(line: str) -> str | None:
        """
        Parse one SSE line from a streaming response.
        Returns the delta text, "" for lines without text, None at [DONE].
        """
        if not line.startswith("data:"):
            return ""
        payload = line[5:].strip()
        if payload == "[DONE]":
            return None
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable stream line from OpenAI: %r", payload[:80])
            return ""
        choices = data.get("choices") or [{}]
        return (choices[0].get("delta") or {}).get("content") or ""

    async def generate(self, history: list[dict]) -> BackendResponse:
        """Forward a non-streaming request."""
        t0 = time.monotonic()
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.url}/v1/chat/completions",
                    json=self._body(history),
                    headers=self._headers(),
                )
                latency = (time.monotonic() - t0) * 1000

                if resp.status_code >= 400:
                    return BackendResponse(
                        ok=False,
                        status_code=resp.status_code,
                        backend_name=self.name,
                        latency_ms=latency,
                        error=f"HTTP {resp.status_code}: {resp.text[:200]}",
                    )

                return BackendResponse(
                    ok=True,
                    status_code=resp.status_code,
                    content=self._extract_content(resp.json()),
                    backend_name=self.name,
                    latency_ms=latency,
                )
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning(
                "OpenAI backend '%s' timed out after %.0fms", self.name, latency
            )
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=latency,
                error=f"Timeout after {self.timeout}s",
            )
        except Exception as e:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("OpenAI backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=latency,
                error=str(e),
            )

    async def generate_stream(self, history: list[dict]):
        """Native token streaming, yielding delta text."""
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.url}/v1/chat/completions",
                    json=self._body(history, stream=True),
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        raise ProviderError(
                            f"HTTP {resp.status_code}: {resp.text[:200]}", self.name
                        )
                    async for line in resp.aiter_lines():
                        delta = self._extract_delta(line)
                        if delta is None:
                            break
                        if delta:
                            yield delta
        except ProviderError:
            raise
        except httpx.TimeoutException as e:
            logger.warning("OpenAI backend '%s' stream timed out", self.name)
            raise ProviderError(f"Timeout after {self.timeout}s", self.name) from e
        except httpx.HTTPError as e:
            logger.warning("OpenAI backend '%s' stream failed: %s", self.name, e)
            raise ProviderError(str(e), self.name) from e

    def describe(self) -> dict:
        return {
            "provider": self.provider,
            "name": self.name,
            "model": self.model,
            "configured": bool(self.api_key),
        }
