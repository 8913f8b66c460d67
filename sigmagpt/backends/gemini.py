"""
Google Gemini backend.
Gemini calls the assistant side "model", so history roles are renamed on the way out.
"""

from __future__ import annotations

import json
import logging
import time

import httpx

from sigmagpt.backends.base import BaseBackend, BackendResponse
from sigmagpt.errors import ProviderError

logger = logging.getLogger(__name__)

ROLE_MAP = {"assistant": "model", "user": "user"}


def to_gemini_contents(history: list[dict]) -> list[dict]:
    """Convert role/content pairs into Gemini `contents` entries."""
    contents = []
    for msg in history:
        role = ROLE_MAP.get(msg.get("role", ""))
        if role is None:
            continue
        contents.append({"role": role, "parts": [{"text": msg.get("content", "")}]})
    return contents


def extract_text(data: dict) -> str:
    """Join the text parts of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)


class GeminiBackend(BaseBackend):
    """Backend for the Gemini generateContent API."""

    provider = "gemini"

    def __init__(
        self,
        name: str = "gemini",
        url: str = "https://generativelanguage.googleapis.com",
        api_key: str = "",
        model: str = "gemini-1.5-flash",
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(name, url, timeout, transport)
        self.api_key = api_key
        self.model = model

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    def _endpoint(self, method: str) -> str:
        return f"{self.url}/v1beta/models/{self.model}:{method}"

    async def generate(self, history: list[dict]) -> BackendResponse:
        t0 = time.monotonic()
        try:
            async with self._client() as client:
                resp = await client.post(
                    self._endpoint("generateContent"),
                    json={"contents": to_gemini_contents(history)},
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
                text = extract_text(resp.json())
                if not text:
                    return BackendResponse(
                        ok=False,
                        status_code=resp.status_code,
                        backend_name=self.name,
                        latency_ms=latency,
                        error="Gemini returned no candidates",
                    )
                return BackendResponse(
                    ok=True,
                    status_code=resp.status_code,
                    content=text,
                    backend_name=self.name,
                    latency_ms=latency,
                )
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Gemini backend '%s' timed out after %.0fms", self.name, latency)
            return BackendResponse(
                ok=False, backend_name=self.name, latency_ms=latency,
                error=f"Timeout after {self.timeout}s",
            )
        except Exception as e:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Gemini backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False, backend_name=self.name, latency_ms=latency,
                error=str(e),
            )

    async def generate_stream(self, history: list[dict]):
        """Native streaming through streamGenerateContent with SSE framing."""
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self._endpoint("streamGenerateContent"),
                    params={"alt": "sse"},
                    json={"contents": to_gemini_contents(history)},
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        raise ProviderError(
                            f"HTTP {resp.status_code}: {resp.text[:200]}", self.name
                        )
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        try:
                            data = json.loads(line[5:].strip())
                        except json.JSONDecodeError:
                            logger.debug("Skipping unparseable stream line from Gemini")
                            continue
                        text = extract_text(data)
                        if text:
                            yield text
        except ProviderError:
            raise
        except httpx.TimeoutException as e:
            logger.warning("Gemini backend '%s' stream timed out", self.name)
            raise ProviderError(f"Timeout after {self.timeout}s", self.name) from e
        except httpx.HTTPError as e:
            logger.warning("Gemini backend '%s' stream failed: %s", self.name, e)
            raise ProviderError(str(e), self.name) from e

    def describe(self) -> dict:
        return {
            "provider": self.provider,
            "name": self.name,
            "model": self.model,
            "configured": bool(self.api_key),
        }
