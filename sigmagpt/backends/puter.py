"""
Puter backend, the credential-free option.

Calls the Puter driver API with the newest user message. Puter wants an auth
token for AI calls; without one (or on any failure) the backend quietly falls
back to canned replies so the demo keeps working.
"""

from __future__ import annotations

import logging
import random

import httpx

from sigmagpt.backends.base import BaseBackend, BackendResponse, latest_user_message
from sigmagpt.backends.canned import CannedBackend
from sigmagpt.backends.drip import drip_words

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = {"token_missing", "token_invalid", "token_auth_failed", "unauthorized"}


def extract_reply(data) -> tuple[str, str]:
    """
    Pull reply text out of a Puter driver response.
    Returns (text, error_code); exactly one of them is non-empty.
    """
    if isinstance(data, str):
        return data, ""
    if not isinstance(data, dict):
        return "", "unexpected_response"

    error = data.get("error")
    if data.get("success") is False or isinstance(error, dict):
        code = error.get("code", "") if isinstance(error, dict) else ""
        return "", code or "request_failed"
    if data.get("code") in AUTH_ERROR_CODES:
        return "", data["code"]

    result = data.get("result", data)
    if isinstance(result, str):
        return result, ""
    if not isinstance(result, dict):
        return "", "unexpected_response"
    message = result.get("message")
    if isinstance(message, dict) and message.get("content"):
        content = message["content"]
        if isinstance(content, list):
            content = "".join(p.get("text", "") for p in content if isinstance(p, dict))
        return content, ""
    for key in ("text", "content", "message"):
        if isinstance(result.get(key), str) and result[key]:
            return result[key], ""
    return "", "unexpected_response"


class PuterBackend(BaseBackend):
    """Backend for the Puter driver API, degrading to canned replies."""

    provider = "puter"

    def __init__(
        self,
        name: str = "puter",
        url: str = "https://api.puter.com",
        auth_token: str = "",
        model: str = "gpt-4o-mini",
        timeout: int = 60,
        min_delay: float = 0.03,
        max_delay: float = 0.07,
        fallback: CannedBackend | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ):
        super().__init__(name, url, timeout, transport)
        self.auth_token = auth_token
        self.model = model
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.fallback = fallback or CannedBackend(
            name=f"{name}-fallback", min_delay=min_delay, max_delay=max_delay, rng=rng
        )

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _body(self, prompt: str) -> dict:
        return {
            "interface": "puter-chat-completion",
            "driver": "openai-completion",
            "method": "complete",
            "args": {
                "messages": [{"role": "user", "content": prompt}],
                "model": self.model,
            },
        }

    async def _fall_back(self, history: list[dict], reason: str) -> BackendResponse:
        logger.info("Puter backend '%s' unavailable (%s), using canned reply", self.name, reason)
        return await self.fallback.generate(history)

    async def generate(self, history: list[dict]) -> BackendResponse:
        prompt = latest_user_message(history)
        if not self.auth_token:
            return await self._fall_back(history, "token_missing")

        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.url}/drivers/call",
                    json=self._body(prompt),
                    headers=self._headers(),
                )
        except Exception as e:
            logger.warning("Puter backend '%s' failed: %s", self.name, e)
            return await self._fall_back(history, "request failed")

        if resp.status_code >= 400:
            return await self._fall_back(history, f"HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            data = resp.text
        text, code = extract_reply(data)
        if code:
            return await self._fall_back(history, code)
        return BackendResponse(ok=True, content=text, backend_name=self.name)

    async def generate_stream(self, history: list[dict]):
        """Puter has no token stream here; drip the buffered reply."""
        response = await self.generate(history)
        async for chunk in drip_words(response.content, self.min_delay, self.max_delay):
            yield chunk

    def describe(self) -> dict:
        return {
            "provider": self.provider,
            "name": self.name,
            "model": self.model,
            "configured": bool(self.auth_token),
        }
