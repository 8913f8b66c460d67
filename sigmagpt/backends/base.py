"""
Base backend abstraction.
All providers implement this interface so the relay can treat them uniformly:
hand over a role/content history, get back text or a sequence of text fragments.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

logger = logging.getLogger(__name__)


@dataclass
class BackendResponse:
    """Standardized response from any backend."""
    ok: bool
    content: str = ""
    status_code: int = 200
    backend_name: str = ""
    latency_ms: float = 0.0
    error: str = ""  # Server-side logging only, never sent to clients


def latest_user_message(history: list[dict]) -> str:
    """Extract the last user message from a history."""
    for msg in reversed(history):
        if msg.get("role") == "user":
            return msg.get("content", "")
    return ""


class BaseBackend(abc.ABC):
    """
    Abstract base for LLM backends.
    Chosen once at startup; the relay only ever calls generate / generate_stream.
    """

    provider = "base"

    def __init__(
        self,
        name: str,
        url: str = "",
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @abc.abstractmethod
    async def generate(self, history: list[dict]) -> BackendResponse:
        """
        Produce a complete reply for the history.
        Returns BackendResponse with content or error.
        """
        ...

    @abc.abstractmethod
    def generate_stream(self, history: list[dict]) -> AsyncIterator[str]:
        """
        Produce the reply as text fragments, in order.
        Raises ProviderError if the provider fails.
        """
        ...

    def describe(self) -> dict:
        """Non-secret configuration flags for the debug endpoint."""
        return {"provider": self.provider, "name": self.name}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
