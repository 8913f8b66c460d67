"""
Shared fixtures: scripted backends and a fresh store per test.
"""

import asyncio

import pytest

from sigmagpt.backends.base import BaseBackend, BackendResponse
from sigmagpt.config import build_config
from sigmagpt.storage.memory_store import ConversationStore


class ScriptedBackend(BaseBackend):
    """Replies with fixed text; streams it as the given chunks."""

    provider = "scripted"

    def __init__(self, reply="Hi there, how can I help?", chunks=None, delay=0.0):
        super().__init__("scripted")
        self.reply = reply
        self.chunks = chunks if chunks is not None else ["Hi ", "there, ", "how ", "can ", "I ", "help?"]
        self.delay = delay
        self.calls: list[list[dict]] = []

    async def generate(self, history):
        self.calls.append(list(history))
        if self.delay:
            await asyncio.sleep(self.delay)
        return BackendResponse(ok=True, content=self.reply, backend_name=self.name)

    async def generate_stream(self, history):
        self.calls.append(list(history))
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk


class FailingBackend(BaseBackend):
    """Fails the way a real provider does, with secret-looking error text."""

    provider = "failing"
    SECRET = "invalid api key sk-live-SECRET123"

    def __init__(self, chunks_before_failure=None):
        super().__init__("failing")
        self.chunks_before_failure = chunks_before_failure or []

    async def generate(self, history):
        return BackendResponse(ok=False, status_code=401, backend_name=self.name, error=self.SECRET)

    async def generate_stream(self, history):
        from sigmagpt.errors import ProviderError
        for chunk in self.chunks_before_failure:
            yield chunk
        raise ProviderError(self.SECRET, self.name)


class StallingBackend(BaseBackend):
    """Emits the given chunks, then hangs until cancelled."""

    provider = "stalling"

    def __init__(self, chunks=None):
        super().__init__("stalling")
        self.chunks = chunks or []
        self.cancelled = False

    async def generate(self, history):
        await asyncio.sleep(3600)

    async def generate_stream(self, history):
        try:
            for chunk in self.chunks:
                yield chunk
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.fixture
def store():
    """Fresh in-memory store for each test."""
    return ConversationStore()


@pytest.fixture
def cfg():
    """Defaults only; the real environment is ignored."""
    return build_config({"logging": {"level": "WARNING"}}, env={})
