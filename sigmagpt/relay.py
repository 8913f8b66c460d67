"""
Relay: the core of SigmaGPT.
Takes a user message, records it, asks the backend for a reply, records the
reply, and hands the result back either as one JSON document or as a stream of
SSE events.

Streaming runs a producer task that pulls fragments from the backend into a
bounded queue; the response writer drains the queue. If the client goes away
the writer is cancelled and takes the producer (and its upstream HTTP call)
down with it.
"""

import asyncio
import contextlib
import json
import logging

from sigmagpt.backends.base import BaseBackend
from sigmagpt.errors import ProviderError, ValidationError
from sigmagpt.storage.memory_store import ConversationStore
from sigmagpt.storage.models import Message, new_id

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DONE = "data: [DONE]\n\n"

_END = object()


def sse_event(event_type: str, data: dict) -> str:
    """Frame one event as a `data: <json>` SSE line."""
    return f"data: {json.dumps({'type': event_type, 'data': data})}\n\n"


def validate_message(message) -> str:
    """The message must be a non-blank string. Raises ValidationError."""
    if not isinstance(message, str) or not message.strip():
        raise ValidationError()
    return message


class ChatRelay:
    """Moves messages between the store and the backend."""

    def __init__(
        self,
        store: ConversationStore,
        backend: BaseBackend,
        stream_timeout: float = 45.0,
        queue_size: int = 64,
    ):
        self.store = store
        self.backend = backend
        self.stream_timeout = stream_timeout
        self.queue_size = queue_size

    async def _generate(self, conversation_id: str, history: list[dict]) -> str:
        try:
            response = await self.backend.generate(history)
        except Exception as e:
            logger.exception("Backend '%s' raised for conversation %s", self.backend.name, conversation_id)
            raise ProviderError(str(e), self.backend.name) from e

        if not response.ok:
            logger.error(
                "Backend '%s' failed for conversation %s after %.0fms: %s",
                response.backend_name or self.backend.name,
                conversation_id,
                response.latency_ms,
                response.error,
            )
            raise ProviderError(response.error, response.backend_name)
        return response.content

    async def send_message(self, conversation_id: str, message) -> dict:
        """
        Buffered send. Returns {userMessage, assistantMessage, conversation}.
        Raises ValidationError or ProviderError; on provider failure the user
        message stays in the conversation.
        """
        text = validate_message(message)

        async with self.store.lock(conversation_id):
            user_message = Message(role="user", content=text)
            self.store.append_message(conversation_id, user_message)

            content = await self._generate(conversation_id, self.store.history(conversation_id))

            assistant_message = Message(role="assistant", content=content)
            conv = self.store.append_message(conversation_id, assistant_message)

        logger.info(
            "Conversation %s: replied with %d chars via %s",
            conversation_id, len(content), self.backend.name,
        )
        return {
            "userMessage": user_message.to_dict(),
            "assistantMessage": assistant_message.to_dict(),
            "conversation": conv.short_summary(),
        }

    async def _relay_chunks(self, history: list[dict]):
        """
        Yield backend fragments through a bounded queue.
        Raises ProviderError on backend failure or when no fragment arrives
        within stream_timeout seconds (the clock restarts on every fragment).
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)

        async def produce():
            try:
                async for chunk in self.backend.generate_stream(history):
                    if chunk:
                        await queue.put(chunk)
            except Exception as e:
                await queue.put(e)
            else:
                await queue.put(_END)

        producer = asyncio.create_task(produce())
        try:
            while True:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=self.stream_timeout)
                except asyncio.TimeoutError:
                    raise ProviderError(
                        f"No data from backend within {self.stream_timeout}s", self.backend.name
                    ) from None
                if item is _END:
                    return
                if isinstance(item, ProviderError):
                    raise item
                if isinstance(item, Exception):
                    raise ProviderError(str(item), self.backend.name) from item
                yield item
        finally:
            if not producer.done():
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer

    async def stream_message(self, conversation_id: str, message):
        """
        Streaming send. Yields SSE frames:
        user_message, assistant_start, assistant_chunk*, assistant_complete
        (or a single error event), then [DONE] no matter what.
        Validate with validate_message() before opening the response.
        """
        text = validate_message(message)

        async with self.store.lock(conversation_id):
            user_message = Message(role="user", content=text)
            self.store.append_message(conversation_id, user_message)
            history = self.store.history(conversation_id)

            yield sse_event("user_message", user_message.to_dict())

            assistant_id = new_id()
            yield sse_event("assistant_start", {"id": assistant_id})

            parts: list[str] = []
            failed = False
            try:
                async with contextlib.aclosing(self._relay_chunks(history)) as chunks:
                    async for chunk in chunks:
                        parts.append(chunk)
                        yield sse_event("assistant_chunk", {"content": chunk})
            except ProviderError as e:
                logger.error(
                    "Streaming from backend '%s' failed for conversation %s: %s",
                    e.backend_name or self.backend.name, conversation_id, e.detail,
                )
                failed = True
            except Exception:
                logger.exception("Streaming failed for conversation %s", conversation_id)
                failed = True

            if failed:
                yield sse_event("error", {"message": ProviderError.public_message})
            else:
                assistant_message = Message(
                    id=assistant_id, role="assistant", content="".join(parts)
                )
                conv = self.store.append_message(conversation_id, assistant_message)
                logger.info(
                    "Conversation %s: streamed %d chunks via %s",
                    conversation_id, len(parts), self.backend.name,
                )
                yield sse_event("assistant_complete", {
                    "message": assistant_message.to_dict(),
                    "conversation": conv.short_summary(),
                })

        yield DONE
