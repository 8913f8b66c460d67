"""
In-memory conversation store.
Process-local mapping of conversation id -> Conversation. Nothing survives a
restart. The store is an ordinary object handed to the relay and the routes,
so every test can build its own.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from sigmagpt.errors import ConversationNotFound
from sigmagpt.storage.models import Conversation, Message

logger = logging.getLogger(__name__)


class ConversationStore:
    """Thread-safe in-memory conversation store."""

    def __init__(self):
        self._conversations: dict[str, Conversation] = {}
        self._mutex = threading.Lock()
        # One asyncio lock per conversation id; held across read-history -> generate -> append
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def create(self) -> Conversation:
        """Create an empty conversation with a fresh id."""
        conv = Conversation()
        with self._mutex:
            self._conversations[conv.id] = conv
        logger.debug("Created conversation %s", conv.id)
        return conv

    def get(self, conversation_id: str) -> Conversation:
        """Exact-id lookup. Raises ConversationNotFound."""
        with self._mutex:
            conv = self._conversations.get(conversation_id)
        if conv is None:
            raise ConversationNotFound(conversation_id)
        return conv

    def get_or_create(self, conversation_id: str) -> Conversation:
        """Return the conversation, creating it under the given id if absent."""
        with self._mutex:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                conv = Conversation(id=conversation_id)
                self._conversations[conversation_id] = conv
                logger.debug("Created conversation %s on first message", conversation_id)
        return conv

    def list(self) -> list[dict]:
        """Summaries only, most recently updated first."""
        with self._mutex:
            convs = list(self._conversations.values())
        convs.sort(key=lambda c: c.updated_at, reverse=True)
        return [c.summary() for c in convs]

    def delete(self, conversation_id: str) -> None:
        """Remove a conversation. Raises ConversationNotFound."""
        with self._mutex:
            if self._conversations.pop(conversation_id, None) is None:
                raise ConversationNotFound(conversation_id)
            lock = self._locks.get(conversation_id)
            if lock is not None and not lock.locked():
                del self._locks[conversation_id]
        logger.debug("Deleted conversation %s", conversation_id)

    def append_message(self, conversation_id: str, message: Message) -> Conversation:
        """Append a message, creating the conversation on demand."""
        with self._mutex:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                conv = Conversation(id=conversation_id)
                self._conversations[conversation_id] = conv
            conv.append(message)
        logger.debug(
            "Stored message %s (role=%s, conv=%s)", message.id, message.role, conversation_id
        )
        return conv

    def history(self, conversation_id: str) -> list[dict]:
        """Role/content pairs for the provider, oldest first."""
        with self._mutex:
            conv = self._conversations.get(conversation_id)
            return conv.history() if conv else []

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """The lock serializing sends to one conversation."""
        with self._mutex:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = self._locks[conversation_id] = asyncio.Lock()
            return lock

    def get_stats(self) -> dict:
        with self._mutex:
            convs = list(self._conversations.values())
        messages = [m for c in convs for m in c.messages]
        return {
            "conversations": len(convs),
            "messages": len(messages),
            "user_messages": sum(1 for m in messages if m.role == "user"),
            "assistant_messages": sum(1 for m in messages if m.role == "assistant"),
        }
