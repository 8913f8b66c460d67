"""
Data models for conversation storage.
These define the shape of data flowing between the store, the relay and clients.
JSON field names are camelCase to match what the frontend reads.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

DEFAULT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50


def new_id() -> str:
    return uuid4().hex


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_title(text: str) -> str:
    """First 50 characters of the opening message, with '...' if truncated."""
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


@dataclass(frozen=True)
class Message:
    """A single message in a conversation. Immutable once created."""
    role: str                # "user" or "assistant"
    content: str
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    def to_provider_format(self) -> dict:
        """The role/content pair every backend consumes."""
        return {"role": self.role, "content": self.content}


@dataclass
class Conversation:
    """A conversation owns an ordered, append-only list of messages."""
    id: str = field(default_factory=new_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.created_at

    def append(self, message: Message) -> None:
        """Append a message, refresh updatedAt and apply the one-time title rule."""
        self.messages.append(message)
        if len(self.messages) == 2 and self.title == DEFAULT_TITLE:
            opening = next((m for m in self.messages if m.role == "user"), None)
            if opening is not None:
                self.title = make_title(opening.content)
        self.updated_at = utc_now()

    def history(self) -> list[dict]:
        return [m.to_provider_format() for m in self.messages]

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def short_summary(self) -> dict:
        return {"id": self.id, "title": self.title, "updatedAt": self.updated_at}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
