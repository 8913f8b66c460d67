"""
Conversation storage. Everything lives in process memory.
"""
from sigmagpt.storage.memory_store import ConversationStore
from sigmagpt.storage.models import Conversation, Message

__all__ = ["ConversationStore", "Conversation", "Message"]
