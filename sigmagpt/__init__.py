"""SigmaGPT: a ChatGPT-style backend that relays chats to an LLM provider."""

__version__ = "1.0.0"
