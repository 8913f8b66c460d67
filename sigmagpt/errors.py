"""
Error taxonomy for SigmaGPT.
Routes map these onto HTTP status codes; the messages are safe to show clients.
"""


class SigmaGPTError(Exception):
    """Base class for errors surfaced to HTTP clients."""
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.public_message = message or self.public_message


class ValidationError(SigmaGPTError):
    status_code = 400
    public_message = "Message is required"


class ConversationNotFound(SigmaGPTError):
    status_code = 404
    public_message = "Conversation not found"

    def __init__(self, conversation_id: str = ""):
        super().__init__()
        self.conversation_id = conversation_id


class ProviderError(SigmaGPTError):
    """
    Any failure from the LLM backend (network, auth, quota, bad payload).
    `detail` is for server logs only and must never be sent to clients.
    """
    status_code = 502
    public_message = "Failed to get response from AI"

    def __init__(self, detail: str = "", backend_name: str = ""):
        super().__init__()
        self.detail = detail
        self.backend_name = backend_name
