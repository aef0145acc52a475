class ChatError(Exception):
    """Base class for errors raised by the chat pipeline."""


class ValidationError(ChatError):
    """Malformed or oversized input, rejected before any side effect."""


class NotFoundError(ChatError):
    """A referenced record does not exist or belongs to another user."""


class FileExtractionError(ChatError):
    """One uploaded file could not be parsed."""

    def __init__(self, filename: str, reason: str = ""):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Failed to extract {filename}" + (f": {reason}" if reason else ""))


class UpstreamGenerationError(ChatError):
    """The generative model failed during a call or mid-stream."""


class PersistenceError(ChatError):
    """Saving a message or touching a conversation failed."""
