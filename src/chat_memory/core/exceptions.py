"""Exceptions raised by the conversational memory engine.

Missing or unreadable documents are never raised; they hydrate as defaults.
Only genuine backend failures and rejected caller input surface here.
"""


class MemorySystemError(Exception):
    """Base exception for the memory engine"""

    pass


class StorageError(MemorySystemError):
    """The persistence backend failed to read or write a document"""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)


class MessageNotFoundError(MemorySystemError):
    """Feedback was addressed to a message that is not in history"""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Message not found in history: {message_id}")


class ValidationError(MemorySystemError):
    """Caller input was rejected"""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for '{field}': {message}")
