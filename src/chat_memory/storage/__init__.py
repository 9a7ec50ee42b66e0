"""
Persistence adapters

In-memory, JSON file and Fernet-encrypted document stores.
"""

from .encrypted_store import EncryptedDocumentStore
from .json_store import JsonDocumentStore
from .keys import longterm_key, preferences_key, profile_key, session_key
from .memory_store import InMemoryDocumentStore

__all__ = [
    "EncryptedDocumentStore",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
    "longterm_key",
    "preferences_key",
    "profile_key",
    "session_key",
]
