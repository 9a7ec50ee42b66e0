"""
Collaborator contracts

Protocols keep the engine independent of the storage backend and of the
heuristics used to score messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .models import ConversationMessage, Engagement, Sentiment


class ReadStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True)
class ReadResult:
    """Outcome of reading one logical key.

    Distinguishes a fresh user (``NOT_FOUND``) from a storage outage
    (``BACKEND_ERROR``) so the caller decides whether defaulting is safe.
    """

    status: ReadStatus
    document: dict[str, Any] | None = None
    error: BaseException | None = None

    @classmethod
    def found(cls, document: dict[str, Any]) -> "ReadResult":
        return cls(status=ReadStatus.FOUND, document=document)

    @classmethod
    def not_found(cls) -> "ReadResult":
        return cls(status=ReadStatus.NOT_FOUND)

    @classmethod
    def backend_error(cls, error: BaseException) -> "ReadResult":
        return cls(status=ReadStatus.BACKEND_ERROR, error=error)

    @property
    def is_found(self) -> bool:
        return self.status is ReadStatus.FOUND


@runtime_checkable
class PersistenceAdapter(Protocol):
    """Opaque key/document store"""

    async def read(self, key: str) -> ReadResult:
        """
        Read the document stored under a logical key

        Args:
            key: logical key such as ``memory/{user_id}/profile``

        Returns:
            ReadResult describing whether the document was found
        """
        ...

    async def write(self, key: str, document: dict[str, Any]) -> None:
        """
        Store a JSON-compatible document under a logical key

        Raises:
            StorageError: the backend rejected the write
        """
        ...


@runtime_checkable
class SentimentAnalyzer(Protocol):
    """Classifies the tone of a message"""

    def analyze(self, content: str) -> Sentiment: ...


@runtime_checkable
class EngagementAssessor(Protocol):
    """Rates how engaged the user is from a single scored message"""

    def assess(self, message: ConversationMessage) -> Engagement: ...
