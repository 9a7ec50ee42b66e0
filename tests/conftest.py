"""
Memory engine test fixtures
Shared fixtures and message factories
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from chat_memory.config import MemoryEngineConfig
from chat_memory.context.store import ContextStore
from chat_memory.core.interfaces import ReadResult
from chat_memory.core.models import ConversationMessage, MessageMetadata, MessageRole
from chat_memory.engine import MemoryEngine
from chat_memory.pipeline import IngestionPipeline
from chat_memory.storage.memory_store import InMemoryDocumentStore

# Recent enough to stay inside the default retention window
BASE_TIME = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(days=1)


class RecordingStore(InMemoryDocumentStore):
    """In-memory adapter that records calls and can fail on demand"""

    def __init__(self) -> None:
        super().__init__()
        self.reads: list[str] = []
        self.writes: list[str] = []
        self.fail_reads: dict[str, BaseException] = {}
        self.fail_writes: dict[str, BaseException] = {}

    async def read(self, key: str) -> ReadResult:
        self.reads.append(key)
        if key in self.fail_reads:
            return ReadResult.backend_error(self.fail_reads[key])
        return await super().read(key)

    async def write(self, key: str, document: dict[str, Any]) -> None:
        if key in self.fail_writes:
            raise self.fail_writes[key]
        self.writes.append(key)
        await super().write(key, document)


@pytest.fixture
def config() -> MemoryEngineConfig:
    return MemoryEngineConfig()


@pytest.fixture
def adapter() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def context_store(adapter, config) -> ContextStore:
    return ContextStore(adapter, config)


@pytest.fixture
def pipeline(context_store, config) -> IngestionPipeline:
    return IngestionPipeline(context_store, config)


@pytest.fixture
def engine(adapter, config) -> MemoryEngine:
    return MemoryEngine(adapter, config)


@pytest.fixture
def make_message() -> Callable[..., ConversationMessage]:
    """Factory for messages with deterministic, increasing timestamps"""
    counter = {"n": 0}

    def factory(
        content: str,
        role: str = "user",
        satisfaction: int | None = None,
        feedback: str | None = None,
        **kwargs: Any,
    ) -> ConversationMessage:
        counter["n"] += 1
        kwargs.setdefault("timestamp", BASE_TIME + timedelta(seconds=counter["n"]))
        return ConversationMessage(
            role=MessageRole(role),
            content=content,
            metadata=MessageMetadata(
                user_satisfaction=satisfaction, user_feedback=feedback
            ),
            **kwargs,
        )

    return factory
