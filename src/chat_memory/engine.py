"""Memory Engine - facade used by the chat request handler.

On each turn the handler calls ``get_or_create``, ``add_message`` and
``generate_contextual_prompt``; the history UI may call
``get_conversation_summary``.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from .config import MemoryEngineConfig
from .context.store import ContextStore
from .core.interfaces import PersistenceAdapter
from .core.models import (
    ConversationMessage,
    LearnedBehavior,
    MemoryContext,
    MessageRole,
    UserMemoryPreferences,
    UserProfile,
)
from .pipeline import IngestionPipeline
from .prompt_builder import PromptBuilder
from .signals import SignalExtractor
from .storage.encrypted_store import EncryptedDocumentStore
from .storage.json_store import JsonDocumentStore
from .storage.memory_store import InMemoryDocumentStore


def build_adapter(config: MemoryEngineConfig) -> PersistenceAdapter:
    """Create the persistence adapter described by ``config.storage``."""
    storage = config.storage
    adapter: PersistenceAdapter
    if storage.backend == "json":
        adapter = JsonDocumentStore(storage.base_path, create_backup=storage.create_backup)
    else:
        adapter = InMemoryDocumentStore()

    if storage.encryption_key:
        adapter = EncryptedDocumentStore(adapter, storage.encryption_key)
    return adapter


class MemoryEngine:
    """Per-user, per-session conversational memory.

    Provides:
    - Bounded cache of hydrated contexts backed by durable documents
    - Message ingestion with scoring, salience-aware pruning and learning
    - A bounded contextual prompt for the language-model call
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        config: MemoryEngineConfig | None = None,
        extractor: SignalExtractor | None = None,
    ):
        """Initialize the engine.

        Args:
            adapter: persistence backend
            config: engine configuration (uses defaults if not provided)
            extractor: custom signal extractor, e.g. with a model-backed
                sentiment analyzer
        """
        self.config = config or MemoryEngineConfig()
        self.store = ContextStore(adapter, self.config)
        self.pipeline = IngestionPipeline(self.store, self.config, extractor)
        self.prompt_builder = PromptBuilder(self.config.prompt)

        logger.debug(f"MemoryEngine full config: {self.config.model_dump()}")
        logger.info(
            f"MemoryEngine initialized: backend={type(adapter).__name__}, "
            f"cache_capacity={self.config.cache.capacity}, "
            f"eviction_policy={self.config.cache.eviction_policy}"
        )

    @classmethod
    def from_config(cls, config: MemoryEngineConfig | None = None) -> "MemoryEngine":
        config = config or MemoryEngineConfig()
        return cls(build_adapter(config), config)

    async def get_or_create(self, user_id: str, session_id: str) -> MemoryContext:
        return await self.store.get_or_create(user_id, session_id)

    async def add_message(
        self,
        user_id: str,
        session_id: str,
        message: ConversationMessage,
    ) -> ConversationMessage:
        return await self.pipeline.add_message(user_id, session_id, message)

    async def record_feedback(
        self,
        user_id: str,
        session_id: str,
        message_id: str,
        satisfaction: int,
        feedback: str | None = None,
    ) -> LearnedBehavior | None:
        return await self.pipeline.record_feedback(
            user_id, session_id, message_id, satisfaction, feedback
        )

    async def update_preferences(
        self, user_id: str, session_id: str, **changes: Any
    ) -> UserMemoryPreferences:
        return await self.pipeline.update_preferences(user_id, session_id, **changes)

    async def update_profile(
        self, user_id: str, session_id: str, **changes: Any
    ) -> UserProfile:
        return await self.pipeline.update_profile(user_id, session_id, **changes)

    async def generate_contextual_prompt(
        self,
        user_id: str,
        session_id: str,
        user_message: str,
    ) -> str:
        """Render the prompt for the next language-model call.

        Read-only apart from creating the context on first access.
        """
        context = await self.store.get_or_create(user_id, session_id)
        return self.prompt_builder.build(context, user_message)

    async def get_conversation_summary(self, user_id: str, session_id: str) -> str:
        """One-line history summary for the conversation list UI."""
        context = await self.store.get_or_create(user_id, session_id)
        history = context.conversation_history

        if not history:
            return "No conversation history available."

        topics: list[str] = []
        for message in history:
            for topic in message.topics:
                if topic not in topics:
                    topics.append(topic)

        user_count = sum(1 for m in history if m.role is MessageRole.USER)
        assistant_count = sum(1 for m in history if m.role is MessageRole.ASSISTANT)
        memory = context.contextual_memory

        return (
            f"Conversation with {context.user_profile.name or 'user'}: "
            f"{user_count} user messages, {assistant_count} assistant responses. "
            f"Topics discussed: {', '.join(topics)}. "
            f"Current topic: {memory.current_topic}. "
            f"User engagement: {memory.conversation_flow.user_engagement}."
        )

    def invalidate(self, user_id: str, session_id: str) -> bool:
        return self.store.invalidate(user_id, session_id)

    def get_cache_stats(self) -> dict[str, Any]:
        return self.store.get_cache_stats()
