"""
Context store

Owns the bounded cache of hydrated contexts: load-or-create, per-user
serialization and write-through persistence.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, TypeVar

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from ..config import MemoryEngineConfig
from ..core.exceptions import StorageError, ValidationError
from ..core.interfaces import PersistenceAdapter, ReadStatus
from ..core.models import (
    LongTermMemory,
    MemoryContext,
    UserMemoryPreferences,
    UserProfile,
)
from ..storage.keys import (
    RESERVED_SESSION_IDS,
    longterm_key,
    preferences_key,
    profile_key,
    session_key,
)
from .cache import ContextCache

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class UserDocuments:
    """User-level documents shared by every cached session of one user"""

    profile: UserProfile
    long_term_memory: LongTermMemory
    preferences: UserMemoryPreferences

    def attach(self, context: MemoryContext) -> None:
        context.user_profile = self.profile
        context.long_term_memory = self.long_term_memory
        context.user_preferences = self.preferences


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Tasks holding or waiting for the lock
    users: int = 0


class ContextStore:
    """
    Load-or-create access to MemoryContext objects

    - Cache first: hydrated contexts stay in a bounded ContextCache.
    - One user record: all cached sessions of a user share the same
      profile, long-term memory and preferences objects, so a change made
      through one session is seen and saved by every other.
    - Per-user locks: hydration and every read-modify-write for one user
      run one at a time. A lock is dropped once nothing holds or awaits it.
    - Explicit absence: a missing or invalid document hydrates as defaults,
      a backend failure raises StorageError unless the configuration opts
      into defaulting.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        config: MemoryEngineConfig | None = None,
        cache: ContextCache | None = None,
    ):
        """
        Args:
            adapter: persistence backend
            config: engine configuration (defaults if None)
            cache: context cache (built from config if None)
        """
        self._adapter = adapter
        self.config = config or MemoryEngineConfig()
        self._cache = cache or ContextCache(
            capacity=self.config.cache.capacity,
            policy=self.config.cache.eviction_policy,
        )
        self._locks: dict[str, _LockEntry] = {}
        # Only users with a cached session have an entry
        self._users: dict[str, UserDocuments] = {}

    @property
    def cache(self) -> ContextCache:
        return self._cache

    @property
    def adapter(self) -> PersistenceAdapter:
        return self._adapter

    @property
    def lock_count(self) -> int:
        """Per-user locks currently held or awaited"""
        return len(self._locks)

    @property
    def user_record_count(self) -> int:
        return len(self._users)

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[user_id]

    @staticmethod
    def _validate_ids(user_id: str, session_id: str) -> None:
        if not user_id or "/" in user_id:
            raise ValidationError("user_id", f"invalid identifier {user_id!r}")
        if not session_id or "/" in session_id:
            raise ValidationError("session_id", f"invalid identifier {session_id!r}")
        if session_id in RESERVED_SESSION_IDS:
            raise ValidationError(
                "session_id", f"{session_id!r} collides with a user-level document key"
            )

    @asynccontextmanager
    async def acquire_context(
        self,
        user_id: str,
        session_id: str,
    ) -> AsyncIterator[MemoryContext]:
        """
        Hold the user's lock while working on a session context

        Usage:
            async with store.acquire_context("u1", "s1") as context:
                context.user_profile.name = "Ada"
            # saved when the block exits without an exception

        Yields:
            the hydrated context
        """
        self._validate_ids(user_id, session_id)
        async with self._user_lock(user_id):
            context = await self._get_or_create_unlocked(user_id, session_id)
            yield context
            await self.save(context)

    async def get_or_create(self, user_id: str, session_id: str) -> MemoryContext:
        """
        Return the cached context, hydrating or creating it on a miss

        Neither a cache miss nor a persistence miss is an error.
        """
        self._validate_ids(user_id, session_id)
        async with self._user_lock(user_id):
            return await self._get_or_create_unlocked(user_id, session_id)

    async def _get_or_create_unlocked(
        self,
        user_id: str,
        session_id: str,
    ) -> MemoryContext:
        cached = self._cache.get(user_id, session_id)
        if cached is not None:
            logger.debug(f"Cache hit: {user_id}:{session_id}")
            return cached

        user = self._users.get(user_id)
        if user is None:
            user = await self._load_user_documents(user_id)

        context = await self._load_context(user_id, session_id, user)
        if context is None:
            context = await self._create_context(user_id, session_id, user)

        self._users[user_id] = user
        if self._cache.set(context):
            self._release_unused_users()
        return context

    def _release_unused_users(self) -> None:
        """Forget user records no cached session refers to"""
        live = self._cache.user_ids()
        for user_id in list(self._users):
            if user_id not in live:
                del self._users[user_id]

    async def _load_document(self, key: str, model: type[ModelT]) -> ModelT | None:
        """
        Read and validate one document

        Returns:
            the parsed model, or None when the caller should use defaults

        Raises:
            StorageError: backend failure and defaulting is not enabled
        """
        result = await self._adapter.read(key)

        if result.status is ReadStatus.NOT_FOUND:
            return None

        if result.status is ReadStatus.BACKEND_ERROR:
            if self.config.storage.default_on_backend_error:
                logger.warning(
                    f"Backend error reading {key}, using defaults: {result.error}"
                )
                return None
            raise StorageError(
                f"Failed to read document: {result.error}", key=key
            ) from result.error

        try:
            return model.model_validate(result.document)
        except ModelValidationError as e:
            logger.warning(f"Invalid document at {key}, using defaults: {e}")
            return None

    async def load_profile(self, user_id: str) -> UserProfile:
        profile = await self._load_document(profile_key(user_id), UserProfile)
        return profile or UserProfile(id=user_id)

    async def load_long_term_memory(self, user_id: str) -> LongTermMemory:
        memory = await self._load_document(longterm_key(user_id), LongTermMemory)
        return memory or LongTermMemory()

    async def load_preferences(self, user_id: str) -> UserMemoryPreferences:
        preferences = await self._load_document(
            preferences_key(user_id), UserMemoryPreferences
        )
        return preferences or UserMemoryPreferences()

    async def _load_user_documents(self, user_id: str) -> UserDocuments:
        return UserDocuments(
            profile=await self.load_profile(user_id),
            long_term_memory=await self.load_long_term_memory(user_id),
            preferences=await self.load_preferences(user_id),
        )

    async def _load_context(
        self,
        user_id: str,
        session_id: str,
        user: UserDocuments,
    ) -> MemoryContext | None:
        context = await self._load_document(
            session_key(user_id, session_id), MemoryContext
        )
        if context is None:
            return None

        if context.user_id != user_id or context.session_id != session_id:
            logger.warning(
                f"Stored context does not belong to {user_id}:{session_id}, ignoring it"
            )
            return None

        # The copies embedded in the snapshot may be older than the user's own documents
        user.attach(context)
        if not context.user_preferences.remember_conversations:
            logger.info(
                f"Conversation memory disabled for {user_id}, starting a fresh context"
            )
            return None

        self._apply_retention(context)
        logger.debug(
            f"Loaded context from store: {user_id}:{session_id} "
            f"({len(context.conversation_history)} messages)"
        )
        return context

    @staticmethod
    def _apply_retention(context: MemoryContext) -> None:
        """Drop messages older than the user's retention window"""
        days = context.user_preferences.memory_retention_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        kept = [m for m in context.conversation_history if m.timestamp >= cutoff]
        dropped = len(context.conversation_history) - len(kept)
        if dropped:
            context.conversation_history = kept
            logger.info(
                f"Dropped {dropped} messages older than {days} days "
                f"from {context.user_id}:{context.session_id}"
            )

    async def _create_context(
        self,
        user_id: str,
        session_id: str,
        user: UserDocuments,
    ) -> MemoryContext:
        context = MemoryContext(
            user_id=user_id,
            session_id=session_id,
            user_profile=user.profile,
            long_term_memory=user.long_term_memory,
            user_preferences=user.preferences,
        )
        await self.save(context)
        logger.info(
            f"Created new memory context: {user_id}:{session_id} "
            f"(conversation {context.conversation_id})"
        )
        return context

    async def save(self, context: MemoryContext) -> None:
        """
        Write the context and the user-level documents it carries

        Order: profile, long-term memory, session snapshot. The three writes
        are independent; if a later one fails the earlier ones stay written
        and StorageError reaches the caller.
        """
        user_id = context.user_id
        await self._adapter.write(
            profile_key(user_id), context.user_profile.model_dump(mode="json")
        )
        await self._adapter.write(
            longterm_key(user_id), context.long_term_memory.model_dump(mode="json")
        )
        await self._adapter.write(
            session_key(user_id, context.session_id),
            context.model_dump(mode="json"),
        )
        logger.debug(f"Saved context: {user_id}:{context.session_id}")

    async def save_preferences(self, context: MemoryContext) -> None:
        await self._adapter.write(
            preferences_key(context.user_id),
            context.user_preferences.model_dump(mode="json"),
        )

    def invalidate(self, user_id: str, session_id: str) -> bool:
        """Drop a cached context; the durable copy is kept"""
        removed = self._cache.invalidate(user_id, session_id)
        self._release_unused_users()
        return removed

    def get_cache_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()

    def clear_cache(self) -> int:
        count = self._cache.clear()
        self._users.clear()
        return count
