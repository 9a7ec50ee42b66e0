"""Ingestion pipeline for the conversational memory engine.

Every incoming chat turn goes through the same steps while the session's
lock is held: score the message, append it, prune history, update the
session's contextual memory, learn from the interaction, and persist.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from .config import MemoryEngineConfig
from .context.store import ContextStore
from .core.exceptions import MessageNotFoundError, ValidationError
from .core.models import (
    ConversationMessage,
    LearnedBehavior,
    MemoryContext,
    MessageRole,
    PersonalFact,
    TopicFrequency,
    UserMemoryPreferences,
    UserProfile,
)
from .signals import (
    CASUAL_PHRASES,
    FORMAL_PHRASES,
    SignalExtractor,
    contains_any,
    contains_personal_info,
)

_MAX_FACT_LENGTH = 200


def _merge_unique(existing: list[str], new: list[str]) -> list[str]:
    merged: list[str] = []
    for item in [*existing, *new]:
        if item not in merged:
            merged.append(item)
    return merged


class IngestionPipeline:
    """Applies incoming messages to a session's MemoryContext.

    The pipeline is the only writer of contexts. Every mutating operation
    runs inside ``ContextStore.acquire_context``, so two calls for the same
    user never interleave and neither update is lost, whichever sessions
    they target.
    """

    def __init__(
        self,
        store: ContextStore,
        config: MemoryEngineConfig | None = None,
        extractor: SignalExtractor | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            store: context store providing locked access and persistence
            config: engine configuration (defaults to the store's)
            extractor: signal extractor (built from config if None)
        """
        self.store = store
        self.config = config or store.config
        self.extractor = extractor or SignalExtractor(self.config.signals)

    async def add_message(
        self,
        user_id: str,
        session_id: str,
        message: ConversationMessage,
    ) -> ConversationMessage:
        """Ingest one chat turn and persist the updated context.

        The caller's message is not modified; a scored copy is stored.

        Args:
            user_id: user identifier
            session_id: session identifier
            message: the turn, derived fields may be left at their defaults

        Returns:
            The stored message with topics, sentiment and importance filled in

        Raises:
            StorageError: a persistence write or read failed
        """
        async with self.store.acquire_context(user_id, session_id) as context:
            stored = message.model_copy(deep=True)
            self.extractor.extract(stored, context.user_profile)

            history = context.conversation_history
            previous_message = history[-1] if history else None
            previous_topic = context.contextual_memory.current_topic

            history.append(stored)
            self._prune_history(context)
            self._update_contextual_memory(context, stored, previous_topic)
            self._learn_from_interaction(context, stored, previous_message)

        return stored

    def _prune_history(self, context: MemoryContext) -> None:
        """Keep the most recent turns plus the most important older ones.

        Runs only when history exceeds ``max_messages``. Ties in importance
        keep the earlier message. The result is ordered by timestamp.
        """
        history = context.conversation_history
        limits = self.config.history
        if len(history) <= limits.max_messages:
            return

        recent = history[-limits.keep_recent :] if limits.keep_recent else []
        older = history[: len(history) - len(recent)]
        important = sorted(older, key=lambda m: m.importance, reverse=True)[
            : limits.keep_important
        ]
        important_ids = {id(m) for m in important}

        kept = [m for m in older if id(m) in important_ids] + recent
        context.conversation_history = sorted(kept, key=lambda m: m.timestamp)

        logger.info(
            f"Pruned history for {context.user_id}:{context.session_id}: "
            f"{len(history)} -> {len(context.conversation_history)} messages"
        )

    def _update_contextual_memory(
        self,
        context: MemoryContext,
        message: ConversationMessage,
        previous_topic: str,
    ) -> None:
        memory = context.contextual_memory
        flow = memory.conversation_flow
        limits = self.config.contextual

        if message.topics:
            primary = message.topics[0]
            memory.current_topic = primary
            related = _merge_unique(memory.related_topics, message.topics[1:])
            memory.related_topics = related[-limits.max_related_topics :]

            if primary != previous_topic:
                flow.topic_progression.append(primary)
                if len(flow.topic_progression) > limits.max_topic_progression:
                    flow.topic_progression = flow.topic_progression[
                        -limits.max_topic_progression :
                    ]

        if message.role is MessageRole.USER:
            if "?" in message.content:
                flow.question_asked = True
                memory.recent_queries.append(message.content)
                memory.recent_queries = memory.recent_queries[
                    -limits.max_recent_queries :
                ]
            flow.user_engagement = self.extractor.assess_engagement(message)

    def _learn_from_interaction(
        self,
        context: MemoryContext,
        message: ConversationMessage,
        previous_message: ConversationMessage | None,
    ) -> None:
        preferences = context.user_preferences

        if message.role is MessageRole.USER:
            if preferences.adapt_to_style:
                self._learn_communication_style(context, message)
            if preferences.remember_personal_info:
                self._remember_personal_fact(context, message)

        rating = message.metadata.user_satisfaction
        if rating is not None and preferences.learn_from_feedback:
            if previous_message is not None and (
                previous_message.role is MessageRole.ASSISTANT
            ):
                self._learn_from_rating(context, rating)

        if preferences.cross_session_memory:
            self._update_topic_interests(context, message)

    def _learn_communication_style(
        self,
        context: MemoryContext,
        message: ConversationMessage,
    ) -> None:
        style = context.user_profile.communication_style
        thresholds = self.config.learning

        if contains_any(message.content, FORMAL_PHRASES):
            style.formality = "formal"
        elif contains_any(message.content, CASUAL_PHRASES):
            style.formality = "casual"

        length = len(message.content)
        if length > thresholds.detailed_length:
            style.verbosity = "detailed"
        elif length < thresholds.concise_length:
            style.verbosity = "concise"

    def _learn_from_rating(self, context: MemoryContext, rating: int) -> LearnedBehavior:
        score = rating / 5
        behavior = LearnedBehavior(
            category="style",
            description=f"Response style that received {rating}/5 satisfaction",
            confidence=score,
            effectiveness=score,
        )
        context.learned_behaviors.append(behavior)
        logger.info(
            f"Learned behavior for {context.user_id}: {behavior.description}"
        )
        return behavior

    def _remember_personal_fact(
        self,
        context: MemoryContext,
        message: ConversationMessage,
    ) -> None:
        if not contains_personal_info(message.content):
            return

        fact = " ".join(message.content.split())[:_MAX_FACT_LENGTH]
        facts = context.long_term_memory.personal_facts
        now = datetime.now(timezone.utc)

        for existing in facts:
            if existing.fact == fact:
                existing.last_updated = now
                return

        facts.append(PersonalFact(fact=fact, source="stated", last_updated=now))
        overflow = len(facts) - self.config.learning.max_personal_facts
        if overflow > 0:
            del facts[:overflow]

    def _update_topic_interests(
        self,
        context: MemoryContext,
        message: ConversationMessage,
    ) -> None:
        long_term = context.long_term_memory
        thresholds = self.config.learning
        is_user = message.role is MessageRole.USER
        now = datetime.now(timezone.utc)
        by_topic = {entry.topic: entry for entry in long_term.frequent_topics}

        for topic in message.topics:
            entry = by_topic.get(topic)
            if entry is not None:
                entry.count += 1
                entry.last_discussed = now
                if is_user and len(message.content) > thresholds.expertise_length:
                    entry.user_expertise = min(entry.user_expertise + 0.1, 1.0)
            else:
                entry = TopicFrequency(
                    topic=topic,
                    count=1,
                    last_discussed=now,
                    user_expertise=0.1 if is_user else 0.0,
                    ai_helpfulness=0.5,
                )
                long_term.frequent_topics.append(entry)
                by_topic[topic] = entry

        long_term.frequent_topics = sorted(
            long_term.frequent_topics, key=lambda t: t.count, reverse=True
        )[: thresholds.max_frequent_topics]

    async def record_feedback(
        self,
        user_id: str,
        session_id: str,
        message_id: str,
        satisfaction: int,
        feedback: str | None = None,
    ) -> LearnedBehavior | None:
        """Attach a late-arriving rating to a message already in history.

        Rating an assistant turn learns a behavior when the user allows
        learning from feedback.

        Returns:
            The learned behavior, or None when nothing was learned

        Raises:
            ValidationError: rating outside 1-5
            MessageNotFoundError: no message with that id in history
        """
        if not 1 <= satisfaction <= 5:
            raise ValidationError("satisfaction", f"must be 1-5, got {satisfaction}")

        async with self.store.acquire_context(user_id, session_id) as context:
            found = context.find_message(message_id)
            if found is None:
                raise MessageNotFoundError(message_id)

            _, message = found
            message.metadata.user_satisfaction = satisfaction
            if feedback:
                message.metadata.user_feedback = feedback

            behavior = None
            if (
                message.role is MessageRole.ASSISTANT
                and context.user_preferences.learn_from_feedback
            ):
                behavior = self._learn_from_rating(context, satisfaction)

        return behavior

    async def update_preferences(
        self,
        user_id: str,
        session_id: str,
        **changes: Any,
    ) -> UserMemoryPreferences:
        """Apply a partial update to the user's memory preferences."""
        async with self.store.acquire_context(user_id, session_id) as context:
            _apply_changes(context.user_preferences, changes)
            await self.store.save_preferences(context)
            logger.info(f"Updated memory preferences for {user_id}: {sorted(changes)}")

        return context.user_preferences

    async def update_profile(
        self,
        user_id: str,
        session_id: str,
        **changes: Any,
    ) -> UserProfile:
        """Apply a partial update to the user's profile."""
        if "id" in changes:
            raise ValidationError("id", "profile id cannot be changed")

        async with self.store.acquire_context(user_id, session_id) as context:
            _apply_changes(context.user_profile, changes)
            logger.info(f"Updated profile for {user_id}: {sorted(changes)}")

        return context.user_profile


def _apply_changes(model: BaseModel, changes: dict[str, Any]) -> None:
    """Validate ``changes`` against the model's fields, then apply them in place.

    The model is shared by every cached session of the user, so it is
    updated rather than replaced. Nothing changes when validation fails.
    """
    fields = type(model).model_fields
    for name in changes:
        if name not in fields:
            raise ValidationError(name, f"unknown field for {type(model).__name__}")

    try:
        validated = type(model).model_validate({**model.model_dump(), **changes})
    except ModelValidationError as e:
        field = ".".join(str(loc) for loc in e.errors()[0]["loc"]) or "changes"
        raise ValidationError(field, str(e)) from e

    for name in changes:
        setattr(model, name, getattr(validated, name))
