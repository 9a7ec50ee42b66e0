"""Data models for the conversational memory engine.

Every record is a pydantic model so that documents written to the
persistence adapter and read back compare equal field by field. Session
state lives in ``MemoryContext``; the user-level documents (profile,
long-term memory, preferences) are persisted under their own keys.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

# Bumped when the persisted document layout changes
SCHEMA_VERSION = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


Formality = Literal["casual", "formal", "mixed"]
Verbosity = Literal["concise", "detailed", "adaptive"]
TechnicalLevel = Literal["beginner", "intermediate", "advanced", "expert"]
ResponseLength = Literal["short", "medium", "long", "adaptive"]
ConversationStage = Literal[
    "greeting", "exploration", "deep_dive", "problem_solving", "conclusion"
]
Engagement = Literal["high", "medium", "low"]


class MessageMetadata(BaseModel):
    """Delivery details attached to a single turn."""

    token_count: int = 0
    response_time: float = 0.0
    user_satisfaction: int | None = Field(default=None, ge=1, le=5)
    user_feedback: str | None = None
    context_used: list[str] = Field(default_factory=list)
    search_queries: list[str] = Field(default_factory=list)
    calculations_used: list[str] = Field(default_factory=list)


class ConversationMessage(BaseModel):
    """One chat turn.

    ``importance``, ``topics`` and ``sentiment`` are derived by the ingestion
    pipeline; whatever the caller puts there is overwritten.
    """

    id: str = Field(default_factory=_uuid)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    model: str = ""
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    importance: int = Field(default=5, ge=1, le=10)
    topics: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    follow_up: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC so history stays sortable
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class CommunicationStyle(BaseModel):
    formality: Formality = "mixed"
    verbosity: Verbosity = "adaptive"
    technical_level: TechnicalLevel = "intermediate"
    response_length: ResponseLength = "adaptive"
    humor: bool = False
    examples: bool = True


class UserProfile(BaseModel):
    """Per-user profile that survives across sessions."""

    id: str
    name: str = ""
    interests: list[str] = Field(default_factory=list)
    communication_style: CommunicationStyle = Field(default_factory=CommunicationStyle)
    expertise_areas: list[str] = Field(default_factory=list)
    learning_goals: list[str] = Field(default_factory=list)
    preferred_topics: list[str] = Field(default_factory=list)
    avoided_topics: list[str] = Field(default_factory=list)


class UserMemoryPreferences(BaseModel):
    """Switches the user controls over what the engine may remember."""

    remember_personal_info: bool = True
    remember_conversations: bool = True
    adapt_to_style: bool = True
    learn_from_feedback: bool = True
    cross_session_memory: bool = True
    memory_retention_days: int = Field(default=365, ge=1)


class LearnedBehavior(BaseModel):
    """An adaptation inferred from explicit user feedback."""

    id: str = Field(default_factory=_uuid)
    category: Literal["preference", "pattern", "style", "topic"] = "style"
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    usage_count: int = 1
    last_used: datetime = Field(default_factory=_utcnow)
    effectiveness: float = Field(ge=0.0, le=1.0)


class ConversationFlow(BaseModel):
    current_stage: ConversationStage = "greeting"
    topic_progression: list[str] = Field(default_factory=list)
    question_asked: bool = False
    needs_clarification: bool = False
    user_engagement: Engagement = "medium"


class ContextualMemory(BaseModel):
    """Session-scoped working state."""

    current_topic: str = ""
    related_topics: list[str] = Field(default_factory=list)
    recent_queries: list[str] = Field(default_factory=list)
    active_projects: list[str] = Field(default_factory=list)
    follow_up_reminders: list[str] = Field(default_factory=list)
    conversation_flow: ConversationFlow = Field(default_factory=ConversationFlow)


class TopicFrequency(BaseModel):
    topic: str
    count: int = 1
    last_discussed: datetime = Field(default_factory=_utcnow)
    user_expertise: float = Field(default=0.0, ge=0.0, le=1.0)
    ai_helpfulness: float = Field(default=0.5, ge=0.0, le=1.0)


class UserJourneyStep(BaseModel):
    id: str = Field(default_factory=_uuid)
    timestamp: datetime = Field(default_factory=_utcnow)
    action: str
    context: str = ""
    outcome: str = ""
    satisfaction: float = 0.0


class Achievement(BaseModel):
    id: str = Field(default_factory=_uuid)
    title: str
    description: str = ""
    unlocked_at: datetime = Field(default_factory=_utcnow)
    category: Literal["learning", "exploration", "problem_solving", "creativity"] = (
        "learning"
    )


class Milestone(BaseModel):
    description: str
    achieved_at: datetime = Field(default_factory=_utcnow)
    confidence: float = 0.5


class LearningProgress(BaseModel):
    topic: str
    start_level: float = 0.0
    current_level: float = 0.0
    goal_level: float = 1.0
    milestones: list[Milestone] = Field(default_factory=list)


class PersonalFact(BaseModel):
    category: Literal["preference", "interest", "goal", "background", "constraint"] = (
        "background"
    )
    fact: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    source: Literal["stated", "inferred", "observed"] = "stated"
    last_updated: datetime = Field(default_factory=_utcnow)


class LongTermMemory(BaseModel):
    """Cross-session aggregate for one user."""

    frequent_topics: list[TopicFrequency] = Field(default_factory=list)
    user_journey: list[UserJourneyStep] = Field(default_factory=list)
    achievements: list[Achievement] = Field(default_factory=list)
    learning_progress: list[LearningProgress] = Field(default_factory=list)
    personal_facts: list[PersonalFact] = Field(default_factory=list)


class MemoryContext(BaseModel):
    """Full working memory for one (user, session) pair."""

    user_id: str
    session_id: str
    conversation_id: str = Field(default_factory=_uuid)
    user_profile: UserProfile
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    user_preferences: UserMemoryPreferences = Field(
        default_factory=UserMemoryPreferences
    )
    learned_behaviors: list[LearnedBehavior] = Field(default_factory=list)
    contextual_memory: ContextualMemory = Field(default_factory=ContextualMemory)
    long_term_memory: LongTermMemory = Field(default_factory=LongTermMemory)
    schema_version: int = SCHEMA_VERSION

    def find_message(self, message_id: str) -> tuple[int, ConversationMessage] | None:
        """Locate a message in history by id."""
        for index, message in enumerate(self.conversation_history):
            if message.id == message_id:
                return index, message
        return None
