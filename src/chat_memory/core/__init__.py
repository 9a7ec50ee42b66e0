"""
Memory engine core

Data models, exceptions and collaborator interfaces.
"""

from .models import (
    SCHEMA_VERSION,
    CommunicationStyle,
    ContextualMemory,
    ConversationFlow,
    ConversationMessage,
    LearnedBehavior,
    LongTermMemory,
    MemoryContext,
    MessageMetadata,
    MessageRole,
    PersonalFact,
    Sentiment,
    TopicFrequency,
    UserMemoryPreferences,
    UserProfile,
)
from .exceptions import (
    MemorySystemError,
    MessageNotFoundError,
    StorageError,
    ValidationError,
)
from .interfaces import (
    EngagementAssessor,
    PersistenceAdapter,
    ReadResult,
    ReadStatus,
    SentimentAnalyzer,
)

__all__ = [
    # Models
    "SCHEMA_VERSION",
    "CommunicationStyle",
    "ContextualMemory",
    "ConversationFlow",
    "ConversationMessage",
    "LearnedBehavior",
    "LongTermMemory",
    "MemoryContext",
    "MessageMetadata",
    "MessageRole",
    "PersonalFact",
    "Sentiment",
    "TopicFrequency",
    "UserMemoryPreferences",
    "UserProfile",
    # Exceptions
    "MemorySystemError",
    "MessageNotFoundError",
    "StorageError",
    "ValidationError",
    # Interfaces
    "EngagementAssessor",
    "PersistenceAdapter",
    "ReadResult",
    "ReadStatus",
    "SentimentAnalyzer",
]
