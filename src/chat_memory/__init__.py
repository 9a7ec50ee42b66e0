"""
Conversational Memory Engine

Per-user, per-session memory for a chat assistant: ingests turns, scores
them, keeps a bounded cache of contexts backed by persistent documents,
prunes history by salience, learns from feedback and assembles a bounded
prompt for the language model.
"""

from .config import MemoryEngineConfig, load_config
from .context import ContextCache, ContextStore
from .core.exceptions import (
    MemorySystemError,
    MessageNotFoundError,
    StorageError,
    ValidationError,
)
from .core.interfaces import (
    EngagementAssessor,
    PersistenceAdapter,
    ReadResult,
    ReadStatus,
    SentimentAnalyzer,
)
from .core.models import (
    ContextualMemory,
    ConversationMessage,
    LearnedBehavior,
    LongTermMemory,
    MemoryContext,
    MessageMetadata,
    MessageRole,
    Sentiment,
    UserMemoryPreferences,
    UserProfile,
)
from .engine import MemoryEngine, build_adapter
from .pipeline import IngestionPipeline
from .prompt_builder import PromptBuilder
from .signals import KeywordSentimentAnalyzer, LengthEngagementAssessor, SignalExtractor
from .storage import EncryptedDocumentStore, InMemoryDocumentStore, JsonDocumentStore

__all__ = [
    # Config
    "MemoryEngineConfig",
    "load_config",
    # Engine
    "MemoryEngine",
    "build_adapter",
    "ContextCache",
    "ContextStore",
    "IngestionPipeline",
    "PromptBuilder",
    "SignalExtractor",
    "KeywordSentimentAnalyzer",
    "LengthEngagementAssessor",
    # Models
    "ContextualMemory",
    "ConversationMessage",
    "LearnedBehavior",
    "LongTermMemory",
    "MemoryContext",
    "MessageMetadata",
    "MessageRole",
    "Sentiment",
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
    # Storage
    "EncryptedDocumentStore",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
]
