"""Keyword heuristics that score incoming messages.

Runs synchronously with no model dependency. Topics, sentiment and
importance are derived from the message text plus the user's profile;
sentiment and engagement sit behind small strategy protocols so a real
classifier can replace the keyword rules without touching the pipeline.
"""

from __future__ import annotations

import string
from typing import Iterable, Sequence

from loguru import logger

from .config import SignalConfig
from .core.interfaces import EngagementAssessor, SentimentAnalyzer
from .core.models import (
    ConversationMessage,
    Engagement,
    MessageRole,
    Sentiment,
    UserProfile,
)

# ---------------------------------------------------------------------------
# Word lists
# ---------------------------------------------------------------------------

STOP_WORDS: frozenset[str] = frozenset(
    {"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)

POSITIVE_WORDS: frozenset[str] = frozenset(
    {"good", "great", "excellent", "amazing", "love", "like", "perfect", "awesome"}
)

NEGATIVE_WORDS: frozenset[str] = frozenset(
    {"bad", "terrible", "awful", "hate", "dislike", "wrong", "error", "problem"}
)

PERSONAL_INFO_PHRASES: tuple[str, ...] = (
    "my name",
    "i am",
    "i work",
    "i live",
    "i like",
    "i prefer",
    "my job",
    "my hobby",
    "my goal",
    "i want",
    "i need",
    "i'm learning",
)

FORMAL_PHRASES: tuple[str, ...] = ("please", "thank you", "appreciate", "grateful")
CASUAL_PHRASES: tuple[str, ...] = ("hey", "yeah", "cool", "awesome", "lol")

# Edge punctuation only; "i'm" and "c++" keep their inner characters
_STRIP_CHARS = string.punctuation.replace("+", "").replace("#", "")

BASE_IMPORTANCE = 5
MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10


def tokenize(content: str) -> list[str]:
    """Lower-case whitespace tokens with surrounding punctuation removed."""
    tokens = []
    for raw in content.lower().split():
        token = raw.strip(_STRIP_CHARS)
        if token:
            tokens.append(token)
    return tokens


def extract_topics(
    content: str,
    max_topics: int = 5,
    min_length: int = 3,
) -> list[str]:
    """Pick the first distinct content words as topics.

    Args:
        content: message text
        max_topics: number of topics kept
        min_length: tokens of this length or shorter are dropped

    Returns:
        Up to ``max_topics`` unique tokens in order of first appearance
    """
    topics: list[str] = []
    for token in tokenize(content):
        if len(token) <= min_length or token in STOP_WORDS:
            continue
        if token in topics:
            continue
        topics.append(token)
        if len(topics) >= max_topics:
            break
    return topics


def contains_personal_info(content: str) -> bool:
    lowered = content.lower()
    return any(phrase in lowered for phrase in PERSONAL_INFO_PHRASES)


def contains_any(content: str, phrases: Iterable[str]) -> bool:
    lowered = content.lower()
    return any(phrase in lowered for phrase in phrases)


class KeywordSentimentAnalyzer:
    """Counts positive against negative keywords; ties are neutral."""

    def __init__(
        self,
        positive_words: Iterable[str] = POSITIVE_WORDS,
        negative_words: Iterable[str] = NEGATIVE_WORDS,
    ):
        self.positive_words = frozenset(positive_words)
        self.negative_words = frozenset(negative_words)

    def analyze(self, content: str) -> Sentiment:
        words = tokenize(content)
        positive = sum(1 for word in words if word in self.positive_words)
        negative = sum(1 for word in words if word in self.negative_words)

        if positive > negative:
            return Sentiment.POSITIVE
        if negative > positive:
            return Sentiment.NEGATIVE
        return Sentiment.NEUTRAL


class LengthEngagementAssessor:
    """Rates engagement from message length and tone."""

    def __init__(self, high_length: int = 100, medium_length: int = 50):
        self.high_length = high_length
        self.medium_length = medium_length

    def assess(self, message: ConversationMessage) -> Engagement:
        length = len(message.content)
        if length > self.high_length and message.sentiment is Sentiment.POSITIVE:
            return "high"
        if length > self.medium_length and message.sentiment is not Sentiment.NEGATIVE:
            return "medium"
        return "low"


def calculate_importance(
    message: ConversationMessage,
    interests: Sequence[str] = (),
) -> int:
    """Score how worth keeping a message is, clamped to [1, 10].

    Expects ``message.topics`` to be populated already.
    """
    importance = BASE_IMPORTANCE

    if message.role is MessageRole.USER:
        importance += 2
    if contains_personal_info(message.content):
        importance += 3
    if "?" in message.content:
        importance += 1
    if interests and any(topic in interests for topic in message.topics):
        importance += 2
    if message.metadata.user_feedback:
        importance += 3

    return max(MIN_IMPORTANCE, min(importance, MAX_IMPORTANCE))


class SignalExtractor:
    """Fills the derived fields of an incoming message."""

    def __init__(
        self,
        config: SignalConfig | None = None,
        sentiment_analyzer: SentimentAnalyzer | None = None,
        engagement_assessor: EngagementAssessor | None = None,
    ):
        self.config = config or SignalConfig()
        self.sentiment_analyzer = sentiment_analyzer or KeywordSentimentAnalyzer()
        self.engagement_assessor = engagement_assessor or LengthEngagementAssessor()

    def extract(self, message: ConversationMessage, profile: UserProfile) -> None:
        """Populate ``topics``, ``sentiment`` and ``importance`` in place."""
        message.topics = extract_topics(
            message.content,
            max_topics=self.config.max_topics,
            min_length=self.config.min_topic_length,
        )
        message.sentiment = self.sentiment_analyzer.analyze(message.content)
        message.importance = calculate_importance(message, profile.interests)

        logger.debug(
            f"Scored message {message.id}: role={message.role.value}, "
            f"topics={message.topics}, sentiment={message.sentiment.value}, "
            f"importance={message.importance}"
        )

    def assess_engagement(self, message: ConversationMessage) -> Engagement:
        return self.engagement_assessor.assess(message)
