"""
Curator Schemas

Store records, the session knowledge snapshot, and structured model outputs.
"""

from .records import (
    ArticleRecord,
    ArticleStatus,
    ArticleUpdate,
    Collection,
    FeedbackEvent,
    FeedbackKind,
    FeedbackStats,
    KnowledgeContext,
    NamedCount,
    Tag,
    UserFeedback,
)
from .answers import (
    EMPTY_ANSWER_FOLLOW_UPS,
    StricterAnalysis,
    StructuredAnswer,
    empty_result_answer,
)

__all__ = [
    "ArticleRecord",
    "ArticleStatus",
    "ArticleUpdate",
    "Collection",
    "FeedbackEvent",
    "FeedbackKind",
    "FeedbackStats",
    "KnowledgeContext",
    "NamedCount",
    "Tag",
    "UserFeedback",
    "EMPTY_ANSWER_FOLLOW_UPS",
    "StricterAnalysis",
    "StructuredAnswer",
    "empty_result_answer",
]
