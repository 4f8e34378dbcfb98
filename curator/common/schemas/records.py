"""
Article Knowledge Schemas

Records owned by the structured store plus the session-scoped knowledge
snapshot built from them. Field names are snake_case here; the store maps
them to its columns.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enums
# ============================================================================

class ArticleStatus(str, Enum):
    """Lifecycle of an article record"""
    PROCESSING = "processing"
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"
    ERROR = "error"


class FeedbackKind(str, Enum):
    """User feedback event kinds"""
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"
    SAVED = "saved"
    ARCHIVED = "archived"
    TAG_ADDED = "tag_added"
    TAG_REMOVED = "tag_removed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Store records
# ============================================================================

class Tag(BaseModel):
    """A folksonomy label. Canonical name is unique case-insensitively."""
    id: int
    canonical_name: str
    description: Optional[str] = None
    active: bool = True
    usage_count: int = 0


class Collection(BaseModel):
    """A user-defined article grouping"""
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    active: bool = True
    article_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ArticleRecord(BaseModel):
    """A saved article with its value judgment"""
    id: int
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    published_date: Optional[str] = None
    scalar_score: Optional[int] = Field(default=None, ge=1, le=100)
    quality_label: Optional[str] = None
    status: ArticleStatus = ArticleStatus.PROCESSING
    tags: List[Tag] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ArticleUpdate(BaseModel):
    """
    Partial update. Fields left as None are not written: a populated column
    is never overwritten with an absent value.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    published_date: Optional[str] = None
    scalar_score: Optional[int] = Field(default=None, ge=1, le=100)
    quality_label: Optional[str] = None
    status: Optional[ArticleStatus] = None

    def supplied(self) -> Dict[str, Any]:
        """Only the fields that carry a value."""
        values = self.model_dump(exclude_none=True)
        if "status" in values:
            values["status"] = ArticleStatus(values["status"]).value
        return values


class FeedbackEvent(BaseModel):
    """Append-only user feedback log entry"""
    id: Optional[int] = None
    record_id: int
    kind: FeedbackKind
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


class UserFeedback(BaseModel):
    """A single feedback action from the user on one article"""
    record_id: int
    kind: FeedbackKind
    score_override: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    collection_id: Optional[int] = None
    notes: Optional[str] = None


# ============================================================================
# Session knowledge snapshot
# ============================================================================

class NamedCount(BaseModel):
    """A name with a tally (top tags, top collections)"""
    name: str
    count: int


class FeedbackStats(BaseModel):
    """Aggregate of feedback events and scored records"""
    total_records: int = 0
    kind_counts: Dict[str, int] = Field(default_factory=dict)
    archived_records: int = 0
    average_score: float = 50.0
    top_tags: List[NamedCount] = Field(default_factory=list, max_length=10)
    top_collections: List[NamedCount] = Field(default_factory=list, max_length=10)

    @field_validator("kind_counts")
    @classmethod
    def _known_kinds(cls, v: Dict[str, int]) -> Dict[str, int]:
        known = {k.value for k in FeedbackKind}
        unknown = set(v) - known
        if unknown:
            raise ValueError(f"Unknown feedback kinds: {sorted(unknown)}")
        return v

    def count(self, kind: FeedbackKind) -> int:
        return self.kind_counts.get(kind.value, 0)

    @property
    def upvote_ratio(self) -> float:
        """Upvotes per scored record; 0.3 when nothing has been scored yet."""
        if self.total_records <= 0:
            return 0.3
        return self.count(FeedbackKind.UPVOTE) / self.total_records


class KnowledgeContext(BaseModel):
    """What the user currently cares about, as of session start"""
    collections: List[Collection] = Field(default_factory=list)
    tag_registry: List[Tag] = Field(default_factory=list)
    feedback_stats: FeedbackStats = Field(default_factory=FeedbackStats)

    def find_tag(self, name: str) -> Optional[Tag]:
        """Case-insensitive registry lookup on the trimmed name."""
        key = name.strip().lower()
        if not key:
            return None
        for tag in self.tag_registry:
            if tag.canonical_name.strip().lower() == key:
                return tag
        return None

    def register_tag(self, tag: Tag) -> None:
        """Append to the in-session registry unless an equal name is present."""
        if self.find_tag(tag.canonical_name) is None:
            self.tag_registry.append(tag)

    def prompt_summary(self, max_tags: int = 10) -> str:
        """Short description of the user's interests for model prompts."""
        stats = self.feedback_stats
        lines = [
            f"Saved articles with a score: {stats.total_records}",
            f"Average score: {stats.average_score:.1f}",
        ]
        if stats.top_tags:
            lines.append("Favourite topics: " + ", ".join(t.name for t in stats.top_tags))
        elif self.tag_registry:
            names = [t.canonical_name for t in self.tag_registry[:max_tags]]
            lines.append("Known topics: " + ", ".join(names))
        if self.collections:
            lines.append("Collections: " + ", ".join(c.name for c in self.collections))
        return "\n".join(lines)
