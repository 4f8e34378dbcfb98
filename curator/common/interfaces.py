"""
Capability interfaces injected into Curator components.

Components depend on these protocols, never on each other's concrete
classes; ``CuratorSession`` wires the concrete implementations together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

from .schemas import (
    ArticleRecord,
    ArticleStatus,
    ArticleUpdate,
    Collection,
    FeedbackEvent,
    FeedbackStats,
    KnowledgeContext,
    Tag,
)

if TYPE_CHECKING:
    from .inference import InferenceResult
    from ..knowledge.tag_reconciler import TagAssignment

M = TypeVar("M", bound=BaseModel)


@dataclass
class VectorMatch:
    """One nearest-neighbour hit from a vector index"""
    external_id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class RecordStore(Protocol):
    """Structured store of articles, tags, collections and feedback."""

    async def get_record(self, record_id: int) -> Optional[ArticleRecord]: ...

    async def create_record(self, url: str, **fields: Any) -> ArticleRecord: ...

    async def list_records(
        self,
        *,
        status: Optional[ArticleStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ArticleRecord]: ...

    async def list_feed(
        self,
        *,
        status: Optional[ArticleStatus] = ArticleStatus.UNREAD,
        collection_id: Optional[int] = None,
        tag: Optional[str] = None,
        min_score: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ArticleRecord]: ...

    async def update_record(self, record_id: int, changes: ArticleUpdate) -> Optional[ArticleRecord]: ...

    async def list_active_tags(self) -> List[Tag]: ...

    async def create_tag(self, name: str, description: Optional[str] = None) -> Tuple[Tag, bool]: ...

    async def link_tags(self, record_id: int, tag_ids: Sequence[int]) -> int: ...

    async def unlink_tags(self, record_id: int, tag_ids: Sequence[int]) -> int: ...

    async def list_active_collections(self) -> List[Collection]: ...

    async def get_collection(self, collection_id: int) -> Optional[Collection]: ...

    async def create_collection(
        self, name: str, description: Optional[str] = None, color: Optional[str] = None
    ) -> Collection: ...

    async def add_to_collection(self, collection_id: int, record_id: int, notes: Optional[str] = None) -> bool: ...

    async def append_feedback(self, event: FeedbackEvent) -> FeedbackEvent: ...

    async def aggregate_feedback(self, top_n: int = 10) -> FeedbackStats: ...


class VectorIndex(Protocol):
    """Nearest-neighbour index keyed by external id."""

    async def upsert(self, external_id: str, vector: Sequence[float], metadata: Dict[str, Any]) -> None: ...

    async def query(self, vector: Sequence[float], top_k: int) -> List[VectorMatch]: ...


class ContextProvider(Protocol):
    """Session-scoped knowledge snapshot."""

    async def load(self) -> KnowledgeContext: ...

    def invalidate(self) -> None: ...


class TagReconciler(Protocol):
    """Maps suggested labels onto canonical tags."""

    async def reconcile(self, suggested_names: Sequence[str]) -> List["TagAssignment"]: ...


class InferenceClient(Protocol):
    """Retrying access to reasoning, structuring and embedding models."""

    async def reason(
        self, system_prompt: str, content: str, retries: Optional[int] = None
    ) -> "InferenceResult[str]": ...

    async def structure(
        self, system_prompt: str, content: str, schema: Type[M], retries: Optional[int] = None
    ) -> "InferenceResult[M]": ...

    async def embed(self, text: str, retries: Optional[int] = None) -> "InferenceResult[List[float]]": ...
