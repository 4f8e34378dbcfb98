"""
Knowledge Context Loader

Builds the session's view of what the user cares about: active collections,
the tag registry, and aggregated feedback. Loaded once per session on first
access and memoized until ``invalidate()``.
"""

import asyncio
import logging
from typing import Optional

from ..common.interfaces import RecordStore
from ..common.schemas import KnowledgeContext

logger = logging.getLogger("curator.knowledge.context_loader")


class KnowledgeContextLoader:
    """``ContextProvider`` backed by the record store."""

    def __init__(self, store: RecordStore, top_n: int = 10):
        self._store = store
        self._top_n = top_n
        self._context: Optional[KnowledgeContext] = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._context is not None

    async def load(self) -> KnowledgeContext:
        """
        Return the session snapshot, querying the store only on first call.

        Concurrent first calls share a single load.
        """
        if self._context is not None:
            return self._context

        async with self._lock:
            if self._context is None:
                self._context = await self._build()
        return self._context

    async def _build(self) -> KnowledgeContext:
        collections = await self._store.list_active_collections()
        tags = await self._store.list_active_tags()
        stats = await self._store.aggregate_feedback(top_n=self._top_n)

        logger.info(
            "Loaded knowledge context: %d collections, %d tags, %d scored records",
            len(collections), len(tags), stats.total_records,
        )
        return KnowledgeContext(
            collections=collections,
            tag_registry=tags,
            feedback_stats=stats,
        )

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next ``load()`` re-queries."""
        if self._context is not None:
            logger.debug("Knowledge context invalidated")
        self._context = None
