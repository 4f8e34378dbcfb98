"""
Article Indexer

Keeps the vector index in step with article records. Each article is
stored under ``article-<id>`` with its record id in the metadata so the
retriever can map matches back to the structured store.
"""

import logging

from ..common.interfaces import InferenceClient, VectorIndex
from ..common.schemas import ArticleRecord

logger = logging.getLogger("curator.knowledge.indexer")


def external_id_for(record_id: int) -> str:
    return f"article-{record_id}"


def index_text(record: ArticleRecord) -> str:
    """Text embedded for an article: title, summary and tag names."""
    parts = [record.title or "", record.description or ""]
    if record.tags:
        parts.append("Tags: " + ", ".join(t.canonical_name for t in record.tags))
    return "\n".join(p for p in parts if p).strip() or record.url


class ArticleIndexer:
    def __init__(self, inference: InferenceClient, index: VectorIndex):
        self._inference = inference
        self._index = index

    async def index_record(self, record: ArticleRecord) -> bool:
        """Embed and upsert one record. Returns False (logged) on failure."""
        result = await self._inference.embed(index_text(record))
        if not result.ok:
            logger.warning("Could not index article %s: %s", record.id, result.error)
            return False

        try:
            await self._index.upsert(
                external_id_for(record.id),
                result.data,
                {"recordId": record.id, "url": record.url, "title": record.title or ""},
            )
        except ValueError as e:
            logger.warning("Vector index rejected article %s: %s", record.id, e)
            return False
        logger.info("Indexed article %s", record.id)
        return True
