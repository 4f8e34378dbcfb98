"""
Context Constructor

Turns retrieved references into the article context shown to the answering
model. Record lookups run concurrently; output keeps retrieval rank order,
since the model cites by id and reads rank as relative trust.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..common.interfaces import RecordStore
from ..common.llm_utils import truncate
from ..common.schemas import ArticleRecord
from .searcher import RetrievedReference

logger = logging.getLogger("curator.retriever.context_builder")

SUMMARY_LIMIT = 1000


@dataclass
class BuiltContext:
    """Formatted context plus the ids that made it in"""
    text: str
    record_ids: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.record_ids


def format_block(reference: RetrievedReference, record: ArticleRecord, summary_limit: int = SUMMARY_LIMIT) -> str:
    """One article's context block; every field has an explicit fallback."""
    tags = ", ".join(t.canonical_name for t in record.tags) or "None"
    score = f"{record.scalar_score}/100" if record.scalar_score else "Not ranked"
    summary = truncate(record.description, summary_limit) or "No description available"
    return "\n".join([
        f"Article [ID: {record.id}] (Relevance: {reference.relevance_percent})",
        f"Title: {record.title or 'Untitled'}",
        f"Author: {record.author or 'Unknown'}",
        f"Published: {record.published_date or 'Unknown'}",
        f"URL: {record.url}",
        f"Tags: {tags}",
        f"Summary: {summary}",
        f"Quality: {record.quality_label or 'Not assessed'}",
        f"Quality Ranking: {score}",
        "---",
    ])


class ContextConstructor:
    def __init__(self, store: RecordStore, summary_limit: int = SUMMARY_LIMIT):
        self._store = store
        self._summary_limit = summary_limit

    async def _lookup(self, reference: RetrievedReference) -> Optional[ArticleRecord]:
        try:
            record = await self._store.get_record(reference.source_record_id)
        except Exception as e:
            logger.warning("Lookup of article %s failed, skipping: %s", reference.source_record_id, e)
            return None
        if record is None:
            logger.warning(
                "Article %s from %s no longer exists, skipping",
                reference.source_record_id, reference.external_id,
            )
        return record

    async def build_context(self, references: Sequence[RetrievedReference]) -> BuiltContext:
        """Blocks for every reference whose record still exists, in rank order."""
        records = await asyncio.gather(*(self._lookup(ref) for ref in references))

        blocks: List[str] = []
        included: List[int] = []
        skipped: List[int] = []
        for reference, record in zip(references, records):
            if record is None:
                skipped.append(reference.source_record_id)
                continue
            blocks.append(format_block(reference, record, self._summary_limit))
            included.append(record.id)

        return BuiltContext(text="\n\n".join(blocks), record_ids=included, skipped=skipped)

    async def build(self, references: Sequence[RetrievedReference]) -> str:
        return (await self.build_context(references)).text
