"""
Semantic Retriever

Embeds a query through the inference gateway and asks the vector index for
the nearest articles. Matches are mapped back to structured-store ids via
the ``recordId`` metadata written by the indexer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..common.errors import InvalidQueryError, RetrievalError
from ..common.interfaces import InferenceClient, VectorIndex

logger = logging.getLogger("curator.retriever.searcher")

MIN_LIMIT = 1
MAX_LIMIT = 50


@dataclass
class RetrievedReference:
    """A vector match resolved to an article id. Lives for one query."""
    external_id: str
    similarity_score: float
    source_record_id: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def relevance_percent(self) -> str:
        return f"{self.similarity_score * 100:.1f}%"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "similarity_score": self.similarity_score,
            "record_id": self.source_record_id,
            "title": self.metadata.get("title", ""),
            "url": self.metadata.get("url", ""),
        }


def validate_limit(limit: Any, max_limit: int = MAX_LIMIT) -> int:
    """
    Check a caller-supplied result limit.

    Out-of-range values are rejected, never clamped.

    Raises:
        InvalidQueryError: not an integer (bools included) or outside [1, max_limit]
    """
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidQueryError(f"limit must be an integer between {MIN_LIMIT} and {max_limit}")
    if limit < MIN_LIMIT or limit > max_limit:
        raise InvalidQueryError(f"limit must be between {MIN_LIMIT} and {max_limit}, got {limit}")
    return limit


def _record_id_from(metadata: Dict[str, Any]):
    value = metadata.get("recordId", metadata.get("record_id"))
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SemanticRetriever:
    """Query → vector → ranked article references."""

    def __init__(self, inference: InferenceClient, index: VectorIndex, max_limit: int = MAX_LIMIT):
        self._inference = inference
        self._index = index
        self._max_limit = max_limit

    async def search(self, query: str, limit: int) -> List[RetrievedReference]:
        """
        Args:
            query: Search text (usually the optimized question)
            limit: Number of references to return, 1..max_limit

        Returns:
            References ordered by descending similarity; may be empty

        Raises:
            InvalidQueryError: bad limit
            RetrievalError: the query could not be embedded
        """
        limit = validate_limit(limit, self._max_limit)

        embedded = await self._inference.embed(query)
        if not embedded.ok:
            raise RetrievalError(f"Query embedding failed: {embedded.error}")

        matches = await self._index.query(embedded.data, limit)

        references: List[RetrievedReference] = []
        for match in matches:
            record_id = _record_id_from(match.metadata)
            if record_id is None:
                logger.warning("Vector match %s has no record id, skipping", match.external_id)
                continue
            references.append(
                RetrievedReference(
                    external_id=match.external_id,
                    similarity_score=max(0.0, min(1.0, float(match.score))),
                    source_record_id=record_id,
                    metadata=dict(match.metadata),
                )
            )

        references.sort(key=lambda r: r.similarity_score, reverse=True)
        logger.info("Retrieved %d references for query %r", len(references), query[:80])
        return references[:limit]
