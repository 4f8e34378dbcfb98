"""
In-Memory Vector Index

Brute-force cosine similarity over a numpy matrix. Adequate for a personal
article library (thousands of rows); swap in a hosted index behind the same
``VectorIndex`` protocol for anything larger.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .embedding_service import batch_cosine_similarity
from .interfaces import VectorMatch

logger = logging.getLogger("curator.common.vector_index")


class InMemoryVectorIndex:
    """``VectorIndex`` keeping all vectors in one float32 matrix."""

    def __init__(self, dimension: Optional[int] = None):
        self._dimension = dimension
        self._ids: List[str] = []
        self._positions: Dict[str, int] = {}
        self._metadata: List[Dict[str, Any]] = []
        self._matrix = np.zeros((0, dimension or 0), dtype=np.float32)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    async def upsert(self, external_id: str, vector: Sequence[float], metadata: Dict[str, Any]) -> None:
        """Insert or replace the vector stored under ``external_id``."""
        row = np.asarray(vector, dtype=np.float32)
        if row.ndim != 1 or row.size == 0:
            raise ValueError("Vector must be a non-empty 1-D sequence")

        async with self._lock:
            if self._dimension is None:
                self._dimension = int(row.size)
                self._matrix = np.zeros((0, self._dimension), dtype=np.float32)
            if row.size != self._dimension:
                raise ValueError(f"Vector dimension mismatch: {row.size} vs {self._dimension}")

            position = self._positions.get(external_id)
            if position is None:
                self._positions[external_id] = len(self._ids)
                self._ids.append(external_id)
                self._metadata.append(dict(metadata))
                self._matrix = np.vstack([self._matrix, row[np.newaxis, :]])
            else:
                self._matrix[position] = row
                self._metadata[position] = dict(metadata)

    async def query(self, vector: Sequence[float], top_k: int) -> List[VectorMatch]:
        """Top-k matches by descending cosine similarity (ties keep insertion order)."""
        if top_k <= 0 or not self._ids:
            return []

        scores = batch_cosine_similarity(vector, self._matrix)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            VectorMatch(
                external_id=self._ids[i],
                score=float(scores[i]),
                metadata=dict(self._metadata[i]),
            )
            for i in order
        ]
