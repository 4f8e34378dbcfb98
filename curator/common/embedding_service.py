"""
Embedding Service

On-device embedding generation with fastembed. Keeps article text local and
avoids an external embedding API.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger("curator.common.embedding_service")

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


class EmbeddingService:
    """
    Lazy fastembed wrapper.

    The model is loaded on first use so that constructing a session (or
    running tests with a fake embedder) never downloads weights.
    """

    def __init__(self, model: str = DEFAULT_EMBEDDING_MODEL):
        self._model_name = model
        self._model = None
        self._load_error: Optional[str] = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_available(self) -> bool:
        """False only after a failed model load."""
        return self._load_error is None

    def _ensure_model(self):
        if self._model is not None:
            return self._model
        if self._load_error is not None:
            raise RuntimeError(self._load_error)
        try:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Loaded embedding model %s", self._model_name)
        except Exception as e:
            self._load_error = f"Failed to load embedding model {self._model_name}: {e}"
            logger.warning(self._load_error)
            raise RuntimeError(self._load_error) from e
        return self._model

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: Strings to embed

        Returns:
            List of L2-normalized embedding vectors
        """
        if not texts:
            return []

        model = self._ensure_model()
        vectors = []
        for vec in model.embed(list(texts)):
            arr = np.asarray(vec, dtype=np.float32)
            norm = float(np.linalg.norm(arr))
            if norm > 0:
                arr = arr / norm
            vectors.append(arr.tolist())
        return vectors

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Raises:
            ValueError: on empty text
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Cosine similarity clamped to [0, 1].

    Raises:
        ValueError: on dimension mismatch
    """
    v1 = np.asarray(vec1, dtype=np.float32)
    v2 = np.asarray(vec2, dtype=np.float32)
    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    denom = float(np.linalg.norm(v1) * np.linalg.norm(v2))
    if denom == 0.0:
        return 0.0
    similarity = float(np.dot(v1, v2)) / denom
    return max(0.0, min(1.0, similarity))


def batch_cosine_similarity(
    query_vec: Sequence[float],
    matrix: np.ndarray,
) -> np.ndarray:
    """
    Cosine similarity between a query and every row of ``matrix``.

    Rows and query need not be normalized. Scores are clamped to [0, 1].
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)

    query = np.asarray(query_vec, dtype=np.float32)
    if matrix.shape[1] != query.shape[0]:
        raise ValueError(
            f"Vector dimension mismatch: {matrix.shape[1]} vs {query.shape[0]}"
        )

    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denom = row_norms * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, matrix @ query / denom, 0.0)
    return np.clip(scores, 0.0, 1.0)
