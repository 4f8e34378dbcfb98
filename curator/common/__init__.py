"""
Curator Agents Common Module

Shared infrastructure: configuration, the inference gateway, the record
store and vector index, and the capability interfaces that wire them.
"""

from .config import CuratorConfig, load_config
from .embedding_service import EmbeddingService
from .errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    CuratorError,
    InvalidQueryError,
    ReEvaluationError,
    RecordNotFoundError,
    RetrievalError,
    RetryExhausted,
)
from .inference import InferenceGateway, InferenceResult
from .locks import KeyedLock
from .retry import RetryPolicy, retry_async
from .store import SQLRecordStore
from .vector_index import InMemoryVectorIndex

__all__ = [
    "CuratorConfig",
    "load_config",
    "EmbeddingService",
    "CollectionExistsError",
    "CollectionNotFoundError",
    "CuratorError",
    "InvalidQueryError",
    "ReEvaluationError",
    "RecordNotFoundError",
    "RetrievalError",
    "RetryExhausted",
    "InferenceGateway",
    "InferenceResult",
    "KeyedLock",
    "RetryPolicy",
    "retry_async",
    "SQLRecordStore",
    "InMemoryVectorIndex",
]
