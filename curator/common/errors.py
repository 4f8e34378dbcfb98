"""Exception types shared across Curator agents."""

from typing import Optional


class CuratorError(Exception):
    """Base class for Curator failures."""


class InvalidQueryError(CuratorError, ValueError):
    """Caller input rejected before any retrieval or inference work."""


class RetrievalError(CuratorError):
    """Semantic retrieval could not run (e.g. the query could not be embedded)."""


class RecordNotFoundError(CuratorError, LookupError):
    """Referenced article record does not exist in the structured store."""

    def __init__(self, record_id: int):
        super().__init__(f"Article {record_id} not found")
        self.record_id = record_id


class CollectionNotFoundError(CuratorError, LookupError):
    """Referenced collection does not exist or is no longer active."""

    def __init__(self, collection_id: int):
        super().__init__(f"Collection {collection_id} not found")
        self.collection_id = collection_id


class CollectionExistsError(CuratorError, ValueError):
    """A collection with the same name already exists."""

    def __init__(self, name: str):
        super().__init__(f"A collection named {name!r} already exists")
        self.name = name


class ReEvaluationError(CuratorError):
    """Second-opinion scoring failed for a record."""


class RetryExhausted(CuratorError):
    """All attempts of a retried operation failed."""

    def __init__(self, label: str, attempts: int, last_error: Optional[BaseException]):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error else "unknown error"
        super().__init__(f"{label} failed after {attempts} attempts: {detail}")
