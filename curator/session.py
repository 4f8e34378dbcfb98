"""
Curator Session

Composition root. One session owns one knowledge-context snapshot and wires
the store, vector index and inference gateway into every component as
explicit constructor dependencies. Nothing is shared across sessions.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .common.config import REVIEW_QUEUE_PATH, CuratorConfig
from .common.inference import InferenceGateway
from .common.interfaces import InferenceClient, RecordStore, VectorIndex
from .common.locks import KeyedLock
from .common.schemas import ArticleRecord, KnowledgeContext, UserFeedback
from .common.store import SQLRecordStore
from .common.vector_index import InMemoryVectorIndex
from .evaluator import BatchReEvaluation, QualityReEvaluator, ReEvaluationResult, ReviewQueue
from .knowledge import (
    ArticleIndexer,
    FeedbackProcessor,
    KnowledgeContextLoader,
    KnowledgeTagReconciler,
    TagAssignment,
)
from .retriever import (
    ContextConstructor,
    QueryOptimizer,
    QueryResponse,
    RagPipeline,
    RetrievedReference,
    SemanticRetriever,
    Synthesizer,
    validate_query_request,
)

logger = logging.getLogger("curator.session")


class CuratorSession:
    """
    Session-scoped entry point for the Curator core.

    Usage:
        session = await CuratorSession.from_config(load_config())
        response = await session.answer_query("What are the AI trends?", limit=8)
    """

    def __init__(
        self,
        store: RecordStore,
        index: VectorIndex,
        inference: InferenceClient,
        *,
        max_limit: int = 50,
        default_limit: int = 10,
        query_timeout: Optional[float] = None,
        review_threshold: float = 0.7,
        batch_limit: int = 10,
        review_queue: Optional[ReviewQueue] = None,
    ):
        self.store = store
        self.index = index
        self.inference = inference
        self.max_limit = max_limit
        self.default_limit = default_limit
        self.batch_limit = batch_limit

        self.context = KnowledgeContextLoader(store)
        self.tags = KnowledgeTagReconciler(self.context, store)
        self.feedback = FeedbackProcessor(store, self.tags)
        self.indexer = ArticleIndexer(inference, index)
        self.retriever = SemanticRetriever(inference, index, max_limit=max_limit)
        self.pipeline = RagPipeline(
            QueryOptimizer(inference, self.context),
            self.retriever,
            ContextConstructor(store),
            Synthesizer(inference),
            max_limit=max_limit,
            timeout=query_timeout,
        )
        self.evaluator = QualityReEvaluator(
            inference,
            self.context,
            store,
            review_threshold=review_threshold,
            review_queue=review_queue,
            locks=KeyedLock(),
        )

    @classmethod
    async def from_config(
        cls,
        config: CuratorConfig,
        *,
        index: Optional[VectorIndex] = None,
        inference: Optional[InferenceClient] = None,
    ) -> "CuratorSession":
        """Build a session with the configured store (schema created if missing)."""
        store = SQLRecordStore.from_url(config.store.database_url)
        await store.init_schema()
        review_queue = ReviewQueue(REVIEW_QUEUE_PATH) if config.evaluator.review_queue_enabled else None
        return cls(
            store,
            index or InMemoryVectorIndex(),
            inference or InferenceGateway.from_config(config),
            max_limit=config.retriever.max_limit,
            default_limit=config.retriever.default_limit,
            query_timeout=config.retriever.query_timeout or None,
            review_threshold=config.evaluator.review_threshold,
            batch_limit=config.evaluator.batch_limit,
            review_queue=review_queue,
        )

    async def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()

    # Core contract

    async def answer_query(self, question: str, limit: Optional[int] = None) -> QueryResponse:
        return await self.pipeline.answer_query(question, self.default_limit if limit is None else limit)

    async def reconcile_tags(self, names: Sequence[str]) -> List[TagAssignment]:
        return await self.tags.reconcile(names)

    async def load_context(self) -> KnowledgeContext:
        return await self.context.load()

    async def re_evaluate(self, record_id: int) -> ReEvaluationResult:
        return await self.evaluator.re_evaluate(record_id)

    # Supplementary operations

    async def batch_re_evaluate(self, limit: Optional[int] = None) -> BatchReEvaluation:
        return await self.evaluator.batch_re_evaluate(self.batch_limit if limit is None else limit)

    async def search(
        self, query: str, limit: Optional[int] = None
    ) -> List[Tuple[RetrievedReference, Optional[ArticleRecord]]]:
        """
        Semantic search without synthesis.

        Each hit carries its stored article, or None when the index entry is
        stale.

        Raises:
            InvalidQueryError: blank query or bad limit
            RetrievalError: the query could not be embedded
        """
        limit = self.default_limit if limit is None else limit
        query = validate_query_request(query, limit, self.max_limit)
        references = await self.retriever.search(query, limit)
        return [(ref, await self.store.get_record(ref.source_record_id)) for ref in references]

    async def record_feedback(self, feedback: UserFeedback) -> ArticleRecord:
        return await self.feedback.process(feedback)

    async def index_record(self, record: ArticleRecord) -> bool:
        return await self.indexer.index_record(record)

    async def index_all(self, batch_size: int = 100) -> int:
        """Index every stored article. Returns the number indexed."""
        indexed = 0
        offset = 0
        while True:
            records = await self.store.list_records(limit=batch_size, offset=offset)
            if not records:
                break
            for record in records:
                if await self.indexer.index_record(record):
                    indexed += 1
            offset += len(records)
        logger.info("Indexed %d articles", indexed)
        return indexed
