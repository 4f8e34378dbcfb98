"""
RAG Synthesis Pipeline

OPTIMIZING -> RETRIEVING -> (EMPTY_RESULT | CONTEXT_BUILDING) -> REASONING
-> STRUCTURING -> DONE, with FAILED reachable from any state.

Every failure is converted at the stage where it happens: optimization and
retrieval problems degrade to fallbacks, and only a structuring failure (or
an unexpected fault) fails the query. The pipeline performs no persistent
writes, so cancelling it mid-flight leaves nothing half-done.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..common.errors import InvalidQueryError, RetrievalError
from ..common.schemas import StructuredAnswer, empty_result_answer
from .context_builder import ContextConstructor
from .query_optimizer import QueryOptimizer
from .searcher import MAX_LIMIT, RetrievedReference, SemanticRetriever, validate_limit
from .synthesizer import SynthesisOutcome, Synthesizer

logger = logging.getLogger("curator.retriever.pipeline")


class PipelineState(str, Enum):
    OPTIMIZING = "optimizing"
    RETRIEVING = "retrieving"
    EMPTY_RESULT = "empty_result"
    CONTEXT_BUILDING = "context_building"
    REASONING = "reasoning"
    STRUCTURING = "structuring"
    DONE = "done"
    FAILED = "failed"


@dataclass
class QueryResponse:
    """Outcome of one question"""
    success: bool
    answer: Optional[StructuredAnswer] = None
    references: List[RetrievedReference] = field(default_factory=list)
    error: Optional[str] = None
    optimized_query: Optional[str] = None
    states: List[PipelineState] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def final_state(self) -> Optional[PipelineState]:
        return self.states[-1] if self.states else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "answer": self.answer.to_wire() if self.answer else None,
            "references": [r.to_dict() for r in self.references],
            "error": self.error,
            "optimized_query": self.optimized_query,
            "states": [s.value for s in self.states],
            "warnings": list(self.warnings),
        }


def validate_query_request(question: Any, limit: Any, max_limit: int = MAX_LIMIT) -> str:
    """
    Check caller input before any work is done.

    Returns:
        The question, stripped

    Raises:
        InvalidQueryError: empty question or limit outside [1, max_limit]
    """
    if not isinstance(question, str) or not question.strip():
        raise InvalidQueryError("question must be a non-empty string")
    validate_limit(limit, max_limit)
    return question.strip()


class RagPipeline:
    """Answers questions over the article corpus."""

    def __init__(
        self,
        optimizer: QueryOptimizer,
        retriever: SemanticRetriever,
        context_builder: ContextConstructor,
        synthesizer: Synthesizer,
        *,
        max_limit: int = MAX_LIMIT,
        timeout: Optional[float] = None,
    ):
        self._optimizer = optimizer
        self._retriever = retriever
        self._context_builder = context_builder
        self._synthesizer = synthesizer
        self._max_limit = max_limit
        self._timeout = timeout

    async def answer_query(
        self,
        question: str,
        limit: int = 10,
        timeout: Optional[float] = None,
    ) -> QueryResponse:
        """
        Run the full pipeline.

        Args:
            question: Natural-language question
            limit: Number of articles to retrieve, 1..max_limit
            timeout: Seconds for the whole run; falls back to the pipeline default

        Returns:
            QueryResponse; never raises for pipeline failures
        """
        try:
            question = validate_query_request(question, limit, self._max_limit)
        except InvalidQueryError as e:
            logger.warning("Rejected query: %s", e)
            return QueryResponse(success=False, error=str(e), states=[PipelineState.FAILED])

        response = QueryResponse(success=False)
        timeout = timeout if timeout is not None else self._timeout

        try:
            if timeout and timeout > 0:
                await asyncio.wait_for(self._run(question, limit, response), timeout=timeout)
            else:
                await self._run(question, limit, response)
        except asyncio.TimeoutError:
            logger.error("Query timed out after %.1fs", timeout)
            self._fail(response, f"Query timed out after {timeout:.1f}s")
        except Exception as e:
            logger.error("Query failed: %s", e, exc_info=True)
            self._fail(response, str(e) or type(e).__name__)

        return response

    def _enter(self, response: QueryResponse, state: PipelineState) -> None:
        response.states.append(state)
        logger.info("Pipeline state: %s", state.value)

    def _fail(self, response: QueryResponse, error: str) -> None:
        response.success = False
        response.answer = None
        response.error = error
        if response.final_state is not PipelineState.FAILED:
            response.states.append(PipelineState.FAILED)

    async def _run(self, question: str, limit: int, response: QueryResponse) -> None:
        self._enter(response, PipelineState.OPTIMIZING)
        optimized = await self._optimizer.optimize(question)
        response.optimized_query = optimized.text
        if not optimized.optimized:
            response.warnings.append("Query optimization unavailable; searched with the original question")

        self._enter(response, PipelineState.RETRIEVING)
        try:
            references = await self._retriever.search(optimized.text, limit)
        except RetrievalError as e:
            logger.warning("Retrieval failed, treating as no matches: %s", e)
            response.warnings.append(str(e))
            references = []

        if not references:
            self._finish_empty(response)
            return

        response.references = references

        self._enter(response, PipelineState.CONTEXT_BUILDING)
        built = await self._context_builder.build_context(references)
        if built.skipped:
            response.warnings.append(f"Skipped missing articles: {built.skipped}")
        if built.is_empty:
            logger.warning("All %d retrieved references are stale", len(references))
            self._finish_empty(response)
            return

        outcome = SynthesisOutcome()
        self._enter(response, PipelineState.REASONING)
        await self._synthesizer.reason(question, built.text, outcome)

        self._enter(response, PipelineState.STRUCTURING)
        await self._synthesizer.structure(question, built.text, built.record_ids, outcome)
        response.warnings.extend(outcome.warnings)

        if not outcome.ok:
            self._fail(response, outcome.error or "Structured generation failed")
            return

        response.answer = outcome.answer
        response.success = True
        self._enter(response, PipelineState.DONE)
        logger.info(
            "Answered with confidence %d citing %d articles",
            outcome.answer.confidence_score, len(outcome.answer.cited_record_ids),
        )

    def _finish_empty(self, response: QueryResponse) -> None:
        self._enter(response, PipelineState.EMPTY_RESULT)
        response.references = []
        response.answer = empty_result_answer()
        response.success = True
