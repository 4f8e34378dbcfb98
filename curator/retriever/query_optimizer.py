"""
Query Optimizer

Rewrites a conversational question into a compact semantic search query.
Optimization is best-effort: any failure falls back to the raw question.
The reader profile from the knowledge context is optional the same way.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..common.interfaces import ContextProvider, InferenceClient
from ..common.llm_utils import strip_wrapping_quotes

logger = logging.getLogger("curator.retriever.query_optimizer")

OPTIMIZER_PROMPT = """You are a query optimizer for semantic search over a personal library of saved articles.

Convert the user's question into an optimized search query.

Rules:
1. Remove filler words (like, um, please, could you, etc.)
2. Extract the core semantic concepts
3. Keep important context words
4. Preserve technical terms and proper nouns exactly
5. Keep it concise: 1-2 sentences at most

Example:
Input: "Hey, could you please tell me if there are any articles about AI safety?"
Output: AI safety artificial intelligence safety concerns risks

Return ONLY the optimized query, nothing else."""


@dataclass(frozen=True)
class OptimizedQuery:
    """Search text and whether it came from the model"""
    text: str
    original: str
    optimized: bool


class QueryOptimizer:
    """
    Question → search query.

    When a context provider is given, the reader's interests (top tags,
    collections) are appended to the prompt so ambiguous questions lean
    toward topics the reader actually saves.
    """

    def __init__(self, inference: InferenceClient, context: Optional[ContextProvider] = None):
        self._inference = inference
        self._context = context

    async def _system_prompt(self) -> str:
        if self._context is None:
            return OPTIMIZER_PROMPT
        try:
            knowledge = await self._context.load()
        except Exception as e:
            logger.warning("Knowledge context unavailable for query optimization: %s", e)
            return OPTIMIZER_PROMPT
        return f"{OPTIMIZER_PROMPT}\n\nReader profile:\n{knowledge.prompt_summary()}"

    async def optimize(self, question: str) -> OptimizedQuery:
        result = await self._inference.reason(await self._system_prompt(), question)
        if not result.ok:
            logger.warning("Query optimization failed, using original question: %s", result.error)
            return OptimizedQuery(text=question, original=question, optimized=False)

        text = strip_wrapping_quotes(result.data)
        if not text:
            logger.warning("Query optimizer returned nothing usable, using original question")
            return OptimizedQuery(text=question, original=question, optimized=False)

        logger.debug("Optimized %r -> %r", question, text)
        return OptimizedQuery(text=text, original=question, optimized=True)
