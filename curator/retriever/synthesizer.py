"""
Synthesizer

Two-stage answer synthesis over article context:
1. Reasoning model analyses the context and drafts an answer
2. Structuring model converts that draft into a ``StructuredAnswer``

The stages fail independently. A failed reasoning stage degrades to
structuring straight from the context; a failed structuring stage fails
the answer.

Key principle: answer only from the user's saved articles.
- Missing information is stated, not invented
- Every claim cites an article id
- Confidence drops when the context is thin
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..common.interfaces import InferenceClient
from ..common.language import language_instruction
from ..common.schemas import StructuredAnswer

logger = logging.getLogger("curator.retriever.synthesizer")


REASONING_PROMPT = """You are a research assistant analyzing a personal library of saved articles.

Answer the user's question using ONLY the provided context from their saved articles.

CRITICAL RULES:
1. Only use information from the provided articles
2. If the answer is not in the context, say so explicitly; do not fill gaps from general knowledge
3. Cite every article you rely on by its ID, like [ID: 12]
4. Be concise but thorough
5. Write the answer as clear Markdown prose
6. If you are uncertain, say how uncertain and lower your confidence

{language_instruction}

The user trusts you to be honest about what their articles do and do not say."""


STRUCTURING_PROMPT = """You are a JSON formatter. Convert the provided analysis into a JSON object that matches the schema exactly.

Rules:
- thinkingProcess: brief summary of how the answer was derived
- answerBody: the answer in Markdown, keeping the [ID: x] citations
- confidenceScore: integer 0-100 (0 = the articles do not answer the question)
- citedRecordIds: integer article IDs actually used; only IDs that appear in the context
- followUpSuggestions: exactly 3 follow-up questions grounded in the articles

{language_instruction}"""


REASONING_CONTENT = """Question: {question}

Context from the user's saved articles:
{context}

Please analyze the context and answer the question."""


STRUCTURING_CONTENT = """Question: {question}

Analysis to convert:
{analysis}

Article IDs available for citation: {available_ids}"""


DIRECT_STRUCTURING_CONTENT = """Question: {question}

No prior analysis is available. Answer directly from this context:
{context}

Article IDs available for citation: {available_ids}"""


@dataclass
class SynthesisOutcome:
    """Result of one two-stage synthesis"""
    answer: Optional[StructuredAnswer] = None
    error: Optional[str] = None
    reasoning: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.answer is not None


def restrict_citations(answer: StructuredAnswer, retrieved_ids: Sequence[int]) -> List[int]:
    """
    Keep only cited ids that were retrieved, ordered by retrieval rank.

    Returns the dropped ids; ``answer`` is updated in place.
    """
    cited = set(answer.cited_record_ids)
    allowed = set(retrieved_ids)
    dropped = sorted(cited - allowed)
    answer.cited_record_ids = [rid for rid in dict.fromkeys(retrieved_ids) if rid in cited]
    return dropped


class Synthesizer:
    """Reason-then-structure answer synthesis."""

    def __init__(self, inference: InferenceClient):
        self._inference = inference

    async def reason(self, question: str, context: str, outcome: SynthesisOutcome) -> None:
        """Reasoning stage. A failure is recorded as a warning, not an error."""
        result = await self._inference.reason(
            REASONING_PROMPT.format(language_instruction=language_instruction(question)).strip(),
            REASONING_CONTENT.format(question=question, context=context),
        )
        if result.ok:
            outcome.reasoning = result.data
            return
        logger.warning("Reasoning stage failed, structuring from context: %s", result.error)
        outcome.warnings.append(
            f"Reasoning stage failed; answer structured directly from context ({result.error})"
        )

    async def structure(
        self,
        question: str,
        context: str,
        retrieved_ids: Sequence[int],
        outcome: SynthesisOutcome,
    ) -> None:
        """Structuring stage over the reasoning draft, or the raw context without one."""
        available_ids = ", ".join(str(i) for i in retrieved_ids) or "none"
        if outcome.reasoning:
            content = STRUCTURING_CONTENT.format(
                question=question, analysis=outcome.reasoning, available_ids=available_ids
            )
        else:
            content = DIRECT_STRUCTURING_CONTENT.format(
                question=question, context=context, available_ids=available_ids
            )

        result = await self._inference.structure(
            STRUCTURING_PROMPT.format(language_instruction=language_instruction(question)).strip(),
            content,
            StructuredAnswer,
        )
        if not result.ok:
            outcome.error = result.error or "Structured generation failed"
            return

        answer = result.data
        dropped = restrict_citations(answer, retrieved_ids)
        if dropped:
            logger.warning("Dropped citations outside the retrieved set: %s", dropped)
            outcome.warnings.append(f"Removed citations to unretrieved articles: {dropped}")
        outcome.answer = answer

    async def synthesize(
        self,
        question: str,
        context: str,
        retrieved_ids: Sequence[int],
    ) -> SynthesisOutcome:
        """
        Args:
            question: The user's original question
            context: Formatted article blocks, in rank order
            retrieved_ids: Article ids present in the context, in rank order

        Returns:
            SynthesisOutcome; ``ok`` is False only when structuring failed
        """
        outcome = SynthesisOutcome()
        await self.reason(question, context, outcome)
        await self.structure(question, context, retrieved_ids, outcome)
        return outcome
