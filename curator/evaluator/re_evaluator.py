"""
Quality Re-Evaluator

An independent second opinion on article quality. Criteria get stricter as
the user's feedback shows higher standards, and the prompt is biased toward
downgrading borderline content. Only downgrades are written back.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ..common.errors import ReEvaluationError, RecordNotFoundError
from ..common.interfaces import ContextProvider, InferenceClient, RecordStore
from ..common.locks import KeyedLock
from ..common.schemas import (
    ArticleRecord,
    ArticleStatus,
    ArticleUpdate,
    FeedbackStats,
    StricterAnalysis,
)
from .review_queue import ReviewItem, ReviewQueue

logger = logging.getLogger("curator.evaluator.re_evaluator")

DEFAULT_PRIOR_SCORE = 50
DEFAULT_PRIOR_LABEL = "Unknown"
REVIEW_THRESHOLD = 0.7

EVALUATOR_PROMPT = """You are a harsh content quality evaluator. Your job is to catch "slop": low-quality, generic, or clickbait content that wastes the user's time.

Evaluation criteria:
- Minimum depth score: {minimum_depth}
- Maximum generic content score: {maximum_generic_score}
- Requires original insight: {requires_original_insight}
- Check for clickbait: {check_for_clickbait}

Scoring:
- score: 1-100; below the minimum depth means the article should not be recommended
- qualityLabel: "High/Medium/Low ROI: <one-line verdict on whether it is worth the reader's time>"
- confidence: 0.0-1.0, how sure you are given only the metadata below
- reasoning: name the concrete quality issues

Be STRICT. It is better to downgrade borderline content than to let slop through."""

EVALUATION_CONTENT = """Re-evaluate this article:
Title: {title}
Author: {author}
Description: {description}
Tags: {tags}
Current Ranking: {score}
Current Quality Label: {label}"""


@dataclass(frozen=True)
class EvaluationCriteria:
    """Stricter criteria derived from the user's feedback"""
    minimum_depth: int
    maximum_generic_score: int
    requires_original_insight: bool
    check_for_clickbait: bool

    @classmethod
    def from_feedback(cls, stats: FeedbackStats) -> "EvaluationCriteria":
        ratio = stats.upvote_ratio
        return cls(
            minimum_depth=80 if ratio > 0.5 else 60,
            maximum_generic_score=40,
            requires_original_insight=ratio > 0.4,
            check_for_clickbait=True,
        )

    def prompt(self) -> str:
        return EVALUATOR_PROMPT.format(
            minimum_depth=self.minimum_depth,
            maximum_generic_score=self.maximum_generic_score,
            requires_original_insight="YES" if self.requires_original_insight else "NO",
            check_for_clickbait="YES" if self.check_for_clickbait else "NO",
        )


@dataclass
class ReEvaluationResult:
    record_id: int
    prior_score: int
    new_score: int
    prior_label: str
    new_label: str
    confidence: float
    should_downgrade: bool
    reasoning: str
    flag_for_review: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchReEvaluation:
    """Per-record outcomes of a batch run"""
    results: List[ReEvaluationResult] = field(default_factory=list)
    errors: Dict[int, str] = field(default_factory=dict)

    @property
    def downgraded(self) -> List[int]:
        return [r.record_id for r in self.results if r.should_downgrade]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluated": len(self.results),
            "downgraded": self.downgraded,
            "flagged": [r.record_id for r in self.results if r.flag_for_review],
            "errors": {str(k): v for k, v in self.errors.items()},
            "results": [r.to_dict() for r in self.results],
        }


def _evaluation_content(record: ArticleRecord) -> str:
    return EVALUATION_CONTENT.format(
        title=record.title or "Unknown",
        author=record.author or "Unknown",
        description=record.description or "Unknown",
        tags=", ".join(t.canonical_name for t in record.tags) or "None",
        score=record.scalar_score or "Unknown",
        label=record.quality_label or "Unknown",
    )


class QualityReEvaluator:
    """Second-pass scorer with feedback-informed criteria."""

    def __init__(
        self,
        inference: InferenceClient,
        context: ContextProvider,
        store: RecordStore,
        *,
        review_threshold: float = REVIEW_THRESHOLD,
        review_queue: Optional[ReviewQueue] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self._inference = inference
        self._context = context
        self._store = store
        self._review_threshold = review_threshold
        self._review_queue = review_queue
        self._locks = locks or KeyedLock()

    async def re_evaluate(self, record_id: int) -> ReEvaluationResult:
        """
        Re-score one article. Concurrent calls for the same article run one
        at a time.

        Raises:
            RecordNotFoundError: the article does not exist
            ReEvaluationError: the structuring model failed after retries
        """
        async with self._locks.hold(record_id):
            return await self._re_evaluate(record_id)

    async def _re_evaluate(self, record_id: int) -> ReEvaluationResult:
        knowledge = await self._context.load()
        record = await self._store.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)

        criteria = EvaluationCriteria.from_feedback(knowledge.feedback_stats)
        analysis = await self._inference.structure(
            criteria.prompt(), _evaluation_content(record), StricterAnalysis
        )
        if not analysis.ok:
            raise ReEvaluationError(f"Re-evaluation of article {record_id} failed: {analysis.error}")

        verdict: StricterAnalysis = analysis.data
        prior_score = record.scalar_score or DEFAULT_PRIOR_SCORE
        result = ReEvaluationResult(
            record_id=record_id,
            prior_score=prior_score,
            new_score=verdict.score,
            prior_label=record.quality_label or DEFAULT_PRIOR_LABEL,
            new_label=verdict.quality_label,
            confidence=verdict.confidence,
            should_downgrade=verdict.score < prior_score,
            reasoning=verdict.reasoning,
            flag_for_review=verdict.confidence < self._review_threshold,
        )

        if result.should_downgrade:
            # Score and label only; status is left as it is.
            await self._store.update_record(
                record_id,
                ArticleUpdate(scalar_score=result.new_score, quality_label=result.new_label),
            )
            logger.info("Downgraded article %s: %d -> %d", record_id, prior_score, result.new_score)

        if result.flag_for_review and self._review_queue is not None:
            await asyncio.to_thread(
                self._review_queue.add,
                ReviewItem(
                    record_id=record_id,
                    prior_score=result.prior_score,
                    new_score=result.new_score,
                    confidence=result.confidence,
                    reasoning=result.reasoning,
                    applied=result.should_downgrade,
                ),
            )

        logger.info(
            "Re-evaluated article %s (score %d -> %d, confidence %.2f)",
            record_id, prior_score, result.new_score, result.confidence,
        )
        return result

    async def batch_re_evaluate(self, limit: int = 10) -> BatchReEvaluation:
        """Re-evaluate the most recent unread articles one by one."""
        records = await self._store.list_records(status=ArticleStatus.UNREAD, limit=limit)
        batch = BatchReEvaluation()

        for record in records:
            try:
                batch.results.append(await self.re_evaluate(record.id))
            except (RecordNotFoundError, ReEvaluationError) as e:
                logger.warning("Batch re-evaluation skipped article %s: %s", record.id, e)
                batch.errors[record.id] = str(e)
            except Exception as e:
                logger.error("Batch re-evaluation error on article %s: %s", record.id, e, exc_info=True)
                batch.errors[record.id] = str(e) or type(e).__name__

        logger.info(
            "Batch re-evaluation complete: %d evaluated, %d downgraded, %d errors",
            len(batch.results), len(batch.downgraded), len(batch.errors),
        )
        return batch
