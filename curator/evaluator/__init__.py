"""
Evaluator Agent - Second-Opinion Quality Scoring

Re-scores articles under stricter, feedback-informed criteria, writes back
downgrades, and queues low-confidence verdicts for human review.
"""

from .re_evaluator import (
    BatchReEvaluation,
    EvaluationCriteria,
    QualityReEvaluator,
    ReEvaluationResult,
)
from .review_queue import ReviewItem, ReviewQueue

__all__ = [
    "BatchReEvaluation",
    "EvaluationCriteria",
    "QualityReEvaluator",
    "ReEvaluationResult",
    "ReviewItem",
    "ReviewQueue",
]
