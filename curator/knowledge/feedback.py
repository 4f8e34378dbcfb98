"""
Feedback Processor

Records a user's reaction to an article and applies it: score nudges, status
changes, tags added or removed, and collection membership. The feedback log is
append-only; the article row takes a partial update.
"""

import logging
from typing import Optional, Sequence

from ..common.errors import CollectionNotFoundError, RecordNotFoundError
from ..common.interfaces import RecordStore
from ..common.schemas import (
    ArticleRecord,
    ArticleStatus,
    ArticleUpdate,
    FeedbackEvent,
    FeedbackKind,
    UserFeedback,
)
from .tag_reconciler import KnowledgeTagReconciler

logger = logging.getLogger("curator.knowledge.feedback")

BASE_SCORE = 50
MIN_SCORE = 1
MAX_SCORE = 100

# Score deltas per feedback kind
SCORE_DELTAS = {
    FeedbackKind.UPVOTE: 10,
    FeedbackKind.DOWNVOTE: -10,
    FeedbackKind.SAVED: 5,
}

STATUS_CHANGES = {
    FeedbackKind.SAVED: ArticleStatus.READ,
    FeedbackKind.ARCHIVED: ArticleStatus.ARCHIVED,
}


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(value)))


def adjusted_score(current: Optional[int], feedback: UserFeedback) -> Optional[int]:
    """New score for a record after feedback, or None when it does not change."""
    if feedback.score_override is not None:
        return clamp_score(feedback.score_override)
    delta = SCORE_DELTAS.get(feedback.kind)
    if delta is None:
        return None
    return clamp_score((current or BASE_SCORE) + delta)


class FeedbackProcessor:
    """Applies ``UserFeedback`` to the store."""

    def __init__(self, store: RecordStore, reconciler: KnowledgeTagReconciler):
        self._store = store
        self._reconciler = reconciler

    async def process(self, feedback: UserFeedback) -> ArticleRecord:
        """
        Log and apply one feedback action.

        The article and the target collection are checked before anything is
        written. ``tag_removed`` feedback unlinks the named tags; every other
        kind links them.

        The session knowledge snapshot is not refreshed; feedback shows up in
        aggregates from the next session (or after ``invalidate()``).

        Raises:
            RecordNotFoundError: the article does not exist
            CollectionNotFoundError: the collection does not exist or is inactive
        """
        record = await self._store.get_record(feedback.record_id)
        if record is None:
            raise RecordNotFoundError(feedback.record_id)

        if feedback.collection_id is not None:
            collection = await self._store.get_collection(feedback.collection_id)
            if collection is None or not collection.active:
                raise CollectionNotFoundError(feedback.collection_id)

        await self._store.append_feedback(
            FeedbackEvent(
                record_id=feedback.record_id,
                kind=feedback.kind,
                payload=feedback.model_dump(mode="json", exclude_none=True),
            )
        )

        changes = ArticleUpdate(
            scalar_score=adjusted_score(record.scalar_score, feedback),
            status=STATUS_CHANGES.get(feedback.kind),
        )
        updated = await self._store.update_record(record.id, changes)
        if updated is None:
            raise RecordNotFoundError(record.id)

        if feedback.tags:
            if feedback.kind is FeedbackKind.TAG_REMOVED:
                await self._remove_tags(record, feedback.tags)
            else:
                assignments = await self._reconciler.assign(record.id, feedback.tags)
                logger.info("Feedback linked %d tags to article %s", len(assignments), record.id)

        if feedback.collection_id is not None:
            added = await self._store.add_to_collection(
                feedback.collection_id, record.id, notes=feedback.notes
            )
            if not added:
                logger.debug("Article %s already in collection %s", record.id, feedback.collection_id)

        logger.info(
            "Applied %s feedback to article %s (score %s -> %s)",
            feedback.kind.value, record.id, record.scalar_score, updated.scalar_score,
        )
        if feedback.tags or feedback.collection_id is not None:
            return await self._store.get_record(record.id) or updated
        return updated

    async def _remove_tags(self, record: ArticleRecord, names: Sequence[str]) -> None:
        # Only tags already on the article are touched; no tag is created.
        current = {tag.canonical_name.strip().lower(): tag.id for tag in record.tags}
        tag_ids = []
        for name in names:
            tag_id = current.get(name.strip().lower())
            if tag_id is None:
                logger.debug("Article %s has no tag %r to remove", record.id, name)
            elif tag_id not in tag_ids:
                tag_ids.append(tag_id)
        removed = await self._store.unlink_tags(record.id, tag_ids)
        logger.info("Feedback removed %d tags from article %s", removed, record.id)
