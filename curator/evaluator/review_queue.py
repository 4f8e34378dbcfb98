"""
Review Queue

Holds re-evaluations whose confidence was too low to trust silently, so a
human can confirm or revert them. Optionally persisted to JSON.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger("curator.evaluator.review_queue")


@dataclass
class ReviewItem:
    """A flagged re-evaluation awaiting a human decision"""
    record_id: int
    prior_score: int
    new_score: int
    confidence: float
    reasoning: str
    applied: bool
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    status: str = "pending"  # pending, confirmed, reverted


class ReviewQueue:
    """
    Review queue for low-confidence re-evaluations.

    One pending item per record: flagging a record again replaces its
    pending entry. Mutations are serialized so the queue can be written
    from worker threads.
    """

    def __init__(self, queue_path: Optional[Path] = None):
        self._queue_path = queue_path
        self._items: List[ReviewItem] = []
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        if self._queue_path is None or not self._queue_path.exists():
            return
        try:
            with open(self._queue_path) as f:
                data = json.load(f)
            self._items = [ReviewItem(**item) for item in data]
        except (json.JSONDecodeError, IOError, TypeError) as e:
            logger.warning("Failed to load review queue %s: %s", self._queue_path, e)
            self._items = []

    def _save(self) -> None:
        if self._queue_path is None:
            return
        self._queue_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._queue_path, "w") as f:
            json.dump([asdict(item) for item in self._items], f, indent=2)

    def add(self, item: ReviewItem) -> None:
        with self._lock:
            self._items = [
                existing for existing in self._items
                if not (existing.record_id == item.record_id and existing.status == "pending")
            ]
            self._items.append(item)
            self._save()
        logger.info("Flagged article %s for review (confidence: %.2f)", item.record_id, item.confidence)

    def pending(self) -> List[ReviewItem]:
        return [item for item in self._items if item.status == "pending"]

    def resolve(self, record_id: int, status: str) -> Optional[ReviewItem]:
        """Mark the pending item for a record as confirmed or reverted."""
        if status not in ("confirmed", "reverted"):
            raise ValueError(f"Unknown review status: {status}")
        with self._lock:
            for item in self._items:
                if item.record_id == record_id and item.status == "pending":
                    item.status = status
                    self._save()
                    return item
        return None

    def stats(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for item in self._items:
            counts[item.status] = counts.get(item.status, 0) + 1
        return {"total": len(self._items), **counts}
