"""
Tag Reconciler

Maps model-suggested labels onto the canonical tag registry so the
folksonomy does not fork on casing or whitespace ("Machine Learning",
"machine learning ", "MACHINE LEARNING" are one tag).
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from ..common.interfaces import ContextProvider, RecordStore

logger = logging.getLogger("curator.knowledge.tag_reconciler")


@dataclass(frozen=True)
class TagAssignment:
    """A suggested label resolved to a canonical tag"""
    tag_id: int
    canonical_name: str
    is_new: bool

    def to_dict(self) -> dict:
        return {"id": self.tag_id, "canonical_name": self.canonical_name, "is_new": self.is_new}


class KnowledgeTagReconciler:
    """
    Resolve suggestions against the session registry, creating tags only
    when no case-insensitive match exists.

    New tags are appended to the in-session registry so duplicates later in
    the same batch (or session) resolve to the tag just created.
    """

    def __init__(self, context: ContextProvider, store: RecordStore):
        self._context = context
        self._store = store

    async def reconcile(self, suggested_names: Sequence[str]) -> List[TagAssignment]:
        """
        Args:
            suggested_names: Labels in any casing; blanks are skipped

        Returns:
            One assignment per distinct canonical tag, in first-seen order.
            A suggestion whose creation fails at the store is dropped.
        """
        knowledge = await self._context.load()
        results: List[TagAssignment] = []
        seen_ids = set()

        for suggested in suggested_names:
            name = (suggested or "").strip()
            if not name:
                continue

            existing = knowledge.find_tag(name)
            if existing is not None:
                assignment = TagAssignment(existing.id, existing.canonical_name, is_new=False)
            else:
                try:
                    tag, created = await self._store.create_tag(name)
                except Exception as e:
                    logger.warning("Failed to create tag %r, skipping: %s", name, e)
                    continue
                knowledge.register_tag(tag)
                if not created:
                    logger.info("Tag %r already existed as %r", name, tag.canonical_name)
                assignment = TagAssignment(tag.id, tag.canonical_name, is_new=created)

            if assignment.tag_id in seen_ids:
                continue
            seen_ids.add(assignment.tag_id)
            results.append(assignment)

        new_count = sum(1 for a in results if a.is_new)
        logger.info("Reconciled %d suggestions into %d tags (%d new)", len(suggested_names), len(results), new_count)
        return results

    async def assign(self, record_id: int, suggested_names: Sequence[str]) -> List[TagAssignment]:
        """Reconcile and link the resulting tags to a record."""
        assignments = await self.reconcile(suggested_names)
        if assignments:
            await self._store.link_tags(record_id, [a.tag_id for a in assignments])
        return assignments
