"""
Curator Knowledge Layer

Session knowledge context, tag canonicalization, feedback processing and
article indexing.
"""

from .context_loader import KnowledgeContextLoader
from .feedback import FeedbackProcessor
from .indexer import ArticleIndexer
from .tag_reconciler import KnowledgeTagReconciler, TagAssignment

__all__ = [
    "KnowledgeContextLoader",
    "FeedbackProcessor",
    "ArticleIndexer",
    "KnowledgeTagReconciler",
    "TagAssignment",
]
