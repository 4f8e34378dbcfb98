"""
Retriever Agent - Question Answering over Saved Articles

Key Components:
- QueryOptimizer: Rewrites the question into a search query
- SemanticRetriever: Embeds the query and ranks articles by similarity
- ContextConstructor: Formats retrieved articles into model context
- Synthesizer: Reason-then-structure answer synthesis
- RagPipeline: The state machine tying them together

Pipeline:
1. Optimize the question (fallback: raw question)
2. Retrieve references (none: canned empty answer)
3. Build context in rank order, skipping stale references
4. Reason over the context, then structure into a cited answer
"""

from .context_builder import BuiltContext, ContextConstructor
from .pipeline import PipelineState, QueryResponse, RagPipeline, validate_query_request
from .query_optimizer import OptimizedQuery, QueryOptimizer
from .searcher import RetrievedReference, SemanticRetriever, validate_limit
from .synthesizer import SynthesisOutcome, Synthesizer

__all__ = [
    "BuiltContext",
    "ContextConstructor",
    "PipelineState",
    "QueryResponse",
    "RagPipeline",
    "validate_query_request",
    "OptimizedQuery",
    "QueryOptimizer",
    "RetrievedReference",
    "SemanticRetriever",
    "validate_limit",
    "SynthesisOutcome",
    "Synthesizer",
]
