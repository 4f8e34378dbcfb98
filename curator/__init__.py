"""
Curator Agents

Knowledge curation over a personal article feed.

Philosophy:
- One canonical tag per concept, whatever casing the model suggests
- Answers come only from saved articles, with citations by article id
- Reason first, then structure: depth and format compliance fail separately
- A stricter second opinion may downgrade, never silently upgrade

Usage:
    from curator.common import load_config, InferenceGateway
    from curator.session import CuratorSession
    from curator.retriever import RagPipeline
    from curator.evaluator import QualityReEvaluator
"""

__version__ = "0.1.0"
