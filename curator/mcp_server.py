"""
Curator MCP Server

Exposes the Curator core as MCP tools over stdio:
answer_query, search, reconcile_tags, load_context, re_evaluate,
batch_re_evaluate, record_feedback, index_record, list_collections,
create_collection, list_articles.

Every tool returns ``{"ok": bool, ...}``; failures carry ``"error"``.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field, ValidationError

from .common.config import load_config
from .common.errors import CuratorError, RecordNotFoundError
from .common.schemas import ArticleStatus, FeedbackKind, UserFeedback
from .session import CuratorSession

logger = logging.getLogger("curator.mcp")

SessionFactory = Callable[[], Awaitable[CuratorSession]]

MAX_FEED_LIMIT = 200


class MCPServerApp:
    """
    MCP application around one ``CuratorSession``.

    The session is built lazily on the first tool call so that the store's
    async engine lives on the server's event loop.
    """

    def __init__(
        self,
        session: Optional[CuratorSession] = None,
        session_factory: Optional[SessionFactory] = None,
        mcp_server_name: str = "curator",
    ) -> None:
        if session is None and session_factory is None:
            raise ValueError("MCPServerApp needs a session or a session_factory")
        self._session = session
        self._session_factory = session_factory
        self._session_lock = asyncio.Lock()
        self.mcp = FastMCP(name=mcp_server_name)
        self._register_tools()

    async def session(self) -> CuratorSession:
        if self._session is not None:
            return self._session
        async with self._session_lock:
            if self._session is None:
                self._session = await self._session_factory()
        return self._session

    def _register_tools(self) -> None:

        # ---------- MCP Tools: Answer Query ---------- #
        @self.mcp.tool(
            name="answer_query",
            description=(
                "Answer a question from the user's saved articles. Returns a structured answer "
                "with citations (article ids), a confidence score 0-100, three follow-up "
                "questions, and the retrieved articles in relevance order."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_answer_query(
            question: Annotated[str, Field(description="natural-language question")],
            limit: Annotated[int, Field(description="number of articles to retrieve (1-50)")] = 10,
        ) -> Dict[str, Any]:
            session = await self.session()
            response = await session.answer_query(question, limit)
            result = response.to_dict()
            result["ok"] = response.success
            return result

        # ---------- MCP Tools: Reconcile Tags ---------- #
        @self.mcp.tool(
            name="reconcile_tags",
            description=(
                "Map suggested tag names onto canonical tags, creating new tags only when "
                "no case-insensitive match exists."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_reconcile_tags(
            names: Annotated[List[str], Field(description="suggested tag names, any casing")],
            record_id: Annotated[Optional[int], Field(description="optional article id to link the tags to")] = None,
        ) -> Dict[str, Any]:
            session = await self.session()
            try:
                if record_id is not None:
                    if await session.store.get_record(record_id) is None:
                        raise RecordNotFoundError(record_id)
                    assignments = await session.tags.assign(record_id, names)
                else:
                    assignments = await session.reconcile_tags(names)
            except CuratorError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, "tags": [a.to_dict() for a in assignments]}

        # ---------- MCP Tools: Load Context ---------- #
        @self.mcp.tool(
            name="load_context",
            description=(
                "Show the session knowledge context: active collections, the tag registry "
                "by usage, and aggregated feedback statistics."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_load_context(
            refresh: Annotated[bool, Field(description="drop the cached snapshot and reload")] = False,
        ) -> Dict[str, Any]:
            session = await self.session()
            if refresh:
                session.context.invalidate()
            context = await session.load_context()
            return {"ok": True, "context": context.model_dump(mode="json")}

        # ---------- MCP Tools: Re-Evaluate ---------- #
        @self.mcp.tool(
            name="re_evaluate",
            description=(
                "Re-score one article with stricter, feedback-informed criteria. "
                "Downgrades are written back; low-confidence results are flagged for review."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_re_evaluate(
            record_id: Annotated[int, Field(description="article id")],
        ) -> Dict[str, Any]:
            session = await self.session()
            try:
                result = await session.re_evaluate(record_id)
            except CuratorError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, **result.to_dict()}

        # ---------- MCP Tools: Batch Re-Evaluate ---------- #
        @self.mcp.tool(
            name="batch_re_evaluate",
            description="Re-evaluate the most recent unread articles one at a time.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_batch_re_evaluate(
            limit: Annotated[int, Field(description="number of unread articles (1-50)")] = 10,
        ) -> Dict[str, Any]:
            if isinstance(limit, bool) or not 1 <= limit <= 50:
                return {"ok": False, "error": "limit must be between 1 and 50"}
            session = await self.session()
            batch = await session.batch_re_evaluate(limit)
            return {"ok": True, **batch.to_dict()}

        # ---------- MCP Tools: Record Feedback ---------- #
        @self.mcp.tool(
            name="record_feedback",
            description=(
                "Record the user's reaction to an article (upvote, downvote, saved, archived, "
                "tag_added, tag_removed) and apply score, status, tag and collection changes."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_record_feedback(
            record_id: Annotated[int, Field(description="article id")],
            kind: Annotated[str, Field(description="feedback kind")],
            score_override: Annotated[Optional[int], Field(description="manual score 1-100")] = None,
            tags: Annotated[Optional[List[str]], Field(description="tags added, or removed for tag_removed")] = None,
            collection_id: Annotated[Optional[int], Field(description="collection to add the article to")] = None,
            notes: Annotated[Optional[str], Field(description="why the article fits the collection")] = None,
        ) -> Dict[str, Any]:
            try:
                feedback = UserFeedback(
                    record_id=record_id,
                    kind=FeedbackKind(kind),
                    score_override=score_override,
                    tags=tags or [],
                    collection_id=collection_id,
                    notes=notes,
                )
            except (ValueError, ValidationError) as e:
                return {"ok": False, "error": f"Invalid feedback: {e}"}

            session = await self.session()
            try:
                record = await session.record_feedback(feedback)
            except CuratorError as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, "record": record.model_dump(mode="json")}

        # ---------- MCP Tools: Index Record ---------- #
        @self.mcp.tool(
            name="index_record",
            description="Embed an article and add it to the semantic search index.",
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_index_record(
            record_id: Annotated[int, Field(description="article id")],
        ) -> Dict[str, Any]:
            session = await self.session()
            record = await session.store.get_record(record_id)
            if record is None:
                return {"ok": False, "error": str(RecordNotFoundError(record_id))}
            if not await session.index_record(record):
                return {"ok": False, "error": f"Article {record_id} could not be indexed"}
            return {"ok": True, "record_id": record_id}

        # ---------- MCP Tools: Search ---------- #
        @self.mcp.tool(
            name="search",
            description=(
                "Semantic search over saved articles without answer synthesis. Returns matches "
                "in relevance order, each with its stored article (null when the index is stale)."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_search(
            query: Annotated[str, Field(description="search text")],
            limit: Annotated[int, Field(description="number of matches (1-50)")] = 10,
        ) -> Dict[str, Any]:
            session = await self.session()
            try:
                hits = await session.search(query, limit)
            except CuratorError as e:
                return {"ok": False, "error": str(e)}
            results = [
                {**ref.to_dict(), "article": record.model_dump(mode="json") if record else None}
                for ref, record in hits
            ]
            return {"ok": True, "query": query.strip(), "count": len(results), "results": results}

        # ---------- MCP Tools: Collections ---------- #
        @self.mcp.tool(
            name="list_collections",
            description="List active collections, newest first, with their article counts.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_collections() -> Dict[str, Any]:
            session = await self.session()
            collections = await session.store.list_active_collections()
            return {"ok": True, "collections": [c.model_dump(mode="json") for c in collections]}

        @self.mcp.tool(
            name="create_collection",
            description=(
                "Create a collection. Collections describe the user's interests and can be "
                "targeted by record_feedback."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False)
        )
        async def tool_create_collection(
            name: Annotated[str, Field(description="collection name (unique)")],
            description: Annotated[Optional[str], Field(description="what belongs in the collection")] = None,
            color: Annotated[Optional[str], Field(description="display color, e.g. #ff6b6b")] = None,
        ) -> Dict[str, Any]:
            session = await self.session()
            try:
                collection = await session.store.create_collection(name, description=description, color=color)
            except (CuratorError, ValueError) as e:
                return {"ok": False, "error": str(e)}
            return {"ok": True, "collection": collection.model_dump(mode="json")}

        # ---------- MCP Tools: List Articles ---------- #
        @self.mcp.tool(
            name="list_articles",
            description=(
                "Reading feed: articles with a given status (default unread), highest score "
                "first, then newest. Optionally filtered by collection, tag or minimum score."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_articles(
            status: Annotated[str, Field(description="processing, unread, read, archived or error")] = "unread",
            limit: Annotated[int, Field(description="page size (1-200)")] = 50,
            offset: Annotated[int, Field(description="pagination offset")] = 0,
            collection_id: Annotated[Optional[int], Field(description="only articles in this collection")] = None,
            tag: Annotated[Optional[str], Field(description="only articles with this tag, any casing")] = None,
            min_score: Annotated[Optional[int], Field(description="minimum quality ranking")] = None,
        ) -> Dict[str, Any]:
            try:
                article_status = ArticleStatus(status)
            except ValueError:
                return {"ok": False, "error": f"Unknown status: {status}"}
            if isinstance(limit, bool) or not 1 <= limit <= MAX_FEED_LIMIT:
                return {"ok": False, "error": f"limit must be between 1 and {MAX_FEED_LIMIT}"}
            if offset < 0:
                return {"ok": False, "error": "offset must not be negative"}

            session = await self.session()
            records = await session.store.list_feed(
                status=article_status,
                collection_id=collection_id,
                tag=tag,
                min_score=min_score,
                limit=limit,
                offset=offset,
            )
            return {
                "ok": True,
                "count": len(records),
                "offset": offset,
                "articles": [r.model_dump(mode="json") for r in records],
            }

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Curator MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "curator"),
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override the configured database URL.",
    )
    parser.add_argument(
        "--no-reindex",
        action="store_true",
        help="Skip embedding stored articles into the vector index at startup.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("CURATOR_LOG_LEVEL", "INFO"),
        help="Logging level (stdout is reserved for the MCP transport).",
    )
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    if args.database_url:
        config.store.database_url = args.database_url

    async def _build_session() -> CuratorSession:
        session = await CuratorSession.from_config(config)
        if not args.no_reindex:
            await session.index_all()
        return session

    app = MCPServerApp(session_factory=_build_session, mcp_server_name=args.server_name)

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    logger.info("Starting Curator MCP server %s", args.server_name)
    app.run()


if __name__ == "__main__":
    main()
