"""
Tests for the Curator MCP tools, driven through an in-process fastmcp Client.
"""

import pytest
import pytest_asyncio

from fastmcp import Client

from conftest import KeywordEmbedder, ScriptedLLM, analysis_json, answer_json, make_gateway, seed_articles


def tool_data(result):
    return getattr(result, "data", None) or getattr(result, "structured", None) \
        or getattr(result, "structured_content", None)


@pytest.fixture
def reasoning():
    return ScriptedLLM(default="ai agent trends")


@pytest.fixture
def structuring():
    return ScriptedLLM()


@pytest_asyncio.fixture
async def session(store, index, reasoning, structuring):
    from curator.session import CuratorSession

    return CuratorSession(store, index, make_gateway(reasoning, structuring))


@pytest.fixture
def mcp_server(session):
    from curator.mcp_server import MCPServerApp

    return MCPServerApp(session=session, mcp_server_name="test-curator").mcp


@pytest.mark.asyncio
async def test_tools_registered(mcp_server):
    async with Client(mcp_server) as client:
        names = {t.name for t in await client.list_tools()}

    assert names == {
        "answer_query", "search", "reconcile_tags", "load_context", "re_evaluate",
        "batch_re_evaluate", "record_feedback", "index_record",
        "list_collections", "create_collection", "list_articles",
    }


def test_app_requires_session_source():
    from curator.mcp_server import MCPServerApp

    with pytest.raises(ValueError):
        MCPServerApp()


@pytest.mark.asyncio
async def test_session_factory_runs_once():
    from curator.mcp_server import MCPServerApp

    built = []

    async def factory():
        built.append(object())
        return built[-1]

    app = MCPServerApp(session_factory=factory)

    assert await app.session() is await app.session()
    assert len(built) == 1


# ----------- Answer Query ----------- #

@pytest.mark.asyncio
async def test_answer_query_end_to_end(mcp_server, session, store, structuring):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a", "title": "AI agent trends", "tags": ["AI"]}])
    assert await session.index_all() == 1
    structuring.replies.append(answer_json(cited=[record.id]))

    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("answer_query", {"question": "What are the AI trends?", "limit": 5}))

    assert data["ok"] is True
    assert data["answer"]["citedRecordIds"] == [record.id]
    assert data["references"][0]["record_id"] == record.id
    assert data["states"][-1] == "done"


@pytest.mark.asyncio
async def test_answer_query_rejects_bad_limit(mcp_server):
    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("answer_query", {"question": "ai?", "limit": 99}))

    assert data["ok"] is False
    assert "limit" in data["error"]
    assert data["states"] == ["failed"]


# ----------- Tags and Context ----------- #

@pytest.mark.asyncio
async def test_reconcile_tags_and_load_context(mcp_server, store):
    await store.create_tag("Machine Learning")

    async with Client(mcp_server) as client:
        tags = tool_data(await client.call_tool("reconcile_tags", {"names": ["machine learning", "Robotics"]}))
        context = tool_data(await client.call_tool("load_context", {}))

    assert tags["ok"] is True
    assert [(t["canonical_name"], t["is_new"]) for t in tags["tags"]] == [
        ("Machine Learning", False), ("Robotics", True),
    ]
    names = [t["canonical_name"] for t in context["context"]["tag_registry"]]
    assert names == ["Machine Learning", "Robotics"]


@pytest.mark.asyncio
async def test_reconcile_tags_for_missing_record(mcp_server):
    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("reconcile_tags", {"names": ["AI"], "record_id": 55}))

    assert data["ok"] is False
    assert "Article 55 not found" in data["error"]


# ----------- Re-Evaluation ----------- #

@pytest.mark.asyncio
async def test_re_evaluate_downgrade(mcp_server, store, structuring):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a", "scalar_score": 90}])
    structuring.replies.append(analysis_json(60, 0.9))

    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("re_evaluate", {"record_id": record.id}))

    assert data["ok"] is True
    assert data["should_downgrade"] is True
    assert (await store.get_record(record.id)).scalar_score == 60


@pytest.mark.asyncio
async def test_re_evaluate_missing_record(mcp_server):
    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("re_evaluate", {"record_id": 404}))

    assert data == {"ok": False, "error": "Article 404 not found"}


@pytest.mark.asyncio
async def test_batch_re_evaluate_limit_checked(mcp_server):
    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("batch_re_evaluate", {"limit": 0}))

    assert data["ok"] is False


# ----------- Feedback and Indexing ----------- #

@pytest.mark.asyncio
async def test_record_feedback(mcp_server, store):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a", "scalar_score": 70}])

    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool(
            "record_feedback", {"record_id": record.id, "kind": "upvote", "tags": ["Security"]},
        ))

    assert data["ok"] is True
    assert data["record"]["scalar_score"] == 80
    assert [t["canonical_name"] for t in data["record"]["tags"]] == ["Security"]


@pytest.mark.asyncio
async def test_record_feedback_unknown_kind(mcp_server):
    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("record_feedback", {"record_id": 1, "kind": "love"}))

    assert data["ok"] is False
    assert "Invalid feedback" in data["error"]


@pytest.mark.asyncio
async def test_index_record(mcp_server, store, index):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a", "title": "Rust"}])

    async with Client(mcp_server) as client:
        ok = tool_data(await client.call_tool("index_record", {"record_id": record.id}))
        missing = tool_data(await client.call_tool("index_record", {"record_id": 999}))

    assert ok == {"ok": True, "record_id": record.id}
    assert len(index) == 1
    assert missing["ok"] is False


@pytest.mark.asyncio
async def test_record_feedback_unknown_collection(mcp_server, store):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a", "scalar_score": 70}])

    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool(
            "record_feedback", {"record_id": record.id, "kind": "saved", "collection_id": 999},
        ))

    assert data == {"ok": False, "error": "Collection 999 not found"}
    assert (await store.get_record(record.id)).scalar_score == 70


@pytest.mark.asyncio
async def test_record_feedback_tag_removed(mcp_server, store):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a", "tags": ["Crypto", "AI"]}])

    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool(
            "record_feedback", {"record_id": record.id, "kind": "tag_removed", "tags": ["CRYPTO"]},
        ))

    assert data["ok"] is True
    assert [t["canonical_name"] for t in data["record"]["tags"]] == ["AI"]


# ----------- Search ----------- #

@pytest.mark.asyncio
async def test_search_returns_ranked_articles_without_synthesis(mcp_server, session, store, index, structuring):
    rust, _cooking = await seed_articles(store, [
        {"url": "https://example.com/rust", "title": "Async Rust in practice", "tags": ["Rust"]},
        {"url": "https://example.com/cooking", "title": "Weeknight cooking"},
    ])
    assert await session.index_all() == 2
    await index.upsert("article-404", KeywordEmbedder().embed_single("travel"), {"recordId": 404})

    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("search", {"query": "  rust async  ", "limit": 3}))

    assert data["ok"] is True
    assert data["query"] == "rust async"
    assert data["count"] == len(data["results"])
    top = data["results"][0]
    assert top["record_id"] == rust.id
    assert top["article"]["title"] == "Async Rust in practice"
    assert [t["canonical_name"] for t in top["article"]["tags"]] == ["Rust"]
    scores = [r["similarity_score"] for r in data["results"]]
    assert scores == sorted(scores, reverse=True)
    assert {r["record_id"]: r["article"] for r in data["results"]}[404] is None
    assert structuring.calls == []


@pytest.mark.asyncio
async def test_search_rejects_blank_query(mcp_server):
    async with Client(mcp_server) as client:
        data = tool_data(await client.call_tool("search", {"query": "   "}))

    assert data["ok"] is False
    assert "non-empty" in data["error"]


# ----------- Collections and Feed ----------- #

@pytest.mark.asyncio
async def test_create_and_list_collections(mcp_server, store):
    (record,) = await seed_articles(store, [{"url": "https://example.com/a"}])

    async with Client(mcp_server) as client:
        created = tool_data(await client.call_tool(
            "create_collection", {"name": "Rust Performance", "color": "#ff6b6b"},
        ))
        duplicate = tool_data(await client.call_tool("create_collection", {"name": "Rust Performance"}))
        await client.call_tool(
            "record_feedback",
            {"record_id": record.id, "kind": "saved", "collection_id": created["collection"]["id"]},
        )
        listed = tool_data(await client.call_tool("list_collections", {}))

    assert created["ok"] is True
    assert created["collection"]["color"] == "#ff6b6b"
    assert duplicate["ok"] is False
    assert "already exists" in duplicate["error"]
    assert [(c["name"], c["article_count"]) for c in listed["collections"]] == [("Rust Performance", 1)]


@pytest.mark.asyncio
async def test_list_articles_feed(mcp_server, store):
    from curator.common.schemas import ArticleStatus

    low, high, _read = await seed_articles(store, [
        {"url": "https://example.com/low", "scalar_score": 30, "status": ArticleStatus.UNREAD, "tags": ["AI"]},
        {"url": "https://example.com/high", "scalar_score": 90, "status": ArticleStatus.UNREAD, "tags": ["AI"]},
        {"url": "https://example.com/read", "scalar_score": 95, "status": ArticleStatus.READ},
    ])

    async with Client(mcp_server) as client:
        feed = tool_data(await client.call_tool("list_articles", {}))
        filtered = tool_data(await client.call_tool("list_articles", {"tag": "ai", "min_score": 50}))
        bad_status = tool_data(await client.call_tool("list_articles", {"status": "starred"}))
        bad_limit = tool_data(await client.call_tool("list_articles", {"limit": 500}))

    assert feed["ok"] is True
    assert [a["id"] for a in feed["articles"]] == [high.id, low.id]
    assert [a["id"] for a in filtered["articles"]] == [high.id]
    assert bad_status == {"ok": False, "error": "Unknown status: starred"}
    assert bad_limit["ok"] is False
