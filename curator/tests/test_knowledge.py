"""
Tests for the knowledge layer: context loading, tag reconciliation,
feedback processing and article indexing.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from conftest import KeywordEmbedder, make_gateway, seed_articles


# ============================================================================
# Context loader
# ============================================================================

class TestKnowledgeContextLoader:
    @pytest.mark.asyncio
    async def test_loads_registry_collections_and_stats(self, store):
        from curator.knowledge import KnowledgeContextLoader

        await seed_articles(store, [
            {"url": "https://example.com/1", "scalar_score": 70, "tags": ["AI", "Agents"]},
            {"url": "https://example.com/2", "tags": ["AI"]},
        ])
        await store.create_collection("Research")

        context = await KnowledgeContextLoader(store).load()

        assert [t.canonical_name for t in context.tag_registry] == ["AI", "Agents"]
        assert [c.name for c in context.collections] == ["Research"]
        assert context.feedback_stats.total_records == 1

    @pytest.mark.asyncio
    async def test_memoized_until_invalidated(self):
        from curator.common.schemas import FeedbackStats
        from curator.knowledge import KnowledgeContextLoader

        store = Mock()
        store.list_active_collections = AsyncMock(return_value=[])
        store.list_active_tags = AsyncMock(return_value=[])
        store.aggregate_feedback = AsyncMock(return_value=FeedbackStats())
        loader = KnowledgeContextLoader(store)

        first, second = await asyncio.gather(loader.load(), loader.load())
        third = await loader.load()

        assert first is second is third
        assert store.list_active_tags.await_count == 1

        loader.invalidate()
        assert not loader.is_loaded
        await loader.load()
        assert store.list_active_tags.await_count == 2

    @pytest.mark.asyncio
    async def test_prompt_summary_mentions_interests(self, store):
        from curator.common.schemas import FeedbackEvent, FeedbackKind
        from curator.knowledge import KnowledgeContextLoader

        (record,) = await seed_articles(store, [
            {"url": "https://example.com/1", "scalar_score": 80, "tags": ["Security"]},
        ])
        await store.append_feedback(FeedbackEvent(record_id=record.id, kind=FeedbackKind.UPVOTE))

        summary = (await KnowledgeContextLoader(store).load()).prompt_summary()

        assert "Favourite topics: Security" in summary
        assert "Average score: 80.0" in summary


# ============================================================================
# Tag reconciler
# ============================================================================

class TestKnowledgeTagReconciler:
    @pytest.fixture
    def reconciler(self, store):
        from curator.knowledge import KnowledgeContextLoader, KnowledgeTagReconciler

        return KnowledgeTagReconciler(KnowledgeContextLoader(store), store)

    @pytest.mark.asyncio
    async def test_matches_existing_tag_case_insensitively(self, store, reconciler):
        existing, _ = await store.create_tag("Machine Learning")

        (assignment,) = await reconciler.reconcile(["machine learning "])

        assert assignment.tag_id == existing.id
        assert assignment.canonical_name == "Machine Learning"
        assert assignment.is_new is False

    @pytest.mark.asyncio
    async def test_batch_variants_create_one_tag(self, store, reconciler):
        assignments = await reconciler.reconcile(["Deep Learning", "deep learning", "DEEP LEARNING", "", "  "])

        assert len(assignments) == 1
        assert assignments[0].is_new is True
        assert assignments[0].canonical_name == "Deep Learning"
        assert len(await store.list_active_tags()) == 1

    @pytest.mark.asyncio
    async def test_new_tag_is_visible_later_in_session(self, store, reconciler):
        (first,) = await reconciler.reconcile(["Quantum"])
        (second,) = await reconciler.reconcile(["quantum"])

        assert first.is_new is True
        assert second.is_new is False
        assert second.tag_id == first.tag_id

    @pytest.mark.asyncio
    async def test_first_seen_order(self, reconciler):
        assignments = await reconciler.reconcile(["Rust", "AI", "rust"])

        assert [a.canonical_name for a in assignments] == ["Rust", "AI"]

    @pytest.mark.asyncio
    async def test_store_failure_drops_only_that_tag(self, caplog):
        import logging
        from curator.common.schemas import KnowledgeContext, Tag
        from curator.knowledge import KnowledgeTagReconciler

        context = Mock()
        context.load = AsyncMock(return_value=KnowledgeContext())
        store = Mock()

        async def create_tag(name):
            if name == "Broken":
                raise RuntimeError("disk full")
            return Tag(id=7, canonical_name=name), True

        store.create_tag = create_tag
        reconciler = KnowledgeTagReconciler(context, store)

        with caplog.at_level(logging.WARNING, logger="curator.knowledge.tag_reconciler"):
            assignments = await reconciler.reconcile(["Broken", "Fine"])

        assert [a.canonical_name for a in assignments] == ["Fine"]
        assert "Failed to create tag" in caplog.text

    @pytest.mark.asyncio
    async def test_assign_links_tags(self, store, reconciler):
        (record,) = await seed_articles(store, [{"url": "https://example.com/1"}])

        await reconciler.assign(record.id, ["Python", "python", "Databases"])

        names = [t.canonical_name for t in (await store.get_record(record.id)).tags]
        assert names == ["Databases", "Python"]


# ============================================================================
# Feedback processor
# ============================================================================

class TestFeedbackProcessor:
    @pytest.fixture
    def processor(self, store):
        from curator.knowledge import FeedbackProcessor, KnowledgeContextLoader, KnowledgeTagReconciler

        reconciler = KnowledgeTagReconciler(KnowledgeContextLoader(store), store)
        return FeedbackProcessor(store, reconciler)

    def test_adjusted_score_rules(self):
        from curator.common.schemas import FeedbackKind, UserFeedback
        from curator.knowledge.feedback import adjusted_score

        assert adjusted_score(None, UserFeedback(record_id=1, kind=FeedbackKind.UPVOTE)) == 60
        assert adjusted_score(95, UserFeedback(record_id=1, kind=FeedbackKind.UPVOTE)) == 100
        assert adjusted_score(5, UserFeedback(record_id=1, kind=FeedbackKind.DOWNVOTE)) == 1
        assert adjusted_score(40, UserFeedback(record_id=1, kind=FeedbackKind.ARCHIVED)) is None
        assert adjusted_score(40, UserFeedback(record_id=1, kind=FeedbackKind.DOWNVOTE, score_override=250)) == 100

    @pytest.mark.asyncio
    async def test_upvote_raises_score_and_logs_event(self, store, processor):
        from curator.common.schemas import FeedbackKind, UserFeedback

        (record,) = await seed_articles(store, [{"url": "https://example.com/1", "scalar_score": 70, "title": "Keep"}])

        updated = await processor.process(UserFeedback(record_id=record.id, kind=FeedbackKind.UPVOTE))

        assert updated.scalar_score == 80
        assert updated.title == "Keep"
        stats = await store.aggregate_feedback()
        assert stats.kind_counts == {"upvote": 1}

    @pytest.mark.asyncio
    async def test_saved_marks_read(self, store, processor):
        from curator.common.schemas import ArticleStatus, FeedbackKind, UserFeedback

        (record,) = await seed_articles(store, [{"url": "https://example.com/1", "status": ArticleStatus.UNREAD}])

        updated = await processor.process(UserFeedback(record_id=record.id, kind=FeedbackKind.SAVED))

        assert updated.status == ArticleStatus.READ
        assert updated.scalar_score == 55

    @pytest.mark.asyncio
    async def test_tags_and_collection_applied(self, store, processor):
        from curator.common.schemas import FeedbackKind, UserFeedback

        (record,) = await seed_articles(store, [{"url": "https://example.com/1"}])
        collection = await store.create_collection("Security reading")

        updated = await processor.process(UserFeedback(
            record_id=record.id,
            kind=FeedbackKind.TAG_ADDED,
            tags=["Security", "security"],
            collection_id=collection.id,
            notes="threat models",
        ))

        assert [t.canonical_name for t in updated.tags] == ["Security"]
        stats = await store.aggregate_feedback()
        assert [(c.name, c.count) for c in stats.top_collections] == [("Security reading", 1)]

    @pytest.mark.asyncio
    async def test_tag_removed_unlinks_without_creating(self, store, processor):
        from curator.common.schemas import FeedbackKind, UserFeedback

        (record,) = await seed_articles(store, [{"url": "https://example.com/1", "tags": ["AI", "Crypto"]}])

        updated = await processor.process(UserFeedback(
            record_id=record.id, kind=FeedbackKind.TAG_REMOVED, tags=["crypto", "Gardening"],
        ))

        assert [t.canonical_name for t in updated.tags] == ["AI"]
        assert [t.canonical_name for t in await store.list_active_tags()] == ["AI", "Crypto"]

    @pytest.mark.asyncio
    async def test_tag_removed_on_untagged_article_links_nothing(self, store, processor):
        from curator.common.schemas import FeedbackKind, UserFeedback

        (record,) = await seed_articles(store, [{"url": "https://example.com/1"}])

        updated = await processor.process(UserFeedback(
            record_id=record.id, kind=FeedbackKind.TAG_REMOVED, tags=["Crypto"],
        ))

        assert updated.tags == []

    @pytest.mark.asyncio
    async def test_unknown_collection_rejected_before_any_write(self, store, processor):
        from curator.common.errors import CollectionNotFoundError
        from curator.common.schemas import FeedbackKind, UserFeedback

        (record,) = await seed_articles(store, [{"url": "https://example.com/1", "scalar_score": 70}])

        with pytest.raises(CollectionNotFoundError, match="Collection 999 not found"):
            await processor.process(UserFeedback(
                record_id=record.id, kind=FeedbackKind.SAVED, tags=["Security"], collection_id=999,
            ))

        stored = await store.get_record(record.id)
        assert stored.scalar_score == 70
        assert stored.tags == []
        stats = await store.aggregate_feedback()
        assert stats.kind_counts == {}
        assert stats.top_collections == []

    @pytest.mark.asyncio
    async def test_missing_record_raises(self, processor):
        from curator.common.errors import RecordNotFoundError
        from curator.common.schemas import FeedbackKind, UserFeedback

        with pytest.raises(RecordNotFoundError, match="Article 42 not found"):
            await processor.process(UserFeedback(record_id=42, kind=FeedbackKind.UPVOTE))


# ============================================================================
# Indexer
# ============================================================================

class TestArticleIndexer:
    @pytest.mark.asyncio
    async def test_index_record_writes_metadata(self, store, index):
        from curator.knowledge import ArticleIndexer

        (record,) = await seed_articles(store, [
            {"url": "https://example.com/ai", "title": "AI agents", "tags": ["AI"]},
        ])

        assert await ArticleIndexer(make_gateway(), index).index_record(record) is True

        (match,) = await index.query(KeywordEmbedder().embed_single("ai agents"), 5)
        assert match.external_id == f"article-{record.id}"
        assert match.metadata == {"recordId": record.id, "url": "https://example.com/ai", "title": "AI agents"}

    @pytest.mark.asyncio
    async def test_embed_failure_returns_false(self, store, index, caplog):
        import logging
        from curator.knowledge import ArticleIndexer

        (record,) = await seed_articles(store, [{"url": "https://example.com/ai", "title": "AI"}])
        gateway = make_gateway(embedder=KeywordEmbedder(available=False))

        with caplog.at_level(logging.WARNING, logger="curator.knowledge.indexer"):
            assert await ArticleIndexer(gateway, index).index_record(record) is False

        assert len(index) == 0
        assert "Could not index article" in caplog.text

    def test_index_text_falls_back_to_url(self):
        from curator.common.schemas import ArticleRecord
        from curator.knowledge.indexer import index_text

        assert index_text(ArticleRecord(id=1, url="https://example.com/x")) == "https://example.com/x"
