"""
Structured Record Store

SQLAlchemy async Core implementation of ``RecordStore``. Works against any
async URL; the default is a local SQLite file via aiosqlite.

Tag names are unique case-insensitively through the ``name_key`` column
(trimmed, lower-cased name). Creation is an insert that ignores conflicts,
so concurrent sessions creating the same tag converge on one row.
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Index,
    func,
    select,
    update,
    distinct,
    case,
    delete,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from .errors import CollectionExistsError
from .schemas import (
    ArticleRecord,
    ArticleStatus,
    ArticleUpdate,
    Collection,
    FeedbackEvent,
    FeedbackKind,
    FeedbackStats,
    NamedCount,
    Tag,
)

logger = logging.getLogger("curator.common.store")

metadata = MetaData()

articles = Table(
    "articles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("url", Text, nullable=False, unique=True),
    Column("title", Text),
    Column("description", Text),
    Column("author", Text),
    Column("published_date", Text),
    Column("quality_label", Text),
    Column("scalar_score", Integer),
    Column("status", String(16), nullable=False, default=ArticleStatus.PROCESSING.value),
    Column("created_at", Float, nullable=False),
    Column("updated_at", Float, nullable=False),
    Index("idx_articles_status", "status"),
    Index("idx_articles_created_at", "created_at"),
)

article_tags = Table(
    "article_tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False),
    Column("name_key", Text, nullable=False, unique=True),
    Column("description", Text),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", Float, nullable=False),
)

article_tag_map = Table(
    "article_tag_map",
    metadata,
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("tag_id", Integer, ForeignKey("article_tags.id", ondelete="CASCADE"), nullable=False),
    Column("confidence", Float, default=1.0),
    Column("created_at", Float, nullable=False),
    UniqueConstraint("article_id", "tag_id", name="uq_article_tag"),
    Index("idx_article_tag_map_tag", "tag_id"),
)

collections = Table(
    "collections",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
    Column("description", Text),
    Column("color", Text),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", Float, nullable=False),
    Column("updated_at", Float, nullable=False),
)

collection_items = Table(
    "collection_items",
    metadata,
    Column("collection_id", Integer, ForeignKey("collections.id", ondelete="CASCADE"), nullable=False),
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("notes", Text),
    Column("created_at", Float, nullable=False),
    UniqueConstraint("collection_id", "article_id", name="uq_collection_item"),
)

article_feedback = Table(
    "article_feedback",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
    Column("kind", String(16), nullable=False),
    Column("payload", Text),
    Column("created_at", Float, nullable=False),
    Index("idx_article_feedback_article", "article_id"),
)

_RECORD_FIELDS = ("title", "description", "author", "published_date", "quality_label", "scalar_score", "status")


def tag_key(name: str) -> str:
    """Comparison key for tag names."""
    return name.strip().lower()


def _ts(value: Optional[float]) -> datetime:
    return datetime.fromtimestamp(value or 0.0, tz=timezone.utc)


def _row_to_tag(row, usage_count: int = 0) -> Tag:
    return Tag(
        id=row.id,
        canonical_name=row.name,
        description=row.description,
        active=bool(row.active),
        usage_count=usage_count,
    )


def _row_to_collection(row, article_count: int = 0) -> Collection:
    return Collection(
        id=row.id,
        name=row.name,
        description=row.description,
        color=row.color,
        active=bool(row.active),
        article_count=article_count,
        created_at=_ts(row.created_at),
        updated_at=_ts(row.updated_at),
    )


def _row_to_record(row, tags: Optional[List[Tag]] = None) -> ArticleRecord:
    score = row.scalar_score
    return ArticleRecord(
        id=row.id,
        url=row.url,
        title=row.title,
        description=row.description,
        author=row.author,
        published_date=row.published_date,
        scalar_score=score if score else None,
        quality_label=row.quality_label,
        status=ArticleStatus(row.status),
        tags=tags or [],
        created_at=_ts(row.created_at),
        updated_at=_ts(row.updated_at),
    )


class SQLRecordStore:
    """``RecordStore`` over an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._insert = postgresql.insert if engine.dialect.name == "postgresql" else sqlite.insert

    @classmethod
    def from_url(cls, database_url: str) -> "SQLRecordStore":
        """Create a store; SQLite file parents are created, in-memory DBs share one connection."""
        url = make_url(database_url)
        kwargs: Dict[str, Any] = {"future": True}
        if url.get_backend_name() == "sqlite":
            database = url.database or ""
            if database in ("", ":memory:"):
                kwargs["poolclass"] = StaticPool
            else:
                Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        return cls(create_async_engine(database_url, **kwargs))

    async def init_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    async def _tags_for(self, conn, record_id: int) -> List[Tag]:
        result = await conn.execute(
            select(article_tags)
            .join(article_tag_map, article_tag_map.c.tag_id == article_tags.c.id)
            .where(article_tag_map.c.article_id == record_id)
            .order_by(article_tags.c.name)
        )
        return [_row_to_tag(row) for row in result.all()]

    async def get_record(self, record_id: int) -> Optional[ArticleRecord]:
        async with self._engine.connect() as conn:
            result = await conn.execute(select(articles).where(articles.c.id == record_id))
            row = result.first()
            if row is None:
                return None
            return _row_to_record(row, await self._tags_for(conn, record_id))

    async def create_record(self, url: str, **fields: Any) -> ArticleRecord:
        unknown = set(fields) - set(_RECORD_FIELDS)
        if unknown:
            raise ValueError(f"Unknown article fields: {sorted(unknown)}")
        values = {k: v for k, v in fields.items() if v is not None}
        if "status" in values:
            values["status"] = ArticleStatus(values["status"]).value
        now = time.time()
        async with self._engine.begin() as conn:
            result = await conn.execute(
                articles.insert().values(url=url, created_at=now, updated_at=now, **values)
            )
            record_id = result.inserted_primary_key[0]
        logger.info("Created article %s for %s", record_id, url)
        return await self.get_record(record_id)

    async def list_records(
        self,
        *,
        status: Optional[ArticleStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ArticleRecord]:
        """Records newest-first, optionally filtered by status."""
        stmt = select(articles).order_by(articles.c.created_at.desc(), articles.c.id.desc())
        if status is not None:
            stmt = stmt.where(articles.c.status == ArticleStatus(status).value)
        stmt = stmt.limit(limit).offset(offset)
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
            return [_row_to_record(row, await self._tags_for(conn, row.id)) for row in rows]

    async def list_feed(
        self,
        *,
        status: Optional[ArticleStatus] = ArticleStatus.UNREAD,
        collection_id: Optional[int] = None,
        tag: Optional[str] = None,
        min_score: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ArticleRecord]:
        """
        Reading feed: highest score first, then newest.

        Unscored articles sort after scored ones. ``tag`` matches
        case-insensitively.
        """
        stmt = select(articles)
        if status is not None:
            stmt = stmt.where(articles.c.status == ArticleStatus(status).value)
        if min_score:
            stmt = stmt.where(articles.c.scalar_score >= min_score)
        if collection_id is not None:
            members = select(collection_items.c.article_id).where(collection_items.c.collection_id == collection_id)
            stmt = stmt.where(articles.c.id.in_(members))
        if tag:
            tagged = (
                select(article_tag_map.c.article_id)
                .join(article_tags, article_tags.c.id == article_tag_map.c.tag_id)
                .where(article_tags.c.name_key == tag_key(tag))
            )
            stmt = stmt.where(articles.c.id.in_(tagged))
        stmt = (
            stmt.order_by(
                articles.c.scalar_score.desc().nullslast(),
                articles.c.created_at.desc(),
                articles.c.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
            return [_row_to_record(row, await self._tags_for(conn, row.id)) for row in rows]

    async def update_record(self, record_id: int, changes: ArticleUpdate) -> Optional[ArticleRecord]:
        """
        Apply a partial update in one statement.

        Each column is written as COALESCE(new, existing), so a field the
        caller left unset keeps its stored value.
        """
        supplied = changes.supplied()
        values: Dict[str, Any] = {
            name: func.coalesce(supplied.get(name), articles.c[name])
            for name in _RECORD_FIELDS
            if name in supplied
        }
        values["updated_at"] = time.time()
        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(articles).where(articles.c.id == record_id).values(**values)
            )
            if result.rowcount == 0:
                return None
        return await self.get_record(record_id)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def list_active_tags(self) -> List[Tag]:
        """Active tags by descending usage (number of linked articles)."""
        usage = func.count(article_tag_map.c.article_id).label("usage_count")
        stmt = (
            select(article_tags, usage)
            .select_from(article_tags.outerjoin(article_tag_map, article_tag_map.c.tag_id == article_tags.c.id))
            .where(article_tags.c.active.is_(True))
            .group_by(article_tags.c.id)
            .order_by(usage.desc(), article_tags.c.id)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [_row_to_tag(row, row.usage_count) for row in rows]

    async def create_tag(self, name: str, description: Optional[str] = None) -> Tuple[Tag, bool]:
        """
        Idempotent tag creation.

        Returns:
            (tag, created); ``created`` is False when a tag with the same
            case-insensitive name already existed, in which case the stored
            canonical name wins.
        """
        canonical = name.strip()
        if not canonical:
            raise ValueError("Tag name must not be blank")
        key = tag_key(canonical)

        stmt = (
            self._insert(article_tags)
            .values(name=canonical, name_key=key, description=description, active=True, created_at=time.time())
            .on_conflict_do_nothing(index_elements=["name_key"])
        )
        async with self._engine.begin() as conn:
            result = await conn.execute(stmt)
            created = result.rowcount == 1
            row = (await conn.execute(select(article_tags).where(article_tags.c.name_key == key))).first()

        if row is None:
            raise RuntimeError(f"Tag {canonical!r} missing after insert")
        if created:
            logger.info("Created tag %s (id=%s)", row.name, row.id)
        return _row_to_tag(row), created

    async def link_tags(self, record_id: int, tag_ids: Sequence[int]) -> int:
        """Link tags to a record, ignoring existing links. Returns the number of new links."""
        linked = 0
        now = time.time()
        async with self._engine.begin() as conn:
            for tag_id in dict.fromkeys(tag_ids):
                result = await conn.execute(
                    self._insert(article_tag_map)
                    .values(article_id=record_id, tag_id=tag_id, created_at=now)
                    .on_conflict_do_nothing(index_elements=["article_id", "tag_id"])
                )
                linked += max(result.rowcount, 0)
        return linked

    async def unlink_tags(self, record_id: int, tag_ids: Sequence[int]) -> int:
        """Remove tag links from a record. Returns the number of links removed."""
        if not tag_ids:
            return 0
        async with self._engine.begin() as conn:
            result = await conn.execute(
                delete(article_tag_map).where(
                    article_tag_map.c.article_id == record_id,
                    article_tag_map.c.tag_id.in_(list(tag_ids)),
                )
            )
        return max(result.rowcount, 0)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list_active_collections(self) -> List[Collection]:
        """Active collections with member counts, newest first."""
        member_count = func.count(collection_items.c.article_id).label("article_count")
        stmt = (
            select(collections, member_count)
            .select_from(collections.outerjoin(collection_items, collection_items.c.collection_id == collections.c.id))
            .where(collections.c.active.is_(True))
            .group_by(collections.c.id)
            .order_by(collections.c.created_at.desc(), collections.c.id.desc())
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [_row_to_collection(row, row.article_count) for row in rows]

    async def get_collection(self, collection_id: int) -> Optional[Collection]:
        async with self._engine.connect() as conn:
            row = (await conn.execute(select(collections).where(collections.c.id == collection_id))).first()
        return _row_to_collection(row) if row is not None else None

    async def create_collection(
        self, name: str, description: Optional[str] = None, color: Optional[str] = None
    ) -> Collection:
        """
        Raises:
            ValueError: blank name
            CollectionExistsError: the name is taken
        """
        name = name.strip()
        if not name:
            raise ValueError("Collection name must not be blank")
        now = time.time()
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    collections.insert().values(
                        name=name, description=description, color=color,
                        active=True, created_at=now, updated_at=now,
                    )
                )
                collection_id = result.inserted_primary_key[0]
                row = (await conn.execute(select(collections).where(collections.c.id == collection_id))).first()
        except IntegrityError as e:
            raise CollectionExistsError(name) from e
        logger.info("Created collection %s (id=%s)", row.name, row.id)
        return _row_to_collection(row)

    async def add_to_collection(self, collection_id: int, record_id: int, notes: Optional[str] = None) -> bool:
        """Add a record to a collection. Returns False if it was already a member."""
        async with self._engine.begin() as conn:
            result = await conn.execute(
                self._insert(collection_items)
                .values(collection_id=collection_id, article_id=record_id, notes=notes, created_at=time.time())
                .on_conflict_do_nothing(index_elements=["collection_id", "article_id"])
            )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def append_feedback(self, event: FeedbackEvent) -> FeedbackEvent:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                article_feedback.insert().values(
                    article_id=event.record_id,
                    kind=FeedbackKind(event.kind).value,
                    payload=json.dumps(event.payload, default=str),
                    created_at=event.timestamp.timestamp(),
                )
            )
            event_id = result.inserted_primary_key[0]
        return event.model_copy(update={"id": event_id})

    async def aggregate_feedback(self, top_n: int = 10) -> FeedbackStats:
        """
        Feedback aggregate for the knowledge context.

        kind_counts counts distinct records per feedback kind. Top tags are
        ranked by how many feedback events touched records carrying them.
        """
        scored = articles.c.scalar_score.isnot(None) & (articles.c.scalar_score > 0)
        totals_stmt = select(
            func.count(case((scored, articles.c.id))).label("total"),
            func.avg(case((scored, articles.c.scalar_score))).label("avg_score"),
            func.count(case((articles.c.status == ArticleStatus.ARCHIVED.value, articles.c.id))).label("archived"),
        )
        kinds_stmt = (
            select(article_feedback.c.kind, func.count(distinct(article_feedback.c.article_id)).label("n"))
            .group_by(article_feedback.c.kind)
        )
        tag_count = func.count(article_feedback.c.id).label("n")
        tags_stmt = (
            select(article_tags.c.name, tag_count)
            .select_from(
                article_tags
                .join(article_tag_map, article_tag_map.c.tag_id == article_tags.c.id)
                .join(article_feedback, article_feedback.c.article_id == article_tag_map.c.article_id)
            )
            .where(article_tags.c.active.is_(True))
            .group_by(article_tags.c.id, article_tags.c.name)
            .order_by(tag_count.desc(), article_tags.c.name)
            .limit(top_n)
        )
        member_count = func.count(collection_items.c.article_id).label("n")
        collections_stmt = (
            select(collections.c.name, member_count)
            .select_from(collections.join(collection_items, collection_items.c.collection_id == collections.c.id))
            .group_by(collections.c.id, collections.c.name)
            .order_by(member_count.desc(), collections.c.name)
            .limit(top_n)
        )

        async with self._engine.connect() as conn:
            totals = (await conn.execute(totals_stmt)).one()
            kind_rows = (await conn.execute(kinds_stmt)).all()
            tag_rows = (await conn.execute(tags_stmt)).all()
            collection_rows = (await conn.execute(collections_stmt)).all()

        return FeedbackStats(
            total_records=totals.total or 0,
            kind_counts={row.kind: row.n for row in kind_rows},
            archived_records=totals.archived or 0,
            average_score=float(totals.avg_score) if totals.avg_score is not None else 50.0,
            top_tags=[NamedCount(name=row.name, count=row.n) for row in tag_rows],
            top_collections=[NamedCount(name=row.name, count=row.n) for row in collection_rows],
        )
