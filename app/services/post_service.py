"""
Post service: the dual-write coordinator for the Post aggregate.

Design notes
------------
- The relational database is the source of truth; the search index holds
  a derived copy keyed by the database id.
- Every mutation commits to the database *before* touching the index.
  Index failures never roll the database back and are never surfaced to
  the caller: they are logged and the post id is pushed onto the
  reindex queue for ``reindex_service.drain_queue`` to reconcile.
- Database failures during a write roll the session back and raise
  ``StorageError``; no index write is attempted.
- Point reads and owner listings never consult the index; only
  ``search_posts`` does.
- No locking here.  Concurrent updates of one id are ordered by the
  database (last write wins) and the index receives whatever each
  request committed, so index order under concurrent writers is not
  guaranteed.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import asc, desc, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import IndexPropagationError, InvalidRequest, NotFound, StorageError
from app.models import Blog, Post, Tag, User
from app.reindex_queue import reindex_queue
from app.schemas import PostPayload, TagPayload
from app.search import SearchIndex

logger = logging.getLogger(__name__)

ENTITY_NAME = "post"

# Columns accepted as a secondary sort key for owner listings.
_SORTABLE_COLUMNS: frozenset[str] = frozenset({"id", "title", "date"})


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def post_to_dict(post: Post) -> dict:
    """Serialise a Post (tags loaded) to its wire/index document."""
    date = post.date
    if date is not None and date.tzinfo is None:
        # SQLite hands back naive datetimes; stored values are UTC.
        date = date.replace(tzinfo=timezone.utc)
    return {
        "id": post.id,
        "title": post.title,
        "content": post.content,
        "date": date.isoformat() if date else None,
        "blog_id": post.blog_id,
        "tags": [{"id": t.id, "name": t.name} for t in sorted(post.tags, key=lambda t: t.id)],
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def load_post(db: AsyncSession, post_id: int) -> Post | None:
    result = await db.execute(
        select(Post).where(Post.id == post_id).options(selectinload(Post.tags))
    )
    return result.scalar_one_or_none()


_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _dialect(db: AsyncSession) -> str:
    return db.bind.dialect.name


async def _insert_tag_if_absent(db: AsyncSession, name: str) -> None:
    """Insert a tag row, leaving it alone if a concurrent writer got there first."""
    insert = _INSERTS.get(_dialect(db))
    if insert is None:
        db.add(Tag(name=name))
        await db.flush()
        return
    await db.execute(insert(Tag).values(name=name).on_conflict_do_nothing(index_elements=["name"]))


async def _resolve_tags(db: AsyncSession, payloads: list[TagPayload]) -> list[Tag]:
    """
    Return Tag rows for the names in *payloads*, creating missing ones.

    Tags are matched by name; a client-supplied tag id is ignored.
    Duplicate names collapse to a single tag.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for payload in payloads:
        if payload.name in seen:
            continue
        seen.add(payload.name)
        query = select(Tag).where(Tag.name == payload.name)
        tag = (await db.execute(query)).scalar_one_or_none()
        if tag is None:
            await _insert_tag_if_absent(db, payload.name)
            tag = (await db.execute(query)).scalar_one()
        tags.append(tag)
    return tags


async def _sync_id_sequence(db: AsyncSession) -> None:
    """
    Move the ``posts.id`` sequence past the highest stored id.

    Needed after inserting a row under an explicit id; otherwise a later
    generated id could collide with it.  Only PostgreSQL keeps a separate
    sequence.
    """
    if _dialect(db) != "postgresql":
        return
    await db.execute(
        text("SELECT setval(pg_get_serial_sequence('posts', 'id'), (SELECT MAX(id) FROM posts))")
    )


async def _check_blog(db: AsyncSession, blog_id: int | None) -> None:
    if blog_id is None:
        return
    if await db.get(Blog, blog_id) is None:
        raise InvalidRequest(f"Blog {blog_id} does not exist", ENTITY_NAME, "blognotfound")


def _apply(post: Post, data: PostPayload, tags: list[Tag]) -> None:
    post.title = data.title
    post.content = data.content
    post.blog_id = data.blog_id
    if data.date is not None:
        post.date = data.date
    elif post.date is None:
        post.date = datetime.now(timezone.utc)
    post.tags = tags


async def _propagate_save(index: SearchIndex, document: dict) -> None:
    try:
        await index.save(document)
    except IndexPropagationError as exc:
        logger.warning(
            "Search index save failed for post id=%s, queued for reindex: %s",
            document["id"], exc.message,
        )
        await reindex_queue.enqueue("save", document["id"])


async def _propagate_delete(index: SearchIndex, post_id: int) -> None:
    try:
        await index.delete_by_id(post_id)
    except IndexPropagationError as exc:
        logger.warning(
            "Search index delete failed for post id=%s, queued for reindex: %s",
            post_id, exc.message,
        )
        await reindex_queue.enqueue("delete", post_id)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_post(db: AsyncSession, index: SearchIndex, data: PostPayload) -> dict:
    """
    Persist a new post, then mirror it into *index*.

    Raises ``InvalidRequest`` (nothing written) when the payload already
    carries an id or references an unknown blog.
    """
    logger.debug("Request to save Post : %r", data)
    if data.id is not None:
        raise InvalidRequest("A new post cannot already have an ID", ENTITY_NAME, "idexists")

    try:
        await _check_blog(db, data.blog_id)
        tags = await _resolve_tags(db, data.tags)
        post = Post()
        _apply(post, data, tags)
        db.add(post)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError("Could not save post", {"error": str(exc)}) from exc

    document = post_to_dict(post)
    await _propagate_save(index, document)
    return document


async def update_post(db: AsyncSession, index: SearchIndex, data: PostPayload) -> dict:
    """
    Upsert the post keyed by ``data.id``, then mirror it into *index*.

    All fields and the full tag set are replaced.  An omitted ``date``
    keeps the stored one.  An id unknown to the database is inserted
    under that id.
    """
    logger.debug("Request to update Post : %r", data)
    if data.id is None:
        raise InvalidRequest("Invalid id", ENTITY_NAME, "idnull")

    try:
        await _check_blog(db, data.blog_id)
        tags = await _resolve_tags(db, data.tags)
        post = await load_post(db, data.id)
        inserted = post is None
        if inserted:
            post = Post(id=data.id)
            db.add(post)
        _apply(post, data, tags)
        if inserted:
            await db.flush()
            await _sync_id_sequence(db)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError("Could not update post", {"post_id": data.id, "error": str(exc)}) from exc

    document = post_to_dict(post)
    await _propagate_save(index, document)
    return document


async def delete_post(db: AsyncSession, index: SearchIndex, post_id: int) -> None:
    """Delete *post_id* from the database and the index.  Unknown ids are a no-op."""
    logger.debug("Request to delete Post : %s", post_id)
    try:
        post = await load_post(db, post_id)
        if post is not None:
            await db.delete(post)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError("Could not delete post", {"post_id": post_id, "error": str(exc)}) from exc

    await _propagate_delete(index, post_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_post(db: AsyncSession, post_id: int) -> dict:
    """Return *post_id* with its tags, read from the database only."""
    logger.debug("Request to get Post : %s", post_id)
    post = await load_post(db, post_id)
    if post is None:
        raise NotFound("Post", post_id)
    return post_to_dict(post)


async def list_posts(
    db: AsyncSession,
    login: str | None,
    page: int = 0,
    size: int = 20,
    sort: tuple[str, str] | None = None,
) -> tuple[list[dict], int]:
    """
    Return ``(items, total)`` for the posts of *login*'s blogs, newest first.

    *sort* is applied after the date ordering; ids break remaining ties.
    Without a principal the page is empty.
    """
    logger.debug("Request to get a page of Posts for %r", login)
    if login is None:
        return [], 0

    owned = (
        select(Post)
        .join(Blog, Post.blog_id == Blog.id)
        .join(User, Blog.user_id == User.id)
        .where(User.login == login)
    )

    count_q = select(func.count()).select_from(owned.subquery())
    total: int = (await db.execute(count_q)).scalar_one()

    order = [desc(Post.date)]
    if sort and sort[0] in _SORTABLE_COLUMNS:
        column = getattr(Post, sort[0])
        order.append(desc(column) if sort[1] == "desc" else asc(column))
    order.append(desc(Post.id))

    result = await db.execute(
        owned.options(selectinload(Post.tags))
        .order_by(*order)
        .offset(page * size)
        .limit(size)
    )
    return [post_to_dict(p) for p in result.scalars().all()], total


async def search_posts(
    index: SearchIndex,
    query: str,
    page: int = 0,
    size: int = 20,
    sort: tuple[str, str] | None = None,
) -> tuple[list[dict], int]:
    """Free-text search over the index only; may lag behind the database."""
    logger.debug("Request to search for a page of Posts for query %r", query)
    return await index.search(query, page * size, size, sort)
