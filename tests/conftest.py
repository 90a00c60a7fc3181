"""
Test infrastructure for the Blog API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI.  StaticPool makes every session share the one connection
  that holds the in-memory database.
- The app's get_db dependency is overridden with the test session factory.
- All tables are created fresh before each test and dropped after.
- The search index dependency is replaced by ``InMemorySearchIndex``, which
  can be flipped into a failing state to simulate an index outage.
- The reindex queue runs with no Redis client (its degraded mode) unless a
  test asks for the ``queue_redis`` fixture, which plugs in an in-memory
  list with the handful of Redis list commands the queue uses.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.dependencies import get_search_index
from app.exceptions import IndexPropagationError, SearchUnavailable
from app.main import app
from app.middleware import install_query_counter
from app.models import Blog, User
from app.reindex_queue import reindex_queue

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class InMemorySearchIndex:
    """
    Dict-backed stand-in for the Elasticsearch index.

    A document matches when every whitespace-separated query term occurs
    (case-insensitively) in its title, content or tag names; ``*``
    matches everything.  Hits are returned in id order.
    """

    def __init__(self) -> None:
        self.documents: dict[int, dict] = {}
        self.failing = False

    async def ping(self) -> bool:
        return not self.failing

    async def save(self, document: dict) -> None:
        if self.failing:
            raise IndexPropagationError("simulated index outage", post_id=document["id"])
        self.documents[document["id"]] = dict(document)

    async def delete_by_id(self, post_id: int) -> None:
        if self.failing:
            raise IndexPropagationError("simulated index outage", post_id=post_id)
        self.documents.pop(post_id, None)

    async def search(self, query, offset, limit, sort=None):
        if self.failing:
            raise SearchUnavailable("simulated index outage")
        terms = [t for t in query.lower().split() if t != "*"]

        def text(doc: dict) -> str:
            names = " ".join(t["name"] for t in doc["tags"])
            return f"{doc['title']} {doc['content']} {names}".lower()

        hits = [d for d in self.documents.values() if all(t in text(d) for t in terms)]
        hits.sort(key=lambda d: d["id"])
        return hits[offset:offset + limit], len(hits)


class InMemoryRedisList:
    """The LPUSH/RPUSH/RPOP/LLEN subset of a Redis client used by ReindexQueue."""

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}

    async def lpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def rpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def rpop(self, key: str) -> str | None:
        items = self.lists.get(key)
        return items.pop() if items else None

    async def llen(self, key: str) -> int:
        return len(self.lists.get(key, []))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def reset_reindex_queue():
    """Start every test with a disconnected, zeroed reindex queue."""
    reindex_queue._redis = None
    reindex_queue._enqueued = 0
    reindex_queue._dropped = 0
    yield
    reindex_queue._redis = None


@pytest.fixture
def queue_redis(reset_reindex_queue) -> InMemoryRedisList:
    client = InMemoryRedisList()
    reindex_queue._redis = client
    return client


@pytest.fixture
def search_index() -> InMemorySearchIndex:
    index = InMemorySearchIndex()
    app.dependency_overrides[get_search_index] = lambda: index
    yield index
    app.dependency_overrides.pop(get_search_index, None)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for tests that call services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client(search_index: InMemorySearchIndex) -> AsyncClient:
    """An httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> Blog:
    """User ``alice`` with one blog, committed so HTTP requests can see it."""
    user = User(login="alice", email="alice@example.com")
    db_session.add(user)
    await db_session.flush()
    blog = Blog(name="Alice writes", handle="alice", user_id=user.id)
    db_session.add(blog)
    await db_session.commit()
    return blog
