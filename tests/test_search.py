"""
Tests for the Elasticsearch adapter.

The ``AsyncElasticsearch`` client is replaced with mocks, so these check
the requests the adapter sends and how client errors are translated,
without a running cluster.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from elasticsearch import ApiError, ConnectionError as ESConnectionError, NotFoundError

from app import search as search_module
from app.config import settings
from app.exceptions import IndexPropagationError, SearchUnavailable
from app.search import POST_MAPPINGS, SEARCH_FIELDS, ElasticsearchPostIndex

DOCUMENT = {
    "id": 7,
    "title": "Kafka",
    "content": "Streams",
    "date": "2024-01-01T00:00:00+00:00",
    "blog_id": None,
    "tags": [{"id": 1, "name": "queues"}],
}


def _api_error(cls, status: int):
    return cls("error", meta=MagicMock(status=status), body={})


@pytest.fixture
def es_client() -> MagicMock:
    client = MagicMock()
    client.index = AsyncMock()
    client.delete = AsyncMock()
    client.search = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.close = AsyncMock()
    client.indices.exists = AsyncMock(return_value=True)
    client.indices.create = AsyncMock()
    return client


@pytest.fixture
def es_index(es_client: MagicMock) -> ElasticsearchPostIndex:
    index = ElasticsearchPostIndex(index_name="post-test")
    index._es = es_client
    index._index_ready = True
    return index


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_connect_creates_index_with_mappings(es_client, monkeypatch):
    es_client.indices.exists.return_value = False
    monkeypatch.setattr(search_module, "AsyncElasticsearch", MagicMock(return_value=es_client))

    index = ElasticsearchPostIndex(index_name="post-test")
    await index.connect()

    es_client.indices.create.assert_awaited_once_with(index="post-test", mappings=POST_MAPPINGS)
    assert await index.ping() is True

    await index.disconnect()
    es_client.close.assert_awaited_once()
    assert await index.ping() is False


@pytest.mark.asyncio
async def test_index_created_on_first_write_after_failed_startup(es_client, monkeypatch):
    es_client.indices.exists.side_effect = ESConnectionError("connection refused")
    monkeypatch.setattr(search_module, "AsyncElasticsearch", MagicMock(return_value=es_client))

    index = ElasticsearchPostIndex(index_name="post-test")
    await index.connect()
    es_client.indices.create.assert_not_awaited()

    es_client.indices.exists.side_effect = None
    es_client.indices.exists.return_value = False
    await index.save(DOCUMENT)

    es_client.indices.create.assert_awaited_once_with(index="post-test", mappings=POST_MAPPINGS)
    es_client.index.assert_awaited_once()

    # Only checked once.
    await index.save(DOCUMENT)
    assert es_client.indices.exists.await_count == 2


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_save_indexes_document_under_post_id(es_index, es_client):
    await es_index.save(DOCUMENT)
    es_client.index.assert_awaited_once_with(
        index="post-test", id="7", document=DOCUMENT, refresh=settings.SEARCH_REFRESH
    )


@pytest.mark.asyncio
async def test_save_failure_raises_index_propagation_error(es_index, es_client):
    es_client.index.side_effect = ESConnectionError("connection refused")
    with pytest.raises(IndexPropagationError) as excinfo:
        await es_index.save(DOCUMENT)
    assert excinfo.value.post_id == 7


@pytest.mark.asyncio
async def test_delete_of_missing_document_succeeds(es_index, es_client):
    es_client.delete.side_effect = _api_error(NotFoundError, 404)
    await es_index.delete_by_id(7)
    es_client.delete.assert_awaited_once_with(index="post-test", id="7", refresh=settings.SEARCH_REFRESH)


@pytest.mark.asyncio
async def test_delete_failure_raises_index_propagation_error(es_index, es_client):
    es_client.delete.side_effect = _api_error(ApiError, 500)
    with pytest.raises(IndexPropagationError) as excinfo:
        await es_index.delete_by_id(7)
    assert excinfo.value.post_id == 7


@pytest.mark.asyncio
async def test_writes_without_client_raise_index_propagation_error():
    index = ElasticsearchPostIndex(index_name="post-test")
    with pytest.raises(IndexPropagationError):
        await index.save(DOCUMENT)
    with pytest.raises(IndexPropagationError):
        await index.delete_by_id(7)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_builds_query_and_returns_sources(es_index, es_client):
    es_client.search.return_value = {
        "hits": {"total": {"value": 11}, "hits": [{"_source": DOCUMENT}]},
    }

    items, total = await es_index.search("kafka", offset=10, limit=5, sort=("date", "desc"))

    assert (items, total) == ([DOCUMENT], 11)
    es_client.search.assert_awaited_once_with(
        index="post-test",
        query={"query_string": {"query": "kafka", "fields": SEARCH_FIELDS}},
        from_=10,
        size=5,
        sort=[{"date": {"order": "desc"}}, "_score"],
        track_total_hits=True,
    )


@pytest.mark.asyncio
async def test_search_ignores_unsortable_fields(es_index, es_client):
    es_client.search.return_value = {"hits": {"total": {"value": 0}, "hits": []}}

    await es_index.search("kafka", offset=0, limit=20, sort=("title", "asc"))

    assert es_client.search.await_args.kwargs["sort"] == ["_score"]


@pytest.mark.asyncio
async def test_search_failure_raises_search_unavailable(es_index, es_client):
    es_client.search.side_effect = _api_error(ApiError, 503)
    with pytest.raises(SearchUnavailable):
        await es_index.search("kafka", offset=0, limit=20)


@pytest.mark.asyncio
async def test_search_without_client_raises_search_unavailable():
    index = ElasticsearchPostIndex(index_name="post-test")
    with pytest.raises(SearchUnavailable):
        await index.search("kafka", offset=0, limit=20)
