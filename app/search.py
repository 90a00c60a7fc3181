import logging
from typing import Any, Protocol

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from app.config import settings
from app.exceptions import IndexPropagationError, SearchUnavailable

logger = logging.getLogger(__name__)

# Fields matched by the free-text query.
SEARCH_FIELDS = ["title", "content", "tags.name"]

# Text fields are analysed and cannot be sorted on.
_SORTABLE_FIELDS: frozenset[str] = frozenset({"id", "date", "blog_id"})

POST_MAPPINGS = {
    "properties": {
        "id": {"type": "long"},
        "title": {"type": "text"},
        "content": {"type": "text"},
        "date": {"type": "date"},
        "blog_id": {"type": "long"},
        "tags": {
            "properties": {
                "id": {"type": "long"},
                "name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
            }
        },
    }
}


class SearchIndex(Protocol):
    """What the post service needs from a search backend."""

    async def ping(self) -> bool: ...

    async def save(self, document: dict[str, Any]) -> None: ...

    async def delete_by_id(self, post_id: int) -> None: ...

    async def search(
        self, query: str, offset: int, limit: int, sort: tuple[str, str] | None = None
    ) -> tuple[list[dict[str, Any]], int]: ...


class ElasticsearchPostIndex:
    """
    Secondary full-text index of posts, keyed by the primary store's id.

    Write failures surface as ``IndexPropagationError`` and read failures
    as ``SearchUnavailable``; callers decide whether to degrade.  When the
    client was never connected every call fails the same way.
    """

    def __init__(self, index_name: str | None = None) -> None:
        self.index_name = index_name or settings.SEARCH_INDEX_NAME
        self._es: AsyncElasticsearch | None = None
        self._index_ready = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Create the client and make sure the index exists.  Called at startup.

        If Elasticsearch is down now, the index is created with its
        mappings on the first successful write instead.
        """
        self._es = AsyncElasticsearch(settings.ELASTICSEARCH_URL, request_timeout=5)
        try:
            await self.ensure_index()
            logger.info("Elasticsearch connected: %s (index=%s)", settings.ELASTICSEARCH_URL, self.index_name)
        except (ApiError, TransportError) as exc:
            logger.warning("Elasticsearch unavailable, search writes will be queued: %s", exc)

    async def disconnect(self) -> None:
        if self._es:
            await self._es.close()
            self._es = None
            self._index_ready = False

    async def ensure_index(self) -> None:
        es = self._client()
        if not await es.indices.exists(index=self.index_name):
            await es.indices.create(index=self.index_name, mappings=POST_MAPPINGS)
            logger.info("Created search index %r", self.index_name)
        self._index_ready = True

    async def ping(self) -> bool:
        if not self._es:
            return False
        try:
            return bool(await self._es.ping())
        except (ApiError, TransportError):
            return False

    def _client(self) -> AsyncElasticsearch:
        if self._es is None:
            raise IndexPropagationError("search index is not connected")
        return self._es

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, document: dict[str, Any]) -> None:
        """Upsert *document* under its ``id``."""
        post_id = document["id"]
        es = self._client()
        try:
            if not self._index_ready:
                await self.ensure_index()
            await es.index(
                index=self.index_name,
                id=str(post_id),
                document=document,
                refresh=settings.SEARCH_REFRESH,
            )
        except (ApiError, TransportError) as exc:
            raise IndexPropagationError(f"index save failed: {exc}", post_id=post_id) from exc

    async def delete_by_id(self, post_id: int) -> None:
        """Remove the document for *post_id*; a missing document is not an error."""
        es = self._client()
        try:
            await es.delete(index=self.index_name, id=str(post_id), refresh=settings.SEARCH_REFRESH)
        except NotFoundError:
            logger.debug("Index delete for absent post id=%s", post_id)
        except (ApiError, TransportError) as exc:
            raise IndexPropagationError(f"index delete failed: {exc}", post_id=post_id) from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(
        self, query: str, offset: int, limit: int, sort: tuple[str, str] | None = None
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Run a ``query_string`` query and return ``(documents, total)``.

        Results are ordered by relevance unless *sort* names a sortable
        field, in which case relevance breaks ties.
        """
        if self._es is None:
            raise SearchUnavailable("search index is not connected")

        sort_clause: list[Any] = []
        if sort and sort[0] in _SORTABLE_FIELDS:
            sort_clause.append({sort[0]: {"order": sort[1]}})
        sort_clause.append("_score")

        try:
            response = await self._es.search(
                index=self.index_name,
                query={"query_string": {"query": query, "fields": SEARCH_FIELDS}},
                from_=offset,
                size=limit,
                sort=sort_clause,
                track_total_hits=True,
            )
        except (ApiError, TransportError) as exc:
            raise SearchUnavailable(f"search failed: {exc}", {"query": query}) from exc

        hits = response["hits"]
        return [hit["_source"] for hit in hits["hits"]], hits["total"]["value"]


# Module-level singleton shared across all request handlers.
search_index = ElasticsearchPostIndex()
