"""
Application exception hierarchy.

Services raise these; the handlers registered in ``app.main`` turn them
into JSON error responses.

    BlogApiError
    ├── InvalidRequest         → 400
    ├── NotFound               → 404
    ├── StorageError           → 500
    └── SearchIndexError       → 503
        ├── IndexPropagationError  (write path: logged, never returned)
        └── SearchUnavailable      (read path)
"""
from typing import Any


class BlogApiError(Exception):
    """Base class.  ``context`` is for logs only and is not sent to clients."""

    status_code: int = 500

    def __init__(self, message: str = "An unexpected error occurred", context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class InvalidRequest(BlogApiError):
    """
    The caller violated a precondition of the operation.

    ``entity`` and ``error_key`` are echoed back so clients can map the
    failure to a translated message (e.g. ``post`` / ``idexists``).
    """

    status_code = 400

    def __init__(self, message: str, entity: str, error_key: str, context: dict[str, Any] | None = None):
        super().__init__(message, context)
        self.entity = entity
        self.error_key = error_key


class NotFound(BlogApiError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message, {"resource": resource, "resource_id": resource_id})
        self.resource = resource
        self.resource_id = resource_id


class StorageError(BlogApiError):
    """The primary store rejected the write or could not be reached."""

    status_code = 500


class SearchIndexError(BlogApiError):
    status_code = 503


class IndexPropagationError(SearchIndexError):
    """A search index write/delete failed after the primary store committed."""

    def __init__(self, message: str, post_id: int | None = None, context: dict[str, Any] | None = None):
        ctx = dict(context or {})
        ctx["post_id"] = post_id
        super().__init__(message, ctx)
        self.post_id = post_id


class SearchUnavailable(SearchIndexError):
    pass
