from fastapi import Header, Query

from app.config import settings
from app.search import SearchIndex, search_index


class PaginationParams:
    """
    Reusable FastAPI dependency that parses paging / sorting query
    parameters in the ``page``/``size``/``sort`` convention.

    Attributes
    ----------
    page:
        0-based page number.
    size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``.
    sort:
        ``(field, direction)`` parsed from ``sort=field,dir`` or None.
        Services validate the field against their own whitelist.
    offset:
        Computed SQL OFFSET / search ``from``.
    """

    def __init__(
        self,
        page: int = Query(0, ge=0, description="Page number (0-based)."),
        size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of items returned per page.",
        ),
        sort: str | None = Query(
            None,
            pattern=r"^\w+(,(asc|desc))?$",
            description="Secondary sort as 'field,asc' or 'field,desc'.",
        ),
    ) -> None:
        self.page = page
        self.size = min(size, settings.MAX_PAGE_SIZE)
        self.sort: tuple[str, str] | None = None
        if sort:
            field, _, direction = sort.partition(",")
            self.sort = (field, direction or "asc")

    @property
    def offset(self) -> int:
        return self.page * self.size


def get_current_login(
    x_user_login: str | None = Header(None, description="Login of the requesting principal."),
) -> str | None:
    """Resolve the requesting principal.  Authentication happens upstream."""
    return x_user_login or None


def get_search_index() -> SearchIndex:
    return search_index
