"""Response header helpers: pagination links and entity alerts."""
import math

from starlette.datastructures import URL

from app.config import settings


def pagination_headers(url: URL, page: int, size: int, total: int) -> dict[str, str]:
    """
    Build ``X-Total-Count`` and an RFC 5988 ``Link`` header for a page.

    Links keep every query parameter of *url* and only replace ``page``
    and ``size``.  ``next``/``prev`` are emitted only when such a page
    exists; ``last`` and ``first`` always are.
    """
    total_pages = math.ceil(total / size) if size > 0 else 0
    last_page = max(total_pages - 1, 0)

    def link(target: int, rel: str) -> str:
        return f'<{url.include_query_params(page=target, size=size)}>; rel="{rel}"'

    links = []
    if page + 1 < total_pages:
        links.append(link(page + 1, "next"))
    if page > 0:
        links.append(link(page - 1, "prev"))
    links.append(link(last_page, "last"))
    links.append(link(0, "first"))

    return {"X-Total-Count": str(total), "Link": ",".join(links)}


def entity_alert_headers(entity: str, action: str, param: object) -> dict[str, str]:
    """Alert headers for a successful create/update/delete of *entity*."""
    app = settings.APP_NAME
    return {
        f"X-{app}-alert": f"{app}.{entity}.{action}",
        f"X-{app}-params": str(param),
    }


def entity_error_headers(entity: str, error_key: str) -> dict[str, str]:
    app = settings.APP_NAME
    return {
        f"X-{app}-error": f"error.{error_key}",
        f"X-{app}-params": entity,
    }
