from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from analytic_assistant.tools.store.store_client import Page

DEFAULT_PAGE_SIZE = 100
# The store REST API rejects or silently caps larger per_page values.
MAX_PAGE_SIZE = 100


def clamp_page_size(size: Any) -> int:
    return min(max(1, int(size)), MAX_PAGE_SIZE)


class PageSource(Protocol):
    async def get_page(self, endpoint: str, params: dict[str, Any] | None = None) -> Page: ...


@dataclass
class PaginationCursor:
    endpoint: str
    page_size: int = DEFAULT_PAGE_SIZE
    page: int = 1
    items: list[dict[str, Any]] = field(default_factory=list)
    has_more: bool = True
    largest_page: int = 0

    def request_params(self, base: dict[str, Any]) -> dict[str, Any]:
        return {**base, "per_page": self.page_size, "page": self.page}

    def advance(self, page: Page) -> None:
        # The drain ends on an empty page, or on a page shorter than one the
        # server already returned (its real cap may be below page_size).
        # X-WP-Total is not trusted.
        count = page.item_count
        self.items.extend(page.items)
        if count == 0 or count < self.largest_page:
            self.has_more = False
            return
        self.largest_page = count
        self.page += 1


async def fetch_all(
    source: PageSource,
    endpoint: str,
    params: dict[str, Any] | None = None,
    *,
    page_size: int | None = None,
) -> list[dict[str, Any]]:
    """Drain every page of ``endpoint`` and return the concatenated items.

    Pages are requested one at a time, each page index exactly once. Any
    failed request aborts the drain and propagates; partial results are
    never returned.
    """
    base = {k: v for k, v in (params or {}).items() if k not in ("page", "per_page")}
    size = page_size or (params or {}).get("per_page") or DEFAULT_PAGE_SIZE
    cursor = PaginationCursor(endpoint=endpoint, page_size=clamp_page_size(size))

    while cursor.has_more:
        page = await source.get_page(endpoint, cursor.request_params(base))
        cursor.advance(page)

    logger.debug(f"fetch_all {endpoint}: {len(cursor.items)} item(s) over {cursor.page} request(s)")
    return cursor.items
