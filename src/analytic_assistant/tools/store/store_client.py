from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from analytic_assistant.errors import ExternalResourceError, ResourceErrorHint
from analytic_assistant.settings import StoreCredentials

_API_PREFIX = "/wp-json/wc/v3"
_USER_AGENT = "Analytic-Assistant/1.0"


@dataclass
class Page:
    items: list[dict[str, Any]]
    total: int = 0
    total_pages: int = 1
    current_page: int = 1
    per_page: int = 20
    raw: Any = field(default=None, repr=False)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def metadata(self) -> dict[str, int]:
        return {
            "total": self.total,
            "totalPages": self.total_pages,
            "currentPage": self.current_page,
            "perPage": self.per_page,
        }


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _encode_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class StoreClient:
    """Thin async client for the store's REST API (one request = one page)."""

    def __init__(
        self,
        credentials: StoreCredentials,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._credentials = credentials
        self._base_url = credentials.url.rstrip("/") + _API_PREFIX
        self._client = http_client or httpx.AsyncClient(
            headers={"Content-Type": "application/json", "User-Agent": _USER_AGENT},
            timeout=timeout,
        )
        self._owns_client = http_client is None

    @property
    def store_url(self) -> str:
        return self._credentials.url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_page(self, endpoint: str, params: dict[str, Any] | None = None) -> Page:
        path = "/" + endpoint.strip().lstrip("/")
        query: dict[str, str] = {
            "consumer_key": self._credentials.consumer_key,
            "consumer_secret": self._credentials.consumer_secret,
        }
        for key, value in (params or {}).items():
            if value is not None:
                query[key] = _encode_param(value)

        visible = {k: v for k, v in query.items() if not k.startswith("consumer_")}
        logger.debug(f"Store request: GET {path} params={visible}")
        try:
            response = await self._client.get(self._base_url + path, params=query)
        except (httpx.ConnectError, httpx.TimeoutException) as ex:
            raise ExternalResourceError(
                f"Network Error: Unable to connect to the store at {self._credentials.url}. "
                "Please ask the user to verify the URL is correct and the store is online.",
                hint=ResourceErrorHint.UNREACHABLE,
            ) from ex
        except httpx.HTTPError as ex:
            raise ExternalResourceError(
                f"Network Error: A connection could not be made to {self._credentials.url} ({ex}).",
                hint=ResourceErrorHint.UNREACHABLE,
            ) from ex

        if response.status_code != 200:
            raise ExternalResourceError(
                f"Store API error: HTTP {response.status_code} - {response.text[:500]}",
                hint=_hint_for_status(response.status_code),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as ex:
            raise ExternalResourceError(
                f"Store API returned a non-JSON response for {path}",
                hint=ResourceErrorHint.OTHER,
                status_code=response.status_code,
            ) from ex
        items = data if isinstance(data, list) else [data]
        return Page(
            items=items,
            total=_to_int(response.headers.get("X-WP-Total"), 0),
            total_pages=_to_int(response.headers.get("X-WP-TotalPages"), 1),
            current_page=_to_int((params or {}).get("page"), 1),
            per_page=_to_int((params or {}).get("per_page"), 20),
            raw=data,
        )

    async def get_products(self, params: dict[str, Any] | None = None) -> Page:
        return await self.get_page("products", {"orderby": "date", "order": "desc", **(params or {})})

    async def get_orders(self, params: dict[str, Any] | None = None) -> Page:
        return await self.get_page("orders", {"orderby": "date", "order": "desc", **(params or {})})

    async def get_customers(self, params: dict[str, Any] | None = None) -> Page:
        return await self.get_page("customers", {"orderby": "registered_date", "order": "desc", **(params or {})})

    async def get_coupons(self, params: dict[str, Any] | None = None) -> Page:
        return await self.get_page("coupons", params)


def _hint_for_status(status_code: int) -> ResourceErrorHint:
    if status_code in (401, 403):
        return ResourceErrorHint.CREDENTIALS_REJECTED
    if status_code == 404:
        return ResourceErrorHint.NOT_FOUND
    return ResourceErrorHint.OTHER


def create_store_client(credentials: StoreCredentials | None, *, timeout: float = 30.0) -> StoreClient | None:
    if credentials is None:
        return None
    return StoreClient(credentials, timeout=timeout)
