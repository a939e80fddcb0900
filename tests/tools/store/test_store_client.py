import asyncio
import unittest

import httpx

from analytic_assistant.errors import ExternalResourceError, ResourceErrorHint
from analytic_assistant.settings import StoreCredentials
from analytic_assistant.tools.store.store_client import StoreClient, create_store_client

CREDENTIALS = StoreCredentials(url="https://shop.example/", consumer_key="ck_1", consumer_secret="cs_1")


class StoreClientTests(unittest.TestCase):
    def _client(self, handler) -> StoreClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return StoreClient(CREDENTIALS, http_client=http_client)

    def test_get_page_sends_credentials_and_reads_paging_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=[{"id": 1}, {"id": 2}],
                headers={"X-WP-Total": "42", "X-WP-TotalPages": "21"},
            )

        page = asyncio.run(self._client(handler).get_orders({"per_page": 2, "page": 3, "status": None}))

        request = seen[0]
        self.assertEqual("/wp-json/wc/v3/orders", request.url.path)
        self.assertEqual("ck_1", request.url.params["consumer_key"])
        self.assertEqual("cs_1", request.url.params["consumer_secret"])
        self.assertEqual("date", request.url.params["orderby"])
        self.assertEqual("desc", request.url.params["order"])
        self.assertNotIn("status", request.url.params)
        self.assertEqual([{"id": 1}, {"id": 2}], page.items)
        self.assertEqual(
            {"total": 42, "totalPages": 21, "currentPage": 3, "perPage": 2},
            page.metadata(),
        )

    def test_customers_are_ordered_by_registration(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        asyncio.run(self._client(handler).get_customers())
        self.assertEqual("registered_date", seen[0].url.params["orderby"])

    def test_object_response_becomes_single_item(self) -> None:
        page = asyncio.run(
            self._client(lambda r: httpx.Response(200, json={"environment": {}})).get_page("system_status")
        )
        self.assertEqual([{"environment": {}}], page.items)
        self.assertEqual({"environment": {}}, page.raw)

    def test_boolean_and_list_params_are_encoded(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        asyncio.run(self._client(handler).get_page("products", {"on_sale": True, "include": [1, 2]}))
        self.assertEqual("true", seen[0].url.params["on_sale"])
        self.assertEqual("1,2", seen[0].url.params["include"])

    def test_status_codes_map_to_hints(self) -> None:
        cases = {
            401: ResourceErrorHint.CREDENTIALS_REJECTED,
            403: ResourceErrorHint.CREDENTIALS_REJECTED,
            404: ResourceErrorHint.NOT_FOUND,
            500: ResourceErrorHint.OTHER,
        }
        for status, hint in cases.items():
            with self.subTest(status=status):
                client = self._client(lambda r, s=status: httpx.Response(s, text="nope"))
                with self.assertRaises(ExternalResourceError) as ctx:
                    asyncio.run(client.get_page("orders"))
                self.assertIs(hint, ctx.exception.hint)
                self.assertEqual(status, ctx.exception.status_code)

    def test_connection_failure_is_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(ExternalResourceError) as ctx:
            asyncio.run(self._client(handler).get_page("orders"))
        self.assertIs(ResourceErrorHint.UNREACHABLE, ctx.exception.hint)
        self.assertIn("https://shop.example/", str(ctx.exception))

    def test_non_json_body_is_rejected(self) -> None:
        client = self._client(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
        with self.assertRaises(ExternalResourceError) as ctx:
            asyncio.run(client.get_page("orders"))
        self.assertIs(ResourceErrorHint.OTHER, ctx.exception.hint)

    def test_factory_without_credentials_returns_none(self) -> None:
        self.assertIsNone(create_store_client(None))


if __name__ == "__main__":
    unittest.main()
