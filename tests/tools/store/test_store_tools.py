import asyncio
import unittest

from analytic_assistant.errors import ExternalResourceError, ResourceErrorHint
from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.store.get_data_tool import GetDataTool
from analytic_assistant.tools.store.get_reports_tool import GetReportsTool
from analytic_assistant.tools.store.list_customers_tool import ListCustomersTool
from analytic_assistant.tools.store.list_orders_tool import ListOrdersTool
from analytic_assistant.tools.store.list_products_tool import ListProductsTool
from tests.fakes import FakeStore

ORDER = {
    "id": 7,
    "date_created": "2026-03-01T10:00:00",
    "status": "completed",
    "customer_id": 3,
    "billing": {"first_name": "Ada", "last_name": "L", "email": "ada@example.com"},
    "line_items": [{"product_id": 11, "name": "Mug", "quantity": 2, "total": "20.00"}],
    "total": "27.00",
    "total_tax": "2.00",
    "shipping_total": "5.00",
    "discount_total": "0.00",
    "payment_method_title": "Card",
}


def _execute(tool, args: dict, store=None) -> dict:
    return asyncio.run(tool.execute(args, ToolContext(store=store)))


class ListToolsTests(unittest.TestCase):
    def test_orders_are_simplified_with_paging_metadata(self) -> None:
        store = FakeStore({"orders": [ORDER]})
        result = _execute(ListOrdersTool(), {}, store)

        self.assertTrue(result["success"])
        order = result["data"][0]
        self.assertEqual(7, order["Order ID"])
        self.assertEqual("ada@example.com", order["customer"]["email"])
        self.assertEqual("20.00", order["Subtotal"])
        self.assertEqual("27.00", order["Total"])
        self.assertEqual(1, result["total"])
        self.assertEqual(20, result["perPage"])

    def test_default_paging_is_sent(self) -> None:
        store = FakeStore({"products": [{"id": 1, "name": "Mug", "categories": [{"id": 4, "name": "Kitchen", "slug": "k"}]}]})
        result = _execute(ListProductsTool(), {"search": "mug"}, store)

        _, params = store.requests[0]
        self.assertEqual(20, params["per_page"])
        self.assertEqual(1, params["page"])
        self.assertEqual("mug", params["search"])
        self.assertNotIn("category", params)
        self.assertEqual([{"id": 4, "name": "Kitchen"}], result["data"][0]["categories"])

    def test_customers_tool(self) -> None:
        store = FakeStore({"customers": [{"id": 3, "email": "ada@example.com", "billing": {"city": "London"}}]})
        result = _execute(ListCustomersTool(), {"per_page": 5}, store)

        self.assertEqual("London", result["data"][0]["city"])
        self.assertEqual(5, store.requests[0][1]["per_page"])

    def test_invalid_arguments_never_raise(self) -> None:
        cases = [
            (ListOrdersTool(), {"per_page": 500}),
            (ListOrdersTool(), {"status": "lost"}),
            (ListProductsTool(), {"page": 0}),
            (ListCustomersTool(), {"order": "sideways"}),
            (GetReportsTool(), {}),
            (GetDataTool(), {"endpoint": "https://evil.example/x"}),
        ]
        for tool, args in cases:
            with self.subTest(tool=tool.name, args=args):
                result = _execute(tool, args, FakeStore())
                self.assertFalse(result["success"])
                self.assertTrue(result["validation_errors"])
                self.assertIn(tool.name, result["error"])

    def test_missing_store_is_reported(self) -> None:
        for tool in (ListOrdersTool(), ListProductsTool(), ListCustomersTool()):
            with self.subTest(tool=tool.name):
                result = _execute(tool, {})
                self.assertFalse(result["success"])
                self.assertIn("not configured", result["error"])

    def test_store_error_carries_hint(self) -> None:
        store = FakeStore(failures={
            "orders": ExternalResourceError("Store API error: HTTP 401", hint=ResourceErrorHint.CREDENTIALS_REJECTED)
        })
        result = _execute(ListOrdersTool(), {}, store)

        self.assertFalse(result["success"])
        self.assertEqual("credentials-rejected", result["hint"])
        self.assertIn("HTTP 401", result["error"])

    def test_input_schema_exposes_properties(self) -> None:
        schema = ListOrdersTool().input_schema
        self.assertEqual("object", schema["type"])
        self.assertIn("per_page", schema["properties"])
        self.assertNotIn("title", schema)


class GetDataToolTests(unittest.TestCase):
    def test_query_string_is_parsed(self) -> None:
        store = FakeStore({"/products/categories": [{"id": 1}, {"id": 2}]})
        result = _execute(GetDataTool(), {"endpoint": "/products/categories", "params": "per_page=5&orderby=name"}, store)

        self.assertTrue(result["success"])
        self.assertEqual({"per_page": "5", "orderby": "name"}, store.requests[0][1])
        self.assertEqual(2, result["total"])
        self.assertIn("note_to_agent", result)

    def test_parent_traversal_is_rejected(self) -> None:
        result = _execute(GetDataTool(), {"endpoint": "/../wp-admin"}, FakeStore())
        self.assertFalse(result["success"])


class GetReportsToolTests(unittest.TestCase):
    def test_report_endpoint_and_period(self) -> None:
        store = FakeStore({"reports/sales": [{"total_sales": "99.00"}]})
        result = _execute(GetReportsTool(), {"type": "sales", "period": "week"}, store)

        self.assertEqual(("reports/sales", {"period": "week"}), store.requests[0])
        self.assertEqual([{"total_sales": "99.00"}], result["data"])


if __name__ == "__main__":
    unittest.main()
