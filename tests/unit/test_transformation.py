"""
Unit Tests - Data Transformation
"""
import re

import httpx
import pytest

from stockpulse.models import VariantRow
from stockpulse.transformation.aggregator import SalesAggregator, aggregate_lines
from stockpulse.transformation.enrichers import InventoryEnricher, chunked


class TestSalesAggregator:
    """Tests for SalesAggregator"""

    def test_two_orders_same_variant(self, order_line_factory):
        lines = [
            order_line_factory(order_id="1", quantity=3, line_revenue=30.0),
            order_line_factory(order_id="2", quantity=5, line_revenue=50.0),
        ]

        rows = SalesAggregator().aggregate(lines)

        assert len(rows) == 1
        assert rows[0].sold_qty == 8
        assert rows[0].revenue == pytest.approx(80.0)

    def test_quantity_is_conserved(self, order_line_factory):
        lines = [
            order_line_factory(variant_id="1", quantity=2),
            order_line_factory(variant_id="2", quantity=7),
            order_line_factory(variant_id=None, sku="S-9", quantity=4),
            order_line_factory(variant_id=None, sku=None, quantity=1),
            order_line_factory(variant_id="1", quantity=0),
        ]

        rows = aggregate_lines(lines)

        assert sum(row.sold_qty for row in rows) == sum(line.quantity for line in lines)

    def test_key_fallbacks(self, order_line_factory):
        lines = [
            order_line_factory(variant_id="10"),
            order_line_factory(variant_id=None, sku="S-1"),
            order_line_factory(variant_id=None, sku=None, product_title="Gorra", variant_title="Roja"),
        ]

        keys = {row.key for row in SalesAggregator().aggregate(lines)}

        assert keys == {"10", "SKU:S-1", "NAME:Gorra__Roja"}

    def test_first_titles_last_price(self, order_line_factory):
        lines = [
            order_line_factory(product_title="Camisa", variant_title="M", sku="A", unit_price=10.0),
            order_line_factory(product_title="Camisa renamed", variant_title="M2", sku="B", unit_price=12.5),
        ]

        row = SalesAggregator().aggregate(lines)[0]

        assert row.product_title == "Camisa"
        assert row.variant_title == "M"
        assert row.sku == "A"
        assert row.unit_price == 12.5

    def test_sorted_by_quantity_then_revenue(self, order_line_factory):
        lines = [
            order_line_factory(variant_id="low", quantity=1, line_revenue=500.0),
            order_line_factory(variant_id="cheap", quantity=5, line_revenue=10.0),
            order_line_factory(variant_id="dear", quantity=5, line_revenue=90.0),
        ]

        rows = SalesAggregator().aggregate(lines)

        assert [row.key for row in rows] == ["dear", "cheap", "low"]

    def test_full_ties_keep_first_seen_order(self, order_line_factory):
        lines = [order_line_factory(variant_id=v, quantity=2, line_revenue=20.0) for v in ["c", "a", "b"]]

        rows = SalesAggregator().aggregate(lines)

        assert [row.key for row in rows] == ["c", "a", "b"]

    def test_empty(self):
        assert SalesAggregator().aggregate([]) == []

    def test_new_rows_have_no_analytics(self, order_line_factory):
        row = SalesAggregator().aggregate([order_line_factory()])[0]

        assert row.inventory_available is None
        assert row.rop is None
        assert row.abc_category is None

    def test_sales_by_key(self, order_line_factory):
        lines = [
            order_line_factory(variant_id="1", quantity=2),
            order_line_factory(variant_id="1", quantity=3),
            order_line_factory(variant_id=None, sku="S", quantity=4),
        ]

        assert SalesAggregator().sales_by_key(lines) == {"1": 5, "SKU:S": 4}


def test_chunked():
    chunks = list(chunked([str(i) for i in range(120)], 50))
    assert [len(c) for c in chunks] == [50, 50, 20]


class FakeInventoryApi:
    """Variants, inventory levels and locations served over MockTransport"""

    def __init__(self, variants=None, levels=None, locations=None):
        self.variants = variants or {}
        self.levels = levels or []
        self.locations = locations or {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(request)

        match = re.search(r"/variants/(\d+)\.json$", path)
        if match:
            variant = self.variants.get(match.group(1))
            if variant is None:
                return httpx.Response(404)
            return httpx.Response(200, json={"variant": variant})

        if path.endswith("/inventory_levels.json"):
            ids = request.url.params["inventory_item_ids"].split(",")
            return httpx.Response(200, json={
                "inventory_levels": [lv for lv in self.levels if str(lv["inventory_item_id"]) in ids],
            })

        match = re.search(r"/locations/(\d+)\.json$", path)
        if match:
            location = self.locations.get(match.group(1))
            if location is None:
                return httpx.Response(404)
            return httpx.Response(200, json={"location": location})

        return httpx.Response(404)

    def count(self, fragment):
        return sum(1 for r in self.requests if fragment in r.url.path)


def variant(variant_id, item_id, management="shopify", quantity=0, price="10.00"):
    return {
        "id": variant_id,
        "inventory_item_id": item_id,
        "inventory_management": management,
        "inventory_quantity": quantity,
        "price": price,
        "sku": f"SKU-{variant_id}",
    }


def row(variant_id, key=None):
    return VariantRow(
        key=key or str(variant_id),
        variant_id=str(variant_id) if variant_id else None,
        product_title="Camisa",
        variant_title="M",
        sku="",
    )


LOCATIONS = {
    "1": {"id": 1, "name": "Centro", "active": True},
    "2": {"id": 2, "name": "Valle", "active": True},
    "3": {"id": 3, "name": "Closed", "active": False},
}


class TestInventoryEnricher:
    """Tests for InventoryEnricher"""

    @pytest.fixture
    def api(self):
        return FakeInventoryApi(
            variants={"100": variant(100, 900)},
            levels=[
                {"inventory_item_id": 900, "location_id": 1, "available": 5},
                {"inventory_item_id": 900, "location_id": 2, "available": 3},
                {"inventory_item_id": 900, "location_id": 3, "available": 100},
            ],
            locations=LOCATIONS,
        )

    async def test_inactive_locations_excluded(self, api, make_client):
        rows = [row(100)]

        await InventoryEnricher(make_client(api.handler)).enrich(rows)

        assert rows[0].inventory_available == 8
        assert rows[0].inventory_item_id == "900"

    async def test_inactive_locations_included(self, api, make_client):
        rows = [row(100)]

        await InventoryEnricher(make_client(api.handler)).enrich(rows, include_inactive_locations=True)

        assert rows[0].inventory_available == 108
        assert api.count("/locations/") == 0

    async def test_locations_fetched_once(self, api, make_client):
        api.variants["101"] = variant(101, 901)
        api.levels += [
            {"inventory_item_id": 901, "location_id": 1, "available": 1},
            {"inventory_item_id": 901, "location_id": 3, "available": 1},
        ]
        rows = [row(100), row(101)]

        enricher = InventoryEnricher(make_client(api.handler))
        await enricher.enrich(rows)

        assert [r.inventory_available for r in rows] == [8, 1]
        assert api.count("/locations/") == 3
        assert enricher.stats.inactive_levels_skipped == 2

    async def test_untracked_variant_uses_quantity(self, make_client):
        api = FakeInventoryApi(variants={"200": variant(200, 902, management=None, quantity=12)})
        rows = [row(200)]

        enricher = InventoryEnricher(make_client(api.handler))
        await enricher.enrich(rows)

        assert rows[0].inventory_available == 12
        assert enricher.stats.fallback_rows == 1

    async def test_tracked_variant_without_levels_is_zero(self, make_client):
        api = FakeInventoryApi(variants={"201": variant(201, 903, management="shopify", quantity=12)})
        rows = [row(201)]

        await InventoryEnricher(make_client(api.handler)).enrich(rows)

        assert rows[0].inventory_available == 0

    async def test_row_without_variant_id(self, api, make_client):
        rows = [row(None, key="SKU:X")]

        await InventoryEnricher(make_client(api.handler)).enrich(rows)

        assert rows[0].inventory_available == 0
        assert api.requests == []

    async def test_failed_variant_lookup_degrades_row(self, api, make_client):
        rows = [row(100), row(404)]

        enricher = InventoryEnricher(make_client(api.handler))
        await enricher.enrich(rows)

        assert rows[0].inventory_available == 8
        assert rows[1].inventory_available == 0
        assert enricher.stats.variant_failures == 1

    async def test_non_json_variant_response_degrades_row(self, api, make_client, recording_sleep):
        def handler(request):
            if request.url.path.endswith("/variants/500.json"):
                return httpx.Response(200, text="<html>maintenance</html>")
            return api.handler(request)

        rows = [row(100), row(500)]

        enricher = InventoryEnricher(make_client(handler))
        await enricher.enrich(rows)

        assert rows[0].inventory_available == 8
        assert rows[1].inventory_available == 0
        assert enricher.stats.variant_failures == 1

    async def test_one_lookup_per_distinct_variant(self, api, make_client):
        rows = [row(100, key="a"), row(100, key="b")]

        await InventoryEnricher(make_client(api.handler)).enrich(rows)

        assert api.count("/variants/") == 1

    async def test_levels_requested_in_chunks(self, make_client):
        variants = {str(i): variant(i, 5000 + i) for i in range(1, 121)}
        api = FakeInventoryApi(variants=variants)

        await InventoryEnricher(make_client(api.handler)).enrich([row(i) for i in range(1, 121)])

        level_requests = [r for r in api.requests if r.url.path.endswith("/inventory_levels.json")]
        sizes = [len(r.url.params["inventory_item_ids"].split(",")) for r in level_requests]
        assert sizes == [50, 50, 20]

    async def test_incoming_summed_when_reported(self, make_client):
        api = FakeInventoryApi(
            variants={"300": variant(300, 904)},
            levels=[
                {"inventory_item_id": 904, "location_id": 1, "available": 2, "incoming": 10},
                {"inventory_item_id": 904, "location_id": 2, "available": 1, "incoming": 5},
            ],
            locations=LOCATIONS,
        )
        rows = [row(300)]

        await InventoryEnricher(make_client(api.handler)).enrich(rows)

        assert rows[0].inventory_available == 3
        assert rows[0].inventory_incoming == 15

    async def test_unknown_location_skipped(self, make_client):
        api = FakeInventoryApi(
            variants={"400": variant(400, 905)},
            levels=[
                {"inventory_item_id": 905, "location_id": 1, "available": 4},
                {"inventory_item_id": 905, "location_id": 99, "available": 50},
            ],
            locations=LOCATIONS,
        )
        rows = [row(400)]

        enricher = InventoryEnricher(make_client(api.handler))
        await enricher.enrich(rows)

        assert rows[0].inventory_available == 4
        assert enricher.stats.location_failures == 1

    async def test_gid_variant_ids(self, make_client):
        api = FakeInventoryApi(
            variants={"500": {**variant(500, 906), "id": "gid://shopify/ProductVariant/500",
                              "inventory_item_id": "gid://shopify/InventoryItem/906"}},
            levels=[{"inventory_item_id": 906, "location_id": 1, "available": 7}],
            locations=LOCATIONS,
        )
        rows = [row(500)]

        await InventoryEnricher(make_client(api.handler)).enrich(rows)

        assert rows[0].inventory_item_id == "906"
        assert rows[0].inventory_available == 7
