"""
Synthetic Shop Generator

Generates a Shopify-shaped store for testing and development.
Includes:
- Catalog variants with inventory items
- Locations, some of them inactive
- Inventory levels per item and location
- Paid orders with REST-shaped line items
- An httpx transport that serves all of it as the Admin REST API
"""

import base64
import json
import random
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from faker import Faker

fake = Faker()

SOURCES = [
    ("pos", 0.35),
    ("web", 0.55),
    ("shopify_draft_order", 0.10),
]

SIZES = ["S", "M", "L", "XL"]


# =============================================================================
# GENERATORS
# =============================================================================

class CatalogGenerator:
    """Generate catalog variants in the REST ``variant`` layout"""

    def __init__(self, rng: random.Random):
        self.rng = rng
        self._next_id = 40000000000

    def _id(self) -> int:
        self._next_id += self.rng.randint(1, 999)
        return self._next_id

    def generate(self, n_products: int = 20, max_variants: int = 3) -> List[Dict[str, Any]]:
        variants = []
        for _ in range(n_products):
            product_id = self._id()
            product_title = f"{fake.word().title()} {fake.word().title()}"
            price = round(self.rng.uniform(50, 1500), 2)
            for size in SIZES[:self.rng.randint(1, max_variants)]:
                variant_id = self._id()
                variants.append({
                    "id": variant_id,
                    "product_id": product_id,
                    "product_title": product_title,
                    "title": size,
                    "sku": f"SKU-{variant_id % 1000000:06d}",
                    "price": f"{price:.2f}",
                    "inventory_item_id": self._id(),
                    # A few untracked items exercise the quantity fallback
                    "inventory_management": "shopify" if self.rng.random() > 0.1 else None,
                    "inventory_quantity": self.rng.randint(0, 40),
                })
        return variants


class LocationGenerator:
    """Generate store locations"""

    def __init__(self, rng: random.Random):
        self.rng = rng

    def generate(self, n_active: int = 2, n_inactive: int = 1) -> List[Dict[str, Any]]:
        locations = []
        for i in range(n_active + n_inactive):
            locations.append({
                "id": 70000000 + i,
                "name": f"{fake.city()} Store",
                "active": i < n_active,
            })
        return locations


class OrderGenerator:
    """Generate paid orders in the REST ``order`` layout"""

    def __init__(
        self,
        variants: List[Dict[str, Any]],
        rng: random.Random,
        pos_location_ids: Optional[List[int]] = None,
    ):
        self.variants = variants
        self.rng = rng
        self.pos_location_ids = pos_location_ids or []
        self._next_id = 5000000000

    def generate(self, n: int, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        span = (end - start).total_seconds()
        orders = []

        for _ in range(n):
            self._next_id += 1
            created_at = start + timedelta(seconds=self.rng.uniform(0, span))
            source = self.rng.choices(
                [s[0] for s in SOURCES],
                weights=[s[1] for s in SOURCES],
            )[0]

            line_items = []
            for variant in self.rng.sample(self.variants, k=min(len(self.variants), self.rng.randint(1, 3))):
                quantity = self.rng.choices([1, 2, 3, 4], weights=[0.6, 0.25, 0.1, 0.05])[0]
                line_items.append({
                    "id": self._next_id * 10 + len(line_items),
                    "variant_id": variant["id"],
                    "sku": variant["sku"],
                    "title": variant["product_title"],
                    "name": f"{variant['product_title']} - {variant['title']}",
                    "variant_title": variant["title"],
                    "quantity": quantity,
                    "price": variant["price"],
                    "total_discount": "0.00",
                })

            subtotal = sum(float(li["price"]) * li["quantity"] for li in line_items)
            discount = round(subtotal * self.rng.choice([0, 0, 0, 0.1, 0.15]), 2)

            orders.append({
                "id": self._next_id,
                "name": f"#{self._next_id % 100000}",
                "created_at": created_at.isoformat(),
                "financial_status": "paid",
                "source_name": source,
                "subtotal_price": f"{subtotal:.2f}",
                "total_discounts": f"{discount:.2f}",
                "total_price": f"{subtotal - discount:.2f}",
                "line_items": line_items,
            })
            if source == "pos" and self.pos_location_ids:
                orders[-1]["location_id"] = self.rng.choice(self.pos_location_ids)

        orders.sort(key=lambda o: o["created_at"])
        return orders


def generate_levels(
    variants: List[Dict[str, Any]],
    locations: List[Dict[str, Any]],
    rng: random.Random,
) -> List[Dict[str, Any]]:
    """One inventory level per tracked item and location"""
    levels = []
    for variant in variants:
        if variant["inventory_management"] != "shopify":
            continue
        for location in locations:
            levels.append({
                "inventory_item_id": variant["inventory_item_id"],
                "location_id": location["id"],
                "available": rng.randint(0, 30),
            })
    return levels


# =============================================================================
# FAKE ADMIN API
# =============================================================================

def _encode_page_info(state: Dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(state).encode()).decode()


def _decode_page_info(token: str) -> Dict[str, Any]:
    return json.loads(base64.urlsafe_b64decode(token.encode()).decode())


def _parse(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class SyntheticShop:
    """
    In-memory store served through ``httpx.MockTransport``.

    Order filtering is inclusive on both ends, like the REST endpoint.

    Example:
        shop = SyntheticShop.generate(seed=42)
        client = ShopifyClient("synthetic.myshopify.com", "token", transport=shop.transport())
    """
    variants: List[Dict[str, Any]] = field(default_factory=list)
    locations: List[Dict[str, Any]] = field(default_factory=list)
    levels: List[Dict[str, Any]] = field(default_factory=list)
    orders: List[Dict[str, Any]] = field(default_factory=list)
    requests: List[str] = field(default_factory=list)

    @classmethod
    def generate(
        cls,
        seed: int = 42,
        n_products: int = 20,
        n_orders: int = 200,
        days: int = 120,
        now: Optional[datetime] = None,
    ) -> "SyntheticShop":
        rng = random.Random(seed)
        Faker.seed(seed)
        now = now or datetime.now(timezone.utc)

        variants = CatalogGenerator(rng).generate(n_products)
        locations = LocationGenerator(rng).generate()
        levels = generate_levels(variants, locations, rng)
        # Leave part of the catalog unsold so dead stock shows up
        sold = variants[: max(1, int(len(variants) * 0.7))]
        stores = [loc["id"] for loc in locations if loc["active"]]
        orders = OrderGenerator(sold, rng, pos_location_ids=stores).generate(n_orders, now - timedelta(days=days), now)
        return cls(variants=variants, locations=locations, levels=levels, orders=orders)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)

        if path.endswith("/orders.json"):
            return self._orders(request)

        match = re.search(r"/variants/(\d+)\.json$", path)
        if match:
            variant = next((v for v in self.variants if str(v["id"]) == match.group(1)), None)
            if variant is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            return httpx.Response(200, json={"variant": variant})

        if path.endswith("/inventory_levels.json"):
            ids = set(request.url.params.get("inventory_item_ids", "").split(","))
            levels = [lv for lv in self.levels if str(lv["inventory_item_id"]) in ids]
            return httpx.Response(200, json={"inventory_levels": levels})

        match = re.search(r"/locations/(\d+)\.json$", path)
        if match:
            location = next((loc for loc in self.locations if str(loc["id"]) == match.group(1)), None)
            if location is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            return httpx.Response(200, json={"location": location})

        return httpx.Response(404, json={"errors": "Not Found"})

    def _orders(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        limit = int(params.get("limit", 50))

        if params.get("page_info"):
            state = _decode_page_info(params["page_info"])
        else:
            state = {"offset": 0, "min": params.get("created_at_min"), "max": params.get("created_at_max")}

        start, end = _parse(state["min"]), _parse(state["max"])
        matching = [
            order for order in self.orders
            if (start is None or _parse(order["created_at"]) >= start)
            and (end is None or _parse(order["created_at"]) <= end)
        ]

        offset = state["offset"]
        page = matching[offset:offset + limit]
        headers = {}
        if offset + limit < len(matching):
            next_state = {**state, "offset": offset + limit}
            query = urlencode({"limit": limit, "page_info": _encode_page_info(next_state)})
            url = f"{request.url.scheme}://{request.url.host}{request.url.path}?{query}"
            headers["Link"] = f'<{url}>; rel="next"'

        return httpx.Response(200, json={"orders": page}, headers=headers)
