"""
Test Suite Configuration
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from stockpulse.ingestion.client import RateLimiter, ShopifyClient
from stockpulse.models import Channel, OrderLine

SHOP = "test-shop.myshopify.com"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that records delays instead of waiting"""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clocked_sleep(fake_clock) -> RecordingSleep:
    """Sleep that advances ``fake_clock``"""
    return RecordingSleep(fake_clock)


@pytest.fixture
async def make_client(recording_sleep):
    """Factory for clients backed by an ``httpx.MockTransport`` handler"""
    clients: List[ShopifyClient] = []

    def factory(handler: Handler, **kwargs: Any) -> ShopifyClient:
        options: Dict[str, Any] = {
            "rate_limiter": RateLimiter(0, sleep=recording_sleep),
            "sleep": recording_sleep,
        }
        options.update(kwargs)
        client = ShopifyClient(SHOP, "test-token", transport=httpx.MockTransport(handler), **options)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()


def make_line_item(
    variant_id: Optional[int] = 111,
    quantity: int = 1,
    price: str = "10.00",
    title: Optional[str] = "Camisa",
    sku: Optional[str] = "SKU-1",
    variant_title: Optional[str] = "M",
    **extra: Any,
) -> Dict[str, Any]:
    item: Dict[str, Any] = {
        "variant_id": variant_id,
        "quantity": quantity,
        "price": price,
        "title": title,
        "sku": sku,
        "variant_title": variant_title,
    }
    item.update(extra)
    return item


def make_order(
    order_id: int = 1,
    created_at: str = "2025-03-10T12:00:00+00:00",
    line_items: Optional[List[Dict[str, Any]]] = None,
    source_name: str = "web",
    subtotal: Optional[str] = None,
    total: Optional[str] = None,
) -> Dict[str, Any]:
    """REST order; subtotal and total default to the sum of the lines"""
    line_items = line_items if line_items is not None else [make_line_item()]
    line_sum = sum(float(li["price"]) * li["quantity"] for li in line_items)
    return {
        "id": order_id,
        "created_at": created_at,
        "source_name": source_name,
        "financial_status": "paid",
        "subtotal_price": subtotal if subtotal is not None else f"{line_sum:.2f}",
        "total_price": total if total is not None else f"{line_sum:.2f}",
        "line_items": line_items,
    }


def make_order_line(
    variant_id: Optional[str] = "111",
    quantity: int = 1,
    line_revenue: float = 10.0,
    order_id: str = "1",
    sku: Optional[str] = None,
    product_title: str = "Camisa",
    variant_title: str = "M",
    unit_price: float = 10.0,
    channel: Channel = Channel.ONLINE,
    created_at: Optional[datetime] = None,
) -> OrderLine:
    return OrderLine(
        order_id=order_id,
        channel=channel,
        variant_id=variant_id,
        sku=sku,
        product_title=product_title,
        variant_title=variant_title,
        quantity=quantity,
        unit_price=unit_price,
        line_revenue=line_revenue,
        created_at=created_at or datetime(2025, 3, 10, 12, tzinfo=timezone.utc),
    )


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def line_item_factory():
    return make_line_item


@pytest.fixture
def order_line_factory():
    return make_order_line
