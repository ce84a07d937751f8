"""
Paginated Order Collector

Drives the Shopify client across pages to assemble every paid order line in
a half-open date range ``[start, end)``. Two API generations are supported
behind one interface:
- REST: ``orders.json`` with Link-header pagination
- GraphQL: ``orders`` connection with ``pageInfo`` cursors

GraphQL nodes are reshaped into the REST record layout before line
extraction, so downstream code sees one format.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import structlog

from stockpulse.exceptions import CollectionError
from stockpulse.ingestion.client import ApiRequest, ApiResponse, ShopifyClient
from stockpulse.models import Channel, OrderLine, normalize_id
from stockpulse.quality.validators import OrderValidator

logger = structlog.get_logger(__name__)

DEFAULT_MAX_PAGES = 100
DEFAULT_PAGE_SIZE = 250


@dataclass
class CollectionStats:
    """Counters for one ``collect`` call"""
    pages: int = 0
    orders: int = 0
    lines: int = 0
    dropped_orders: int = 0
    dropped_line_items: int = 0
    out_of_range: int = 0
    hit_page_ceiling: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 API timestamp into an aware UTC datetime"""
    return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def attribute_line_revenue(order: Dict[str, Any], line_item: Dict[str, Any]) -> float:
    """
    Revenue attributed to one line item.

    The order total (after order-level discounts) is split across lines in
    proportion to each line's share of the order subtotal. Orders without a
    usable subtotal fall back to the line's own discounted total.
    """
    line_subtotal = _to_float(line_item.get("price")) * _to_int(line_item.get("quantity"))
    order_subtotal = _to_float(order.get("subtotal_price"))

    if order_subtotal > 0 and order.get("total_price") is not None:
        return (line_subtotal / order_subtotal) * _to_float(order.get("total_price"))

    if line_item.get("discounted_total") is not None:
        return _to_float(line_item.get("discounted_total"))

    return max(0.0, line_subtotal - _to_float(line_item.get("total_discount")))


def order_to_lines(order: Dict[str, Any], created_at: Optional[datetime] = None) -> List[OrderLine]:
    """Convert a validated REST-shaped order record into order lines"""
    channel = Channel.POS if str(order.get("source_name") or "").lower() == "pos" else Channel.ONLINE
    order_id = str(order.get("id"))

    lines = []
    for li in order["line_items"]:
        lines.append(OrderLine(
            order_id=order_id,
            channel=channel,
            variant_id=normalize_id(li.get("variant_id")),
            sku=li.get("sku") or None,
            product_title=li.get("title") or li.get("name") or "Product",
            variant_title=li.get("variant_title") or "Default Title",
            quantity=max(0, _to_int(li.get("quantity"))),
            unit_price=_to_float(li.get("price")),
            line_revenue=attribute_line_revenue(order, li),
            created_at=created_at,
            location_id=normalize_id(order.get("location_id")),
        ))
    return lines


class OrderCollector(ABC):
    """
    Base collector: pagination loop, validation and range filtering.

    Subclasses only describe how to build requests and read pages.
    """

    def __init__(
        self,
        client: ShopifyClient,
        validator: Optional[OrderValidator] = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.client = client
        self.validator = validator or OrderValidator()
        self.max_pages = max_pages
        self.page_size = page_size
        self.stats = CollectionStats()

    @abstractmethod
    def first_request(self, start: datetime, end: datetime) -> ApiRequest:
        """Request for the first page"""

    @abstractmethod
    def next_request(self, token: str, start: datetime, end: datetime) -> ApiRequest:
        """Request for the page identified by ``token``"""

    @abstractmethod
    def read_page(self, response: ApiResponse) -> Tuple[List[Any], Optional[str]]:
        """Return REST-shaped order records and the next-page token"""

    async def collect(self, start: datetime, end: datetime) -> List[OrderLine]:
        """
        Collect all order lines created in ``[start, end)``.

        Raises:
            CollectionError: the first page could not be fetched
        """
        start, end = as_utc(start), as_utc(end)
        self.stats = CollectionStats()
        lines: List[OrderLine] = []
        request = self.first_request(start, end)

        for page_number in range(1, self.max_pages + 1):
            response = await self.client.safe_call(request, f"orders page {page_number}")

            if response is None:
                if page_number == 1:
                    raise CollectionError(
                        "Failed to fetch the first page of orders",
                        context={"start": start.isoformat(), "end": end.isoformat()},
                    )
                logger.warning("Failed to fetch orders page, stopping pagination", page=page_number)
                break

            self.stats.pages += 1
            records, next_token = self.read_page(response)
            valid, result = self.validator.validate_page(records)
            self.stats.dropped_orders += result.dropped_records
            self.stats.dropped_line_items += result.dropped_line_items

            for record in valid:
                try:
                    created_at = parse_timestamp(record["created_at"])
                except ValueError:
                    self.stats.dropped_orders += 1
                    logger.warning("Dropped order with unparseable created_at", order_id=record.get("id"))
                    continue

                if created_at < start or created_at >= end:
                    self.stats.out_of_range += 1
                    continue

                order_lines = order_to_lines(record, created_at)
                self.stats.orders += 1
                self.stats.lines += len(order_lines)
                lines.extend(order_lines)

            if not next_token:
                break
            request = self.next_request(next_token, start, end)
        else:
            self.stats.hit_page_ceiling = True
            logger.warning("Reached pagination ceiling", max_pages=self.max_pages)

        logger.info(
            "Collected orders",
            orders=self.stats.orders,
            lines=self.stats.lines,
            pages=self.stats.pages,
            dropped_orders=self.stats.dropped_orders,
        )
        return lines


class RestOrderCollector(OrderCollector):
    """Orders via ``orders.json`` and Link-header pagination"""

    def first_request(self, start: datetime, end: datetime) -> ApiRequest:
        return ApiRequest(
            "/orders.json",
            params={
                "status": "any",
                "financial_status": "paid",
                "limit": self.page_size,
                "created_at_min": start.isoformat(),
                "created_at_max": end.isoformat(),
            },
        )

    def next_request(self, token: str, start: datetime, end: datetime) -> ApiRequest:
        return ApiRequest("/orders.json", params=dict(parse_qsl(token)))

    def read_page(self, response: ApiResponse) -> Tuple[List[Any], Optional[str]]:
        records = response.json.get("orders") or []
        return records, response.next_token


ORDERS_QUERY = """
query Orders($first: Int!, $after: String, $query: String) {
  orders(first: $first, after: $after, query: $query, sortKey: CREATED_AT) {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        legacyResourceId
        createdAt
        sourceName
        retailLocation { id }
        subtotalPriceSet { shopMoney { amount } }
        totalPriceSet { shopMoney { amount } }
        lineItems(first: 250) {
          edges {
            node {
              title
              name
              sku
              variantTitle
              quantity
              originalUnitPriceSet { shopMoney { amount } }
              discountedTotalSet { shopMoney { amount } }
              variant { id }
            }
          }
        }
      }
    }
  }
}
"""


def _money(node: Optional[Dict[str, Any]]) -> Optional[str]:
    if not node:
        return None
    return (node.get("shopMoney") or {}).get("amount")


def graphql_order_to_record(node: Dict[str, Any]) -> Dict[str, Any]:
    """Reshape a GraphQL order node into the REST order layout"""
    record: Dict[str, Any] = {
        "id": node.get("legacyResourceId") or normalize_id(node.get("id")),
        "created_at": node.get("createdAt"),
        "source_name": node.get("sourceName"),
        "location_id": normalize_id((node.get("retailLocation") or {}).get("id")),
        "subtotal_price": _money(node.get("subtotalPriceSet")),
        "total_price": _money(node.get("totalPriceSet")),
    }

    connection = node.get("lineItems")
    if isinstance(connection, dict):
        line_items = []
        for edge in connection.get("edges") or []:
            li = edge.get("node") or {}
            line_items.append({
                "title": li.get("title"),
                "name": li.get("name"),
                "sku": li.get("sku"),
                "variant_title": li.get("variantTitle"),
                "quantity": li.get("quantity"),
                "price": _money(li.get("originalUnitPriceSet")),
                "discounted_total": _money(li.get("discountedTotalSet")),
                "variant_id": normalize_id((li.get("variant") or {}).get("id")),
            })
        record["line_items"] = line_items

    return record


class GraphQLOrderCollector(OrderCollector):
    """Orders via the GraphQL ``orders`` connection and cursors"""

    def _variables(self, start: datetime, end: datetime, after: Optional[str]) -> Dict[str, Any]:
        search = (
            f"financial_status:paid "
            f"created_at:>='{start.isoformat()}' created_at:<'{end.isoformat()}'"
        )
        return {"first": self.page_size, "after": after, "query": search}

    def first_request(self, start: datetime, end: datetime) -> ApiRequest:
        return ApiRequest.graphql(ORDERS_QUERY, self._variables(start, end, None))

    def next_request(self, token: str, start: datetime, end: datetime) -> ApiRequest:
        return ApiRequest.graphql(ORDERS_QUERY, self._variables(start, end, token))

    def read_page(self, response: ApiResponse) -> Tuple[List[Any], Optional[str]]:
        orders = ((response.json.get("data") or {}).get("orders")) or {}
        records = [graphql_order_to_record(edge.get("node") or {}) for edge in orders.get("edges") or []]

        page_info = orders.get("pageInfo") or {}
        next_token = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return records, next_token


def build_collector(client: ShopifyClient, api_generation: str = "rest", **kwargs: Any) -> OrderCollector:
    """Select the collector adapter for an API generation"""
    collectors = {
        "rest": RestOrderCollector,
        "graphql": GraphQLOrderCollector,
    }
    collector_cls = collectors.get(api_generation.lower())
    if not collector_cls:
        raise ValueError(f"Unsupported API generation: {api_generation}")
    return collector_cls(client, **kwargs)
