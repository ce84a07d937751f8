"""
Domain models for the sales and inventory report.

Rows are built by the aggregator, enriched with stock and then annotated by
the analytics passes, so every field exists from construction and is
``None`` until the owning stage fills it.
"""

import math
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Channel(str, Enum):
    """Sales channel of an order"""
    POS = "POS"
    ONLINE = "ONLINE"


class Urgency(str, Enum):
    """Reorder urgency, most pressing first"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class AbcCategory(str, Enum):
    """Revenue tier"""
    A = "A"
    B = "B"
    C = "C"


_GID_PATTERN = re.compile(r"(\d+)$")


def normalize_id(value: Any) -> Optional[str]:
    """
    Normalize a REST numeric id or a GraphQL global id to a numeric string.

    ``gid://shopify/ProductVariant/123`` and ``123`` both become ``"123"``.
    """
    if value is None or value == "":
        return None
    text = str(value)
    match = _GID_PATTERN.search(text)
    return match.group(1) if match else text


@dataclass(frozen=True)
class OrderLine:
    """One line item of a paid order, immutable once fetched"""
    order_id: str
    channel: Channel
    variant_id: Optional[str]
    sku: Optional[str]
    product_title: str
    variant_title: str
    quantity: int
    unit_price: float
    line_revenue: float
    created_at: Optional[datetime] = None
    location_id: Optional[str] = None

    @property
    def aggregation_key(self) -> str:
        """Variant id, else SKU, else product and variant title"""
        if self.variant_id:
            return self.variant_id
        if self.sku:
            return f"SKU:{self.sku}"
        return f"NAME:{self.product_title}__{self.variant_title}"


@dataclass
class VariantRow:
    """Aggregated sales for one variant, with stock and analytics fields"""
    key: str
    variant_id: Optional[str]
    product_title: str
    variant_title: str
    sku: str
    unit_price: float = 0.0
    sold_qty: int = 0
    revenue: float = 0.0

    # Enricher
    inventory_item_id: Optional[str] = None
    inventory_available: Optional[int] = None
    inventory_incoming: Optional[int] = None

    # Reorder point
    sales_30d: Optional[int] = None
    daily_velocity: Optional[float] = None
    rop: Optional[int] = None
    target: Optional[int] = None
    suggested_qty: Optional[int] = None
    coverage_days: Optional[float] = None
    urgency: Optional[Urgency] = None

    # ABC
    abc_category: Optional[AbcCategory] = None
    rank: Optional[int] = None
    revenue_percent: Optional[float] = None
    cumulative_percent: Optional[float] = None

    @property
    def on_hand(self) -> int:
        return int(self.inventory_available or 0)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.coverage_days is not None and math.isinf(self.coverage_days):
            data["coverage_days"] = "inf"
        for name in ("urgency", "abc_category"):
            if data[name] is not None:
                data[name] = data[name].value
        return data


@dataclass(frozen=True)
class InventoryLevel:
    """Stock of one inventory item at one location"""
    inventory_item_id: str
    location_id: str
    available: int
    incoming: Optional[int] = None


@dataclass(frozen=True)
class Location:
    """Stock location"""
    id: str
    name: str
    active: bool


@dataclass(frozen=True)
class VariantInfo:
    """Catalog data returned by the per-variant lookup"""
    variant_id: str
    inventory_item_id: Optional[str]
    inventory_quantity: Optional[int]
    inventory_management: str
    price: float
    sku: str = ""

    @property
    def platform_managed(self) -> bool:
        """Stock tracked by the platform; its level data is authoritative"""
        return self.inventory_management == "shopify"


@dataclass
class StockSnapshot:
    """Resolved stock for one variant"""
    variant_id: str
    inventory_item_id: Optional[str]
    available: int
    incoming: Optional[int]
    price: float
    sku: str
    from_levels: bool


@dataclass(frozen=True)
class DeadStockItem:
    """Variant holding stock without sales in the lookback window"""
    variant_id: str
    sku: str
    quantity: int
    unit_price: float
    total_value: float
    days_stagnant: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CacheEntry:
    """Cached report bundle"""
    key: str
    payload: Any
    timestamp: float
    ttl: float
    hits: int = field(default=0)

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl
