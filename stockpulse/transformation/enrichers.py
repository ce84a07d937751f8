"""
Variant and Inventory Enrichment

Resolves aggregated rows to catalog variants, inventory items and stock
levels across locations. Includes:
- One rate-limited variant lookup per distinct variant
- Inventory level queries in chunks of at most 50 items
- Lazy, memoised location lookups for active-location filtering
- Fallback to the variant's own quantity for items not managed by Shopify

Lookup failures degrade the affected row to zero stock and are counted;
they never abort a report.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from stockpulse.exceptions import PartialEnrichmentFailure
from stockpulse.ingestion.client import ApiRequest, ShopifyClient
from stockpulse.models import (
    InventoryLevel,
    Location,
    StockSnapshot,
    VariantInfo,
    VariantRow,
    normalize_id,
)

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 50


@dataclass
class EnrichmentStats:
    """Counters for one enrichment pass"""
    variants_requested: int = 0
    variants_resolved: int = 0
    variant_failures: int = 0
    chunks: int = 0
    chunk_failures: int = 0
    location_failures: int = 0
    inactive_levels_skipped: int = 0
    fallback_rows: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def chunked(items: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_variant(payload: Dict[str, Any]) -> VariantInfo:
    """Map a REST ``variant`` object to ``VariantInfo``"""
    try:
        price = float(payload.get("price") or 0)
    except (TypeError, ValueError):
        price = 0.0
    return VariantInfo(
        variant_id=normalize_id(payload.get("id")) or "",
        inventory_item_id=normalize_id(payload.get("inventory_item_id")),
        inventory_quantity=_optional_int(payload.get("inventory_quantity")),
        inventory_management=payload.get("inventory_management") or "",
        price=price,
        sku=payload.get("sku") or "",
    )


def parse_level(payload: Dict[str, Any]) -> Optional[InventoryLevel]:
    """Map a REST ``inventory_level`` object to ``InventoryLevel``"""
    item_id = normalize_id(payload.get("inventory_item_id"))
    location_id = normalize_id(payload.get("location_id"))
    if not item_id or not location_id:
        return None
    return InventoryLevel(
        inventory_item_id=item_id,
        location_id=location_id,
        available=_optional_int(payload.get("available")) or 0,
        incoming=_optional_int(payload.get("incoming")),
    )


def parse_location(payload: Dict[str, Any]) -> Location:
    return Location(
        id=normalize_id(payload.get("id")) or "",
        name=payload.get("name") or "",
        active=bool(payload.get("active", True)),
    )


class LocationDirectory:
    """
    Per-run location lookup.

    Each location is fetched at most once; failed lookups are remembered as
    unknown for the rest of the run.
    """

    def __init__(self, client: ShopifyClient):
        self.client = client
        self._locations: Dict[str, Optional[Location]] = {}
        self.fetches = 0

    async def get(self, location_id: str) -> Optional[Location]:
        if location_id in self._locations:
            return self._locations[location_id]

        self.fetches += 1
        response = await self.client.safe_call(
            ApiRequest(f"/locations/{location_id}.json"),
            f"location {location_id}",
        )
        location = None
        if response is not None and response.json.get("location"):
            location = parse_location(response.json["location"])

        self._locations[location_id] = location
        return location


class InventoryEnricher:
    """
    Populates inventory fields on variant rows.

    Example:
        enricher = InventoryEnricher(client)
        await enricher.enrich(rows, include_inactive_locations=False)
    """

    def __init__(
        self,
        client: ShopifyClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        locations: Optional[LocationDirectory] = None,
    ):
        self.client = client
        self.chunk_size = chunk_size
        self.locations = locations or LocationDirectory(client)
        self.stats = EnrichmentStats()

    def _record_failure(self, failure: PartialEnrichmentFailure) -> None:
        logger.warning("Partial enrichment failure", reason=failure.message, **failure.context)

    async def fetch_variant(self, variant_id: str) -> Optional[VariantInfo]:
        response = await self.client.safe_call(
            ApiRequest(f"/variants/{variant_id}.json"),
            f"variant {variant_id}",
        )
        if response is None or not response.json.get("variant"):
            self.stats.variant_failures += 1
            self._record_failure(PartialEnrichmentFailure(
                "Variant lookup failed",
                context={"variant_id": variant_id},
            ))
            return None

        self.stats.variants_resolved += 1
        return parse_variant(response.json["variant"])

    async def fetch_variants(self, variant_ids: Iterable[str]) -> Dict[str, VariantInfo]:
        """Look up variants one at a time, in first-seen order"""
        ids = list(dict.fromkeys(v for v in variant_ids if v))
        self.stats.variants_requested += len(ids)

        variants: Dict[str, VariantInfo] = {}
        for variant_id in ids:
            info = await self.fetch_variant(variant_id)
            if info is not None:
                variants[variant_id] = info

        logger.info(
            "Variant lookups complete",
            requested=len(ids),
            resolved=len(variants),
            failed=len(ids) - len(variants),
        )
        return variants

    async def fetch_inventory_levels(self, item_ids: Iterable[str]) -> List[InventoryLevel]:
        """Query levels for inventory items in chunks"""
        ids = list(dict.fromkeys(i for i in item_ids if i))
        levels: List[InventoryLevel] = []

        for chunk in chunked(ids, self.chunk_size):
            self.stats.chunks += 1
            response = await self.client.safe_call(
                ApiRequest("/inventory_levels.json", params={"inventory_item_ids": ",".join(chunk)}),
                f"inventory chunk of {len(chunk)} items",
            )
            if response is None or response.json.get("inventory_levels") is None:
                self.stats.chunk_failures += 1
                self._record_failure(PartialEnrichmentFailure(
                    "Inventory chunk lookup failed",
                    context={"items": len(chunk), "first_item": chunk[0]},
                ))
                continue

            for payload in response.json["inventory_levels"]:
                level = parse_level(payload)
                if level is not None:
                    levels.append(level)

        return levels

    async def sum_levels(
        self,
        levels: List[InventoryLevel],
        include_inactive_locations: bool = False,
    ) -> Dict[str, Tuple[int, Optional[int]]]:
        """
        Sum available (and incoming) stock per inventory item.

        Items appear in the result only if at least one level was counted.
        """
        totals: Dict[str, Tuple[int, Optional[int]]] = {}

        for level in levels:
            if not include_inactive_locations:
                location = await self.locations.get(level.location_id)
                if location is None:
                    self.stats.location_failures += 1
                    self._record_failure(PartialEnrichmentFailure(
                        "Location lookup failed, level skipped",
                        context={"location_id": level.location_id, "inventory_item_id": level.inventory_item_id},
                    ))
                    continue
                if not location.active:
                    self.stats.inactive_levels_skipped += 1
                    continue

            available, incoming = totals.get(level.inventory_item_id, (0, None))
            available += level.available
            if level.incoming is not None:
                incoming = (incoming or 0) + level.incoming
            totals[level.inventory_item_id] = (available, incoming)

        return totals

    async def resolve_stock(
        self,
        variant_ids: Iterable[str],
        include_inactive_locations: bool = False,
    ) -> Dict[str, StockSnapshot]:
        """Resolve current stock for variants; unresolvable variants are omitted"""
        variants = await self.fetch_variants(variant_ids)

        item_ids = [info.inventory_item_id for info in variants.values() if info.inventory_item_id]
        levels = await self.fetch_inventory_levels(item_ids) if item_ids else []
        totals = await self.sum_levels(levels, include_inactive_locations)

        snapshots: Dict[str, StockSnapshot] = {}
        for variant_id, info in variants.items():
            item_total = totals.get(info.inventory_item_id) if info.inventory_item_id else None

            if item_total is not None:
                available, incoming = item_total
                from_levels = True
            else:
                # Shopify-managed items with no countable level really hold 0
                if not info.platform_managed and info.inventory_quantity is not None:
                    available = info.inventory_quantity
                else:
                    available = 0
                incoming = None
                from_levels = False

            snapshots[variant_id] = StockSnapshot(
                variant_id=variant_id,
                inventory_item_id=info.inventory_item_id,
                available=available,
                incoming=incoming,
                price=info.price,
                sku=info.sku,
                from_levels=from_levels,
            )

        return snapshots

    async def enrich(
        self,
        rows: List[VariantRow],
        include_inactive_locations: bool = False,
    ) -> List[VariantRow]:
        """Populate inventory fields in place and return the same rows"""
        variant_ids = [row.variant_id for row in rows if row.variant_id]
        snapshots = await self.resolve_stock(variant_ids, include_inactive_locations) if variant_ids else {}

        for row in rows:
            snapshot = snapshots.get(row.variant_id) if row.variant_id else None
            if snapshot is None:
                # SKU/name keyed rows and failed lookups cannot be reconciled
                row.inventory_available = 0
                continue

            row.inventory_item_id = snapshot.inventory_item_id
            row.inventory_available = snapshot.available
            row.inventory_incoming = snapshot.incoming
            if not snapshot.from_levels:
                self.stats.fallback_rows += 1

        logger.info(
            "Inventory enrichment complete",
            rows=len(rows),
            variants=len(snapshots),
            chunk_failures=self.stats.chunk_failures,
            location_lookups=self.locations.fetches,
        )
        return rows
