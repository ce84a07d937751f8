"""
Dead Stock Detection

Finds variants that hold stock but did not sell during a trailing lookback
window, valued at their current price.
"""

from typing import Iterable, List, Optional, Sequence, Set

import structlog

from stockpulse.models import DeadStockItem, OrderLine
from stockpulse.transformation.enrichers import InventoryEnricher

logger = structlog.get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 90
DEFAULT_SKIP_PERIODS = ("weekly", "monthly")
LARGE_REPORT_DAYS = 7
LARGE_CATALOG_VARIANTS = 500


class DeadStockPolicy:
    """
    Decides whether a report runs dead-stock detection.

    Detection costs one extra lookback collection plus stock lookups, so it
    is skipped for the configured periods and for long reports over large
    catalogs.
    """

    def __init__(
        self,
        skip_periods: Sequence[str] = DEFAULT_SKIP_PERIODS,
        max_report_days: int = LARGE_REPORT_DAYS,
        max_variants: int = LARGE_CATALOG_VARIANTS,
    ):
        self.skip_periods = {p.lower() for p in skip_periods}
        self.max_report_days = max_report_days
        self.max_variants = max_variants

    def skip_reason(self, period: str, report_days: float, variant_count: int) -> Optional[str]:
        if period.lower() in self.skip_periods:
            return f"disabled for {period} reports"
        if report_days > self.max_report_days and variant_count > self.max_variants:
            return "report too large"
        return None

    def should_run(self, period: str, report_days: float, variant_count: int) -> bool:
        return self.skip_reason(period, report_days, variant_count) is None


def sold_variant_ids(order_lines: Iterable[OrderLine]) -> Set[str]:
    return {line.variant_id for line in order_lines if line.variant_id}


class DeadStockDetector:
    """
    Example:
        detector = DeadStockDetector(enricher, lookback_days=90)
        items = await detector.detect(candidate_ids, sold_ids)
    """

    def __init__(self, enricher: InventoryEnricher, lookback_days: int = DEFAULT_LOOKBACK_DAYS):
        self.enricher = enricher
        self.lookback_days = lookback_days

    async def detect(
        self,
        candidate_variant_ids: Iterable[str],
        sold_ids: Set[str],
        include_inactive_locations: bool = False,
    ) -> List[DeadStockItem]:
        """Candidates unsold in the lookback with stock on hand, most valuable first"""
        unsold = [v for v in dict.fromkeys(candidate_variant_ids) if v and v not in sold_ids]
        if not unsold:
            return []

        snapshots = await self.enricher.resolve_stock(unsold, include_inactive_locations)

        items = [
            DeadStockItem(
                variant_id=variant_id,
                sku=snapshot.sku,
                quantity=snapshot.available,
                unit_price=snapshot.price,
                total_value=snapshot.available * snapshot.price,
                days_stagnant=self.lookback_days,
            )
            for variant_id, snapshot in snapshots.items()
            if snapshot.available > 0
        ]
        items.sort(key=lambda item: item.total_value, reverse=True)

        logger.info(
            "Dead stock detection complete",
            candidates=len(unsold),
            dead=len(items),
            lookback_days=self.lookback_days,
        )
        return items
