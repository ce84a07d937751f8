"""
Report Engine

Orchestrates one sales and inventory report run:

    cache -> collect -> aggregate -> enrich -> reorder / ABC / dead stock

Each run is a single sequential task. The cache is the only state shared
between runs; location lookups and enrichment counters are per run.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from prometheus_client import Counter, Histogram

from stockpulse.analytics.abc import classify_abc
from stockpulse.analytics.dead_stock import DeadStockDetector, DeadStockPolicy, sold_variant_ids
from stockpulse.analytics.reorder import build_reorder_rows
from stockpulse.config import Settings, get_settings
from stockpulse.exceptions import CollectionError
from stockpulse.ingestion.client import ClientStats, ShopifyClient
from stockpulse.ingestion.collector import OrderCollector, as_utc, build_collector
from stockpulse.models import Channel, DeadStockItem, OrderLine, VariantRow
from stockpulse.reporting.periods import DateRange, compute_range, previous_range
from stockpulse.serving.cache import ReportCache, build_cache_key
from stockpulse.transformation.aggregator import SalesAggregator
from stockpulse.transformation.enrichers import InventoryEnricher, LocationDirectory

logger = structlog.get_logger(__name__)

REPORTS = Counter(
    "stockpulse_reports_total",
    "Report requests by period and source",
    ["period", "source"],
)

REPORT_DURATION = Histogram(
    "stockpulse_report_duration_seconds",
    "Time spent computing uncached reports",
    ["period"],
)


@dataclass
class EngineOptions:
    """Tunable knobs for report runs"""
    dead_stock_lookback_days: int = 90
    rop_lead_days: int = 7
    rop_safety_days: int = 3
    review_window_days: int = 14
    sales_lookback_days: int = 30
    rate_limit_calls_per_second: float = 5.0
    cache_max_entries: int = 15
    include_inactive_locations: bool = False
    dead_stock_skip_periods: Tuple[str, ...] = ("weekly", "monthly")
    timezone: str = "America/Monterrey"
    api_generation: str = "rest"
    page_size: int = 250
    max_pages: int = 100
    inventory_chunk_size: int = 50
    slow_report_ms: float = 15000

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EngineOptions":
        settings = settings or get_settings()
        return cls(
            dead_stock_lookback_days=settings.analytics.dead_stock_days,
            rop_lead_days=settings.analytics.rop_lead_days,
            rop_safety_days=settings.analytics.rop_safety_days,
            review_window_days=settings.analytics.review_window_days,
            sales_lookback_days=settings.analytics.sales_lookback_days,
            rate_limit_calls_per_second=settings.rate_limit.calls_per_second,
            cache_max_entries=settings.cache.max_entries,
            include_inactive_locations=settings.analytics.include_inactive_locations,
            dead_stock_skip_periods=tuple(settings.analytics.dead_stock_skip_periods),
            timezone=settings.shopify.timezone,
            api_generation=settings.shopify.api_generation,
            page_size=settings.shopify.page_size,
            max_pages=settings.rate_limit.max_pages,
            inventory_chunk_size=settings.rate_limit.inventory_chunk_size,
            slow_report_ms=settings.monitoring.slow_report_ms,
        )


@dataclass
class ReportRequest:
    """What to report on"""
    period: str = "daily"
    today: bool = False
    include_all_locations: Optional[bool] = None
    bypass_cache: bool = False
    now: Optional[datetime] = None


@dataclass
class ReportResult:
    """Result bundle of one report run"""
    period: str
    label: str
    start: datetime
    end: datetime
    include_all_locations: bool
    rows: List[VariantRow] = field(default_factory=list)
    rop_rows: List[VariantRow] = field(default_factory=list)
    abc_rows: List[VariantRow] = field(default_factory=list)
    dead_stock: List[DeadStockItem] = field(default_factory=list)
    dead_stock_skipped: Optional[str] = None
    totals: Dict[str, Any] = field(default_factory=dict)
    channels: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    locations: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    comparison: Optional[Dict[str, Any]] = None
    timing: Dict[str, float] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
    cached: bool = False
    cache_age_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "label": self.label,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "include_all_locations": self.include_all_locations,
            "rows": [row.to_dict() for row in self.rows],
            "rop_rows": [row.to_dict() for row in self.rop_rows],
            "abc_rows": [row.to_dict() for row in self.abc_rows],
            "dead_stock": [item.to_dict() for item in self.dead_stock],
            "dead_stock_skipped": self.dead_stock_skipped,
            "totals": self.totals,
            "channels": self.channels,
            "locations": self.locations,
            "comparison": self.comparison,
            "timing": self.timing,
            "stats": self.stats,
            "cached": self.cached,
            "cache_age_seconds": self.cache_age_seconds,
        }


def compute_totals(lines: Sequence[OrderLine]) -> Dict[str, Any]:
    return {
        "qty": sum(line.quantity for line in lines),
        "revenue": sum(line.line_revenue for line in lines),
        "orders": len({line.order_id for line in lines}),
    }


def channel_breakdown(lines: Sequence[OrderLine]) -> Dict[str, Dict[str, Any]]:
    """Orders, units and revenue per sales channel"""
    breakdown: Dict[str, Dict[str, Any]] = {}
    for channel in Channel:
        channel_lines = [line for line in lines if line.channel == channel]
        breakdown[channel.value] = compute_totals(channel_lines)
    return breakdown


ONLINE_LOCATION = "Online"
UNKNOWN_POS_LOCATION = "POS (Location Unknown)"


async def _location_name(line: OrderLine, directory: LocationDirectory) -> str:
    if line.location_id:
        location = await directory.get(line.location_id)
        if location is not None and location.name:
            return location.name
        return f"Location {line.location_id}"
    if line.channel == Channel.POS:
        return UNKNOWN_POS_LOCATION
    return ONLINE_LOCATION


async def location_breakdown(
    lines: Sequence[OrderLine],
    directory: LocationDirectory,
) -> Dict[str, Dict[str, Any]]:
    """
    Orders, units and revenue per order location.

    Orders without a location count as online, or as an unknown store for
    POS orders. Location names come from the run's memoised directory.
    """
    breakdown: Dict[str, Dict[str, Any]] = {}
    order_locations: Dict[str, str] = {}

    for line in lines:
        name = order_locations.get(line.order_id)
        if name is None:
            name = await _location_name(line, directory)
            order_locations[line.order_id] = name
            breakdown.setdefault(name, {"qty": 0, "revenue": 0.0, "orders": 0})["orders"] += 1

        stats = breakdown[name]
        stats["qty"] += line.quantity
        stats["revenue"] += line.line_revenue

    return breakdown


def _stats_delta(before: ClientStats, after: ClientStats) -> Dict[str, int]:
    start = before.to_dict()
    return {name: value - start[name] for name, value in after.to_dict().items()}


class ReportEngine:
    """
    Runs sales and inventory reports against one Shopify client.

    Example:
        engine = ReportEngine(client, cache=ReportCache())
        result = await engine.run(ReportRequest(period="daily", today=True))
    """

    def __init__(
        self,
        client: ShopifyClient,
        cache: Optional[ReportCache] = None,
        options: Optional[EngineOptions] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.client = client
        self.cache = cache
        self.options = options or EngineOptions()
        self.aggregator = SalesAggregator()
        self.dead_stock_policy = DeadStockPolicy(skip_periods=self.options.dead_stock_skip_periods)
        self._timer = timer

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[ShopifyClient] = None,
        cache: Optional[ReportCache] = None,
    ) -> "ReportEngine":
        settings = settings or get_settings()
        return cls(
            client=client or ShopifyClient.from_settings(settings),
            cache=cache if cache is not None else ReportCache.from_settings(settings),
            options=EngineOptions.from_settings(settings),
        )

    def _collector(self) -> OrderCollector:
        return build_collector(
            self.client,
            self.options.api_generation,
            max_pages=self.options.max_pages,
            page_size=self.options.page_size,
        )

    def _elapsed_ms(self, started: float) -> float:
        return round((self._timer() - started) * 1000, 1)

    async def run(self, request: ReportRequest) -> ReportResult:
        """
        Produce the report for ``request``, from cache when possible.

        Raises:
            ValueError: unknown period
            CollectionError: the first page of the report's orders failed
        """
        now = as_utc(request.now) if request.now is not None else datetime.now(timezone.utc)
        date_range = compute_range(request.period, request.today, now, self.options.timezone)
        include_all = (
            request.include_all_locations
            if request.include_all_locations is not None
            else self.options.include_inactive_locations
        )
        anchor = now.astimezone(date_range.start.tzinfo) if request.today else date_range.start
        cache_key = build_cache_key(date_range.period, request.today, anchor, include_all)
        use_cache = self.cache is not None and not request.bypass_cache

        with structlog.contextvars.bound_contextvars(period=date_range.period, cache_key=cache_key):
            if use_cache:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    logger.info("Report served from cache")
                    REPORTS.labels(period=date_range.period, source="cache").inc()
                    return replace(
                        cached,
                        cached=True,
                        cache_age_seconds=self.cache.age(cache_key),
                        stats={**cached.stats, "cache": self.cache.stats()},
                    )

            try:
                result = await self._compute(date_range, now, include_all)
            except CollectionError:
                REPORTS.labels(period=date_range.period, source="failed").inc()
                raise
            REPORTS.labels(period=date_range.period, source="computed").inc()
            REPORT_DURATION.labels(period=date_range.period).observe(result.timing["total_ms"] / 1000)

            if use_cache:
                self.cache.set(cache_key, result, self.cache.ttl_for(date_range.period, request.today))
                # Cache counters are per response, never stored
                result = replace(result, stats={**result.stats, "cache": self.cache.stats()})

        return result

    async def _compute(self, date_range: DateRange, now: datetime, include_all: bool) -> ReportResult:
        opts = self.options
        started = self._timer()
        client_before = replace(self.client.stats)
        timing: Dict[str, float] = {}

        logger.info(
            "Report run started",
            start=date_range.start.isoformat(),
            end=date_range.end.isoformat(),
            include_all_locations=include_all,
        )

        collector = self._collector()
        fetch_started = self._timer()
        lines = await collector.collect(date_range.start, date_range.end)
        timing["fetch_ms"] = self._elapsed_ms(fetch_started)

        rows = self.aggregator.aggregate(lines)

        enricher = InventoryEnricher(self.client, chunk_size=opts.inventory_chunk_size)
        enrich_started = self._timer()
        await enricher.enrich(rows, include_inactive_locations=include_all)
        timing["enrich_ms"] = self._elapsed_ms(enrich_started)

        skip_reason = self.dead_stock_policy.skip_reason(date_range.period, date_range.days, len(rows))

        lookback_started = self._timer()
        lookback_days = opts.sales_lookback_days
        if skip_reason is None:
            lookback_days = max(lookback_days, opts.dead_stock_lookback_days)
        lookback_lines = await self._collect_lookback(now, lookback_days)
        timing["lookback_ms"] = self._elapsed_ms(lookback_started)

        sales_cutoff = now - timedelta(days=opts.sales_lookback_days)
        sales_lines = [
            line for line in lookback_lines or []
            if line.created_at is None or line.created_at >= sales_cutoff
        ]
        rop_rows = build_reorder_rows(
            rows,
            self.aggregator.sales_by_key(sales_lines),
            lead_days=opts.rop_lead_days,
            safety_days=opts.rop_safety_days,
            review_days=opts.review_window_days,
            window_days=opts.sales_lookback_days,
        )
        abc_rows = classify_abc(rows)

        dead_stock: List[DeadStockItem] = []
        if skip_reason is None and lookback_lines is None:
            skip_reason = "lookback unavailable"
        if skip_reason is None:
            dead_cutoff = now - timedelta(days=opts.dead_stock_lookback_days)
            sold = sold_variant_ids(
                line for line in list(lookback_lines) + list(lines)
                if line.created_at is None or line.created_at >= dead_cutoff
            )
            detector = DeadStockDetector(enricher, lookback_days=opts.dead_stock_lookback_days)
            dead_stock = await detector.detect(
                [row.variant_id for row in rows if row.variant_id],
                sold,
                include_inactive_locations=include_all,
            )
        else:
            logger.info("Dead stock detection skipped", reason=skip_reason)

        totals = compute_totals(lines)
        locations = await location_breakdown(lines, enricher.locations)
        comparison = await self._compare(date_range, totals["revenue"])

        timing["total_ms"] = self._elapsed_ms(started)
        if timing["total_ms"] > opts.slow_report_ms:
            logger.warning("Slow report", total_ms=timing["total_ms"], threshold_ms=opts.slow_report_ms)

        client_stats = _stats_delta(client_before, self.client.stats)
        logger.info(
            "Report run complete",
            rows=len(rows),
            orders=totals["orders"],
            api_calls=client_stats["total_calls"],
            total_ms=timing["total_ms"],
        )

        return ReportResult(
            period=date_range.period,
            label=date_range.label,
            start=date_range.start,
            end=date_range.end,
            include_all_locations=include_all,
            rows=rows,
            rop_rows=rop_rows,
            abc_rows=abc_rows,
            dead_stock=dead_stock,
            dead_stock_skipped=skip_reason,
            totals=totals,
            channels=channel_breakdown(lines),
            locations=locations,
            comparison=comparison,
            timing=timing,
            stats={
                "client": client_stats,
                "collection": collector.stats.to_dict(),
                "enrichment": enricher.stats.to_dict(),
                "products": len(rows),
            },
        )

    async def _collect_lookback(self, now: datetime, days: int) -> Optional[List[OrderLine]]:
        """Order lines of the trailing ``days``; None when the window cannot be fetched"""
        try:
            return await self._collector().collect(now - timedelta(days=days), now)
        except CollectionError as e:
            logger.warning("Lookback collection failed", days=days, error=e.message)
            return None

    async def _compare(self, date_range: DateRange, revenue: float) -> Optional[Dict[str, Any]]:
        """Revenue against the previous equivalent range"""
        previous = previous_range(date_range)
        if previous is None:
            return None

        try:
            previous_lines = await self._collector().collect(previous.start, previous.end)
        except CollectionError as e:
            logger.warning("Comparison collection failed", error=e.message)
            return None

        previous_revenue = sum(line.line_revenue for line in previous_lines)
        change = revenue - previous_revenue
        percent = (change / previous_revenue * 100) if previous_revenue > 0 else 0.0
        return {
            "previous_start": previous.start.isoformat(),
            "previous_end": previous.end.isoformat(),
            "previous_revenue": previous_revenue,
            "revenue_change": change,
            "revenue_change_percent": round(percent, 1),
        }
