"""
Sales Aggregation

Folds order lines into one row per variant. Lines without a variant id are
keyed by SKU, then by product and variant title.
"""

from collections import defaultdict
from typing import Dict, Iterable, List

import polars as pl
import structlog

from stockpulse.models import OrderLine, VariantRow

logger = structlog.get_logger(__name__)

LINE_SCHEMA = {
    "key": pl.Utf8,
    "variant_id": pl.Utf8,
    "sku": pl.Utf8,
    "product_title": pl.Utf8,
    "variant_title": pl.Utf8,
    "quantity": pl.Int64,
    "unit_price": pl.Float64,
    "line_revenue": pl.Float64,
}


def lines_to_frame(order_lines: Iterable[OrderLine]) -> pl.DataFrame:
    """Order lines as a DataFrame, in arrival order"""
    records = [
        {
            "key": line.aggregation_key,
            "variant_id": line.variant_id,
            "sku": line.sku,
            "product_title": line.product_title,
            "variant_title": line.variant_title,
            "quantity": line.quantity,
            "unit_price": line.unit_price,
            "line_revenue": line.line_revenue,
        }
        for line in order_lines
    ]
    return pl.from_dicts(records, schema=LINE_SCHEMA)


class SalesAggregator:
    """
    Aggregates order lines per variant.

    The first occurrence of a key seeds titles and SKU, quantities and
    revenue are summed and the unit price is the last one seen. Output is
    sorted by sold quantity then revenue, both descending; full ties keep
    first-seen order.
    """

    def aggregate(self, order_lines: List[OrderLine]) -> List[VariantRow]:
        if not order_lines:
            return []

        df = lines_to_frame(order_lines)

        grouped = (
            df.group_by("key", maintain_order=True)
            .agg([
                pl.col("variant_id").first(),
                pl.col("product_title").first(),
                pl.col("variant_title").first(),
                pl.col("sku").first(),
                pl.col("unit_price").last(),
                pl.col("quantity").sum().alias("sold_qty"),
                pl.col("line_revenue").sum().alias("revenue"),
            ])
            .sort(["sold_qty", "revenue"], descending=[True, True], maintain_order=True)
        )

        rows = [
            VariantRow(
                key=record["key"],
                variant_id=record["variant_id"],
                product_title=record["product_title"],
                variant_title=record["variant_title"],
                sku=record["sku"] or "",
                unit_price=float(record["unit_price"] or 0.0),
                sold_qty=int(record["sold_qty"] or 0),
                revenue=float(record["revenue"] or 0.0),
            )
            for record in grouped.iter_rows(named=True)
        ]

        logger.debug("Aggregated order lines", lines=len(order_lines), rows=len(rows))
        return rows

    def sales_by_key(self, order_lines: Iterable[OrderLine]) -> Dict[str, int]:
        """Units sold per aggregation key, used for lookback windows"""
        sales: Dict[str, int] = defaultdict(int)
        for line in order_lines:
            sales[line.aggregation_key] += line.quantity
        return dict(sales)


def aggregate_lines(order_lines: List[OrderLine]) -> List[VariantRow]:
    """Convenience wrapper around ``SalesAggregator.aggregate``"""
    return SalesAggregator().aggregate(order_lines)
