"""
ABC Classification

Ranks variants by revenue and tiers them by cumulative revenue share:
A up to 80%, B up to 95%, C for the tail.
"""

from typing import List

import polars as pl

from stockpulse.models import AbcCategory, VariantRow

A_THRESHOLD = 80.0
B_THRESHOLD = 95.0


def classify_abc(
    rows: List[VariantRow],
    a_threshold: float = A_THRESHOLD,
    b_threshold: float = B_THRESHOLD,
) -> List[VariantRow]:
    """
    Annotate rows with rank, revenue share and ABC category.

    Returns the rows sorted by revenue descending; equal revenues keep their
    incoming order. When total revenue is zero every row is C at 0%.
    """
    if not rows:
        return []

    ordered = sorted(rows, key=lambda r: r.revenue, reverse=True)
    total = sum(r.revenue for r in ordered)

    if total <= 0:
        for rank, row in enumerate(ordered, start=1):
            row.rank = rank
            row.revenue_percent = 0.0
            row.cumulative_percent = 0.0
            row.abc_category = AbcCategory.C
        return ordered

    df = (
        pl.DataFrame({"revenue": [r.revenue for r in ordered]}, schema={"revenue": pl.Float64})
        .with_columns([
            (pl.col("revenue") / total * 100).alias("revenue_percent"),
            (pl.col("revenue").cum_sum() / total * 100).alias("cumulative_percent"),
        ])
        .with_columns(
            pl.when(pl.col("cumulative_percent") <= a_threshold)
            .then(pl.lit(AbcCategory.A.value))
            .when(pl.col("cumulative_percent") <= b_threshold)
            .then(pl.lit(AbcCategory.B.value))
            .otherwise(pl.lit(AbcCategory.C.value))
            .alias("abc_category")
        )
    )

    for rank, (row, record) in enumerate(zip(ordered, df.iter_rows(named=True)), start=1):
        row.rank = rank
        row.revenue_percent = record["revenue_percent"]
        row.cumulative_percent = record["cumulative_percent"]
        row.abc_category = AbcCategory(record["abc_category"])

    return ordered
