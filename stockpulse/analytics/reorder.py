"""
Reorder Point Calculator

ROP = velocity x (lead + safety days); target adds a review buffer.
Velocity is units sold in the lookback window divided by its length.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from stockpulse.models import Urgency, VariantRow

URGENCY_ORDER = {
    Urgency.CRITICAL: 0,
    Urgency.HIGH: 1,
    Urgency.MEDIUM: 2,
}


@dataclass(frozen=True)
class ReorderPlan:
    """Reorder recommendation for one variant"""
    sales_30d: int
    on_hand: int
    incoming: Optional[int]
    daily_velocity: float
    rop: int
    target: int
    suggested_qty: int
    coverage_days: float  # math.inf when nothing sells
    urgency: Urgency


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def compute_rop(
    sales_30d: int,
    on_hand: int,
    lead_days: int = 7,
    safety_days: int = 3,
    review_days: int = 14,
    incoming: Optional[int] = None,
    window_days: int = 30,
    net_incoming: bool = True,
) -> ReorderPlan:
    """
    Compute reorder point, target stock, suggested quantity and urgency.

    ``rop`` and ``target`` are ceilings of velocity x days, done in integer
    arithmetic so exact multiples never round up.
    """
    units = max(0, int(sales_30d))
    daily_velocity = units / window_days

    rop = _ceil_div(units * (lead_days + safety_days), window_days)
    target = _ceil_div(units * (lead_days + safety_days + review_days), window_days)

    coverage_days = on_hand / daily_velocity if daily_velocity > 0 else math.inf

    pipeline = on_hand
    if net_incoming and incoming:
        pipeline += incoming
    suggested_qty = max(0, target - pipeline)

    if coverage_days <= lead_days:
        urgency = Urgency.CRITICAL
    elif coverage_days <= lead_days + safety_days:
        urgency = Urgency.HIGH
    else:
        urgency = Urgency.MEDIUM

    return ReorderPlan(
        sales_30d=units,
        on_hand=on_hand,
        incoming=incoming,
        daily_velocity=daily_velocity,
        rop=rop,
        target=target,
        suggested_qty=suggested_qty,
        coverage_days=coverage_days,
        urgency=urgency,
    )


def qualifies_for_reorder(plan: ReorderPlan) -> bool:
    """Something to buy, or one unit or less left"""
    return plan.suggested_qty > 0 or plan.on_hand <= 1


def apply_plan(row: VariantRow, plan: ReorderPlan) -> VariantRow:
    row.sales_30d = plan.sales_30d
    row.daily_velocity = plan.daily_velocity
    row.rop = plan.rop
    row.target = plan.target
    row.suggested_qty = plan.suggested_qty
    row.coverage_days = plan.coverage_days
    row.urgency = plan.urgency
    return row


def build_reorder_rows(
    rows: List[VariantRow],
    sales_30d: Dict[str, int],
    lead_days: int = 7,
    safety_days: int = 3,
    review_days: int = 14,
    window_days: int = 30,
) -> List[VariantRow]:
    """
    Annotate every row with its reorder plan and return the reorder list.

    The list holds qualifying rows sorted by urgency, then by lookback sales
    descending.
    """
    reorder: List[VariantRow] = []

    for row in rows:
        plan = compute_rop(
            sales_30d=sales_30d.get(row.key, 0),
            on_hand=row.on_hand,
            lead_days=lead_days,
            safety_days=safety_days,
            review_days=review_days,
            incoming=row.inventory_incoming,
            window_days=window_days,
        )
        apply_plan(row, plan)
        if qualifies_for_reorder(plan):
            reorder.append(row)

    reorder.sort(key=lambda r: (URGENCY_ORDER[r.urgency], -(r.sales_30d or 0)))
    return reorder
