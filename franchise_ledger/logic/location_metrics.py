"""
Franchise Ledger - Location Metrics

Revenue, COGS and margin for one franchise location, aggregated from its
order lines with pandas.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import pandas as pd

from ..models.records import BrandMetrics, Franchise, LocationMetrics, OrderLine
from .identifiers import normalize_id

logger = logging.getLogger(__name__)


def validate_order_lines(lines: List[OrderLine]) -> Tuple[List[OrderLine], List[str]]:
    """
    Split lines into usable ones and warnings.

    Lines without an order id are dropped; negative amounts are kept but
    reported.
    """
    usable: List[OrderLine] = []
    warnings: List[str] = []
    for line in lines:
        if not line.order_id:
            warnings.append(f"Order_Lines row {line.row_number}: missing order id")
            continue
        for name in ("line_total", "cogs_total", "quantity"):
            if (getattr(line, name) or 0) < 0:
                warnings.append(f"Negative {name} for order {line.order_id}")
        usable.append(line)
    return usable, warnings


def _margin(profit: float, revenue: float) -> float:
    return float(profit / revenue * 100) if revenue else 0.0


def calculate_location_metrics(franchise: Franchise, lines: List[OrderLine]) -> LocationMetrics:
    """
    Aggregate a location's order lines.

    Orders are counted by invoice number, falling back to order id, so the
    same order id reused by two brands counts twice.

    Args:
        franchise: The location
        lines: Order lines already matched to this location

    Returns:
        LocationMetrics with a per-brand breakdown
    """
    usable, warnings = validate_order_lines(lines)
    for warning in warnings:
        logger.warning(f"[{franchise.code}] {warning}")

    metrics = LocationMetrics(franchise_code=franchise.code, franchise_name=franchise.name)
    if not usable:
        return metrics

    frame = pd.DataFrame([
        {
            "order_key": normalize_id(line.invoice_no) or f"{normalize_id(line.order_id)}|{line.brand.lower()}",
            "brand": line.brand or "Unknown",
            "revenue": line.line_total,
            "cogs": line.cogs_total or 0,
            "quantity": line.quantity,
        }
        for line in usable
    ])

    revenue = float(frame["revenue"].sum())
    cogs = float(frame["cogs"].sum())
    order_count = int(frame["order_key"].nunique())

    metrics.revenue = revenue
    metrics.cogs = cogs
    metrics.gross_profit = revenue - cogs
    metrics.gross_margin = _margin(revenue - cogs, revenue)
    metrics.order_count = order_count
    metrics.average_order_value = revenue / order_count if order_count else 0.0
    metrics.item_count = float(frame["quantity"].sum())

    by_brand = frame.groupby("brand").agg(
        revenue=("revenue", "sum"),
        cogs=("cogs", "sum"),
        order_count=("order_key", "nunique"),
    ).reset_index().sort_values("revenue", ascending=False)

    metrics.brands = [
        BrandMetrics(
            brand=row.brand,
            revenue=float(row.revenue),
            cogs=float(row.cogs),
            gross_profit=float(row.revenue - row.cogs),
            gross_margin=_margin(row.revenue - row.cogs, row.revenue),
            order_count=int(row.order_count),
        )
        for row in by_brand.itertuples(index=False)
    ]
    return metrics
