"""
Reference data: suppliers, SKUs, franchise locations, brands and company earnings.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import pandas as pd

from ..logic.exceptions import PartialEnrichmentFailure, TransportError
from ..logic.identifiers import create_brand_slug, normalize_brand, normalize_franchise_code
from ..logic.location_metrics import calculate_location_metrics
from ..logic.matching import records_for_location
from ..logic.sheet_loader import SheetTransport
from ..logic.sheet_schemas import (
    BRAND_SUMMARY_SCHEMA,
    COMPANY_EARNINGS_SCHEMA,
    FRANCHISEE_MASTER_SCHEMA,
    SKU_COGS_SCHEMA,
    SUPPLIER_SUMMARY_SCHEMA,
)
from ..models.records import SKU, Brand, CompanyEarnings, Franchise, LocationMetrics, OrderLine, Supplier
from .order_service import OrderService

logger = logging.getLogger(__name__)

# brand filter value that means "every brand"
ALL_BRANDS = "admin"


def _brand_lines(lines: List[OrderLine], brand: str) -> List[OrderLine]:
    wanted = normalize_brand(brand)
    return [line for line in lines if normalize_brand(line.brand) == wanted]


def supplier_totals(lines: List[OrderLine]) -> pd.DataFrame:
    """
    Per-supplier totals from order lines.

    Returns:
        DataFrame indexed by supplier name with orders_count, total_items
        and total_value_ordered columns (empty when no line names a supplier)
    """
    frame = pd.DataFrame([
        {
            "supplier": line.supplier.strip(),
            "order_key": (line.invoice_no or line.order_id).strip().lower(),
            "quantity": line.quantity,
            "cogs": line.cogs_total or 0,
        }
        for line in lines
        if line.supplier.strip()
    ], columns=["supplier", "order_key", "quantity", "cogs"])

    return frame.groupby("supplier").agg(
        orders_count=("order_key", "nunique"),
        total_items=("quantity", "sum"),
        total_value_ordered=("cogs", "sum"),
    )


class CatalogService:
    """
    Suppliers, SKUs, franchises and brands.

    Brand filters narrow suppliers and SKUs to those that appear on the
    brand's order lines; the brand "admin" means no filter.
    """

    def __init__(self, transport: SheetTransport, orders: OrderService):
        self.transport = transport
        self.orders = orders

    def list_suppliers(self, brand: Optional[str] = None) -> List[Supplier]:
        """
        Suppliers from Supplier_Summary, with totals recomputed from
        Order_Lines where the lines can be read.
        """
        records = self.transport.read_records(SUPPLIER_SUMMARY_SCHEMA)
        suppliers = [s for s in (Supplier.from_record(r) for r in records) if s.name.strip()]
        filtering = bool(brand) and brand.strip().lower() != ALL_BRANDS

        try:
            lines = self.orders.list_all_order_lines()
        except TransportError as e:
            if filtering:
                raise
            failure = PartialEnrichmentFailure(f"Supplier totals not recomputed: {e.message}")
            logger.warning(failure.message)
            return suppliers

        if filtering:
            lines = _brand_lines(lines, brand)
            names = {line.supplier.strip() for line in lines if line.supplier.strip()}
            suppliers = [s for s in suppliers if s.name.strip() in names]

        totals = supplier_totals(lines)
        for supplier in suppliers:
            name = supplier.name.strip()
            if name in totals.index:
                row = totals.loc[name]
                supplier.orders_count = float(row["orders_count"])
                supplier.total_items = float(row["total_items"])
                supplier.total_value_ordered = float(row["total_value_ordered"])
        return suppliers

    def list_skus(self, brand: Optional[str] = None) -> List[SKU]:
        records = self.transport.read_records(SKU_COGS_SCHEMA)
        skus = [s for s in (SKU.from_record(r) for r in records) if s.sku.strip()]
        if brand and brand.strip().lower() != ALL_BRANDS:
            lines = _brand_lines(self.orders.list_all_order_lines(), brand)
            codes = {line.sku.strip() for line in lines if line.sku.strip()}
            skus = [s for s in skus if s.sku.strip() in codes]
        return skus

    def list_franchises(self) -> List[Franchise]:
        records = self.transport.read_records(FRANCHISEE_MASTER_SCHEMA)
        franchises = [Franchise.from_record(r) for r in records]
        return [f for f in franchises if f.code.strip() or f.name.strip()]

    def list_brands(self) -> List[Brand]:
        records = self.transport.read_records(BRAND_SUMMARY_SCHEMA)
        brands = []
        for record in records:
            brand = Brand.from_record(record)
            if not brand.name.strip():
                continue
            brand.slug = brand.slug or create_brand_slug(brand.name)
            brands.append(brand)
        return brands

    def list_company_earnings(self) -> List[CompanyEarnings]:
        """
        Metric rows of Company_Earnings.

        Rows with no metric name, no revenue and no value are skipped. A
        missing tab gives an empty list.
        """
        records = self.transport.read_records(COMPANY_EARNINGS_SCHEMA)
        earnings = [e for e in (CompanyEarnings.from_record(r) for r in records) if e.has_data]
        logger.debug(f"Read {len(earnings)} company earnings row(s)")
        return earnings

    def get_location_metrics(self, code: str) -> Optional[LocationMetrics]:
        """
        Revenue and margin for one franchise location.

        Args:
            code: Franchise code as typed ("bol 01" finds "BOL01")

        Returns:
            LocationMetrics, or None when no franchise has this code
        """
        wanted = normalize_franchise_code(code)
        franchises = self.list_franchises()
        franchise = next((f for f in franchises if normalize_franchise_code(f.code) == wanted), None)
        if franchise is None or not wanted:
            return None
        lines = records_for_location(self.orders.list_all_order_lines(), franchise, franchises)
        logger.debug(f"Location {franchise.code}: {len(lines)} order line(s)")
        return calculate_location_metrics(franchise, lines)
