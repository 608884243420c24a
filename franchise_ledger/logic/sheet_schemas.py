"""
Franchise Ledger - Sheet Schemas

Static declarations of every tab the ledger reads or writes:
the canonical fields, the header spellings people actually use for them,
and which columns are raw input (the rest hold spreadsheet formulas).

Declaration order is significant. The substring tier of header matching
walks the variants in order, so more specific fields must come first
(e.g. sales_invoice_no before invoice_no, partner_paid_date before
partner_paid).

The declarations are validated at import time; see validate_schemas().

Author: Franchise Ledger Team
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Tuple

from .exceptions import ConfigurationError


# ====================================================================================
# SHEET NAMES
# ====================================================================================

ORDERS_HEADER = "Orders_Header"
ORDER_LINES = "Order_Lines"
SKU_COGS = "SKU_COGS"
FRANCHISEE_MASTER = "Franchisee_Master"
BRAND_SUMMARY = "Brand_Summary"
SUPPLIER_SUMMARY = "Supplier_Summary"
SUPPLIER_INVOICES = "Supplier_Invoices"
ORDER_SUPPLIER_ALLOCATIONS = "Order_Supplier_Allocations"
PAYMENTS_TRACKER_VIEW = "Payments_Tracker_View"
COMPANY_EARNINGS = "Company_Earnings"


def _normalize(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).strip().lower())


@dataclass(frozen=True)
class SheetSchema:
    """
    Column declaration for one sheet.

    Attributes:
        name: Default tab name (can be overridden through configuration)
        fields: Ordered (canonical field, header variants) pairs
        raw_input_columns: Canonical fields that hold typed values, not formulas
    """
    name: str
    fields: Tuple[Tuple[str, Tuple[str, ...]], ...]
    raw_input_columns: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def canonical_fields(self) -> List[str]:
        return [canonical for canonical, _ in self.fields]

    def variants(self) -> List[Tuple[str, str]]:
        """Ordered (header variant, canonical field) pairs; the canonical name is its own first variant."""
        pairs: List[Tuple[str, str]] = []
        for canonical, variants in self.fields:
            pairs.append((canonical, canonical))
            pairs.extend((variant, canonical) for variant in variants)
        return pairs

    def __repr__(self) -> str:
        return f"SheetSchema({self.name}, {len(self.fields)} fields)"


# ====================================================================================
# DECLARATIONS
# ====================================================================================

ORDERS_HEADER_SCHEMA = SheetSchema(
    name=ORDERS_HEADER,
    fields=(
        ("order_id", ("Order ID", "OrderID", "orderId", "Order #", "Order No")),
        ("invoice_no", ("Invoice No", "Invoice Number", "invoiceNo", "Sales Invoice No")),
        ("brand", ("Brand",)),
        ("franchisee_code", ("Franchisee Code", "Franchise Code")),
        ("franchisee", ("Franchisee", "Franchisee Name", "Franchise Name")),
        ("order_date", ("Order Date",)),
        ("order_stage", ("Order Stage", "Stage")),
        ("supplier_ordered", ("Supplier Ordered?", "Supplier Ordered")),
        ("supplier_shipped", ("Supplier Shipped?", "Supplier Shipped")),
        ("delivered_to_partner", ("Delivered to Partner?", "Delivered to Partner", "Delivered")),
        ("partner_paid_date", ("Partner Paid Date", "Paid Date")),
        ("partner_payment_method", ("Partner Payment Method", "Payment Method")),
        ("partner_payment_ref", ("Partner Payment Ref", "Partner Payment Reference", "Payment Ref")),
        ("partner_paid", ("Partner Paid?", "Partner Paid")),
        ("funds_cleared", ("Funds Cleared?", "Funds Cleared")),
        ("order_total", ("Order Total", "Total Order Value")),
        ("total_cogs", ("Total COGS",)),
        ("gross_profit", ("Gross Profit",)),
        ("gross_margin", ("Gross Margin %", "Gross Margin")),
        ("days_open", ("Days Open",)),
        ("next_action", ("Next Action",)),
    ),
    raw_input_columns=frozenset({"order_id", "invoice_no", "order_stage"}),
)

ORDER_LINES_SCHEMA = SheetSchema(
    name=ORDER_LINES,
    fields=(
        ("order_id", ("Order ID", "OrderID", "orderId")),
        ("brand", ("Brand",)),
        ("order_store_url", ("Order Store URL", "Order Store", "Store URL")),
        ("order_date", ("Order Date",)),
        ("franchisee_code", ("Franchisee Code", "Franchise Code")),
        ("franchisee_name", ("Franchisee Name", "Franchisee")),
        ("city", ("City",)),
        ("product_name", ("Product Name", "Product")),
        ("sku", ("SKU",)),
        ("quantity", ("Quantity", "Qty")),
        ("cogs_per_unit", ("COGS per Unit", "Cost Per Unit")),
        ("cogs_total", ("COGS Total", "Total COGS")),
        ("unit_price", ("Unit Price (selling price)", "Unit Price", "Price")),
        ("line_total", ("Line Total", "Total")),
        ("supplier", ("Supplier",)),
        ("invoice_no", ("Invoice No", "Invoice Number", "invoiceNo")),
        ("gross_profit", ("Gross Profit",)),
        ("gross_margin", ("Gross Margin %", "Gross Margin")),
    ),
    raw_input_columns=frozenset({
        "order_id", "order_store_url", "order_date", "franchisee_code",
        "sku", "quantity", "invoice_no",
    }),
)

SKU_COGS_SCHEMA = SheetSchema(
    name=SKU_COGS,
    fields=(
        ("sku", ("SKU",)),
        ("product_name", ("Product Name", "Product")),
        ("unit_size", ("Unit Size", "Size")),
        ("cost_per_unit", ("Cost Per Unit", "Cost")),
        ("supplier", ("Supplier",)),
        ("selling_price", ("Selling Price", "Price", "Selling")),
    ),
)

FRANCHISEE_MASTER_SCHEMA = SheetSchema(
    name=FRANCHISEE_MASTER,
    fields=(
        ("code", ("Franchisee Code", "Franchise Code", "FranchiseeCode", "Code")),
        ("name", ("Franchisee Name", "Franchise Name", "FranchiseeName", "Name")),
        ("brand", ("Active Brands", "Brand")),
        ("region", ("Region",)),
        ("orders_count", ("Orders Count", "Orders_Count")),
        ("total_revenue", ("Total Revenue", "Total_Revenue")),
        ("last_order_date", ("Last Order Date", "Last_Order_Date")),
    ),
)

BRAND_SUMMARY_SCHEMA = SheetSchema(
    name=BRAND_SUMMARY,
    fields=(
        ("name", ("Brand Name", "Brand", "Name")),
        ("orders_count", ("Orders Count", "Orders_Count")),
        ("total_revenue", ("Total Revenue", "Total_Revenue")),
        ("total_cogs", ("Total COGS", "Total_COGS")),
        ("gross_profit", ("Gross Profit", "Gross_Profit")),
        ("gross_margin", ("Gross Margin %", "Gross Margin", "Gross_Margin")),
        ("last_order_date", ("Last Order Date", "Last_Order_Date")),
    ),
)

SUPPLIER_SUMMARY_SCHEMA = SheetSchema(
    name=SUPPLIER_SUMMARY,
    fields=(
        ("name", (
            "Supplier Name", "Supplier", "Company Name", "Company",
            "Vendor Name", "Vendor", "Name",
        )),
        ("on_time_percentage", (
            "On-Time %", "On Time Percentage", "On-Time Percentage", "On Time %",
            "On Time", "Delivery Performance", "On-Time Delivery", "On-Time Delivery %",
        )),
        ("average_ship_time", (
            "Avg Ship Time", "Average Ship Time", "Avg Shipping Time",
            "Average Shipping Time", "Ship Time", "Shipping Time", "Avg Days",
            "Average Days", "Days to Ship", "Days to Deliver", "Lead Time",
            "Average Lead Time",
        )),
        ("orders_count", ("Orders Count", "Orders_Count")),
        ("total_items", ("Total Items", "Total_Items")),
        ("total_value_ordered", ("Total Revenue", "Total_Revenue", "Total Value Ordered")),
        ("last_order_date", ("Last Order Date", "Last_Order_Date")),
    ),
)

SUPPLIER_INVOICES_SCHEMA = SheetSchema(
    name=SUPPLIER_INVOICES,
    fields=(
        ("sales_invoice_no", ("Sales Invoice No", "Sales Invoice Number", "Sales Invoice", "Order Invoice No")),
        ("invoice_no", ("Supplier Invoice No", "Supplier Invoice Number", "Invoice No", "Invoice Number")),
        ("supplier", ("Supplier", "Supplier Name", "Vendor")),
        ("invoice_date", ("Invoice Date",)),
        ("amount", ("Amount", "Invoice Amount", "Invoice Total")),
        ("paid_date", ("Paid Date", "Date Paid")),
        ("paid", ("Paid?", "Paid")),
        ("payment_reference", ("Payment Reference", "Payment Ref")),
        ("invoice_file_link", ("Invoice File Link", "Invoice Link", "File Link")),
    ),
    raw_input_columns=frozenset({
        "sales_invoice_no", "invoice_no", "supplier", "invoice_date", "amount",
        "paid", "paid_date", "payment_reference", "invoice_file_link",
    }),
)

ORDER_SUPPLIER_ALLOCATIONS_SCHEMA = SheetSchema(
    name=ORDER_SUPPLIER_ALLOCATIONS,
    fields=(
        ("sales_invoice_no", ("Sales Invoice No", "Sales Invoice Number", "Sales Invoice", "Order Invoice No")),
        ("supplier_invoice_no", ("Supplier Invoice No", "Supplier Invoice Number", "Supplier Invoice")),
        ("allocated_amount", ("Allocated Amount", "Allocation", "Amount")),
    ),
    raw_input_columns=frozenset({"sales_invoice_no", "supplier_invoice_no", "allocated_amount"}),
)

PAYMENTS_TRACKER_VIEW_SCHEMA = SheetSchema(
    name=PAYMENTS_TRACKER_VIEW,
    fields=(
        ("sales_invoice_no", ("Sales Invoice No", "Sales Invoice Number", "Invoice No")),
        ("order_id", ("Order ID",)),
        ("brand", ("Brand",)),
        ("franchisee_name", ("Franchisee Name", "Franchisee")),
        ("order_date", ("Order Date",)),
        ("order_stage", ("Order Stage",)),
        ("total_order_value", ("Total Order Value", "Order Total")),
        ("total_cogs", ("Total COGS",)),
        ("partner_paid_date", ("Partner Paid Date",)),
        ("partner_paid", ("Partner Paid?", "Partner Paid")),
        ("funds_cleared", ("Funds Cleared?", "Funds Cleared")),
        ("supplier_invoice_count", ("Supplier Invoice Count", "Supplier Invoices")),
        ("supplier_unpaid_count", ("Supplier Unpaid Count",)),
        ("supplier_paid_count", ("Supplier Paid Count",)),
        ("supplier_allocated_total", ("Supplier Allocated Total",)),
        ("supplier_payment_ready", ("Supplier Payment Ready?", "Supplier Payment Ready")),
        ("settlement_status", ("Settlement Status", "Status")),
    ),
)

COMPANY_EARNINGS_SCHEMA = SheetSchema(
    name=COMPANY_EARNINGS,
    fields=(
        ("metric", ("Metric", "Name")),
        ("value", ("Value",)),
        ("period", ("Period",)),
        ("revenue", ("Revenue",)),
        ("cogs", ("COGS", "Cost of Goods Sold")),
        ("gross_profit", ("Gross Profit", "grossProfit", "Profit")),
        ("gross_margin", ("Gross Margin %", "Gross Margin", "grossMargin", "Margin")),
    ),
)

SCHEMAS: Dict[str, SheetSchema] = {
    schema.name: schema
    for schema in (
        ORDERS_HEADER_SCHEMA,
        ORDER_LINES_SCHEMA,
        SKU_COGS_SCHEMA,
        FRANCHISEE_MASTER_SCHEMA,
        BRAND_SUMMARY_SCHEMA,
        SUPPLIER_SUMMARY_SCHEMA,
        SUPPLIER_INVOICES_SCHEMA,
        ORDER_SUPPLIER_ALLOCATIONS_SCHEMA,
        PAYMENTS_TRACKER_VIEW_SCHEMA,
        COMPANY_EARNINGS_SCHEMA,
    )
}


# ====================================================================================
# VALIDATION
# ====================================================================================

def schema_conflicts(schema: SheetSchema) -> List[str]:
    """
    List the problems in one schema declaration.

    A declaration is invalid when two canonical fields claim the same
    normalized header variant, or when a raw-input column is not a declared
    field.
    """
    problems: List[str] = []
    seen: Dict[str, str] = {}
    canonical = set(schema.canonical_fields)

    if len(canonical) != len(schema.fields):
        problems.append(f"{schema.name}: duplicate canonical field declaration")

    for variant, field_name in schema.variants():
        normalized = _normalize(variant)
        if not normalized:
            problems.append(f"{schema.name}: empty header variant for '{field_name}'")
            continue
        owner = seen.setdefault(normalized, field_name)
        if owner != field_name:
            problems.append(
                f"{schema.name}: variant '{variant}' maps to both '{owner}' and '{field_name}'"
            )

    for column in sorted(schema.raw_input_columns - canonical):
        problems.append(f"{schema.name}: raw-input column '{column}' is not a declared field")

    return problems


def validate_schemas(schemas: Dict[str, SheetSchema] = None) -> None:
    """Raise ConfigurationError if any declaration is inconsistent."""
    problems: List[str] = []
    for schema in (schemas or SCHEMAS).values():
        problems.extend(schema_conflicts(schema))
    if problems:
        raise ConfigurationError("Invalid sheet schema declaration", {"problems": problems})


validate_schemas()
