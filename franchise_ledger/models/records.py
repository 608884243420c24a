"""
Franchise Ledger - Record Models

Typed views of spreadsheet rows plus the input models for writes.

Sheet-backed models are built from the dicts produced by
column_detector.rows_to_records (see SheetRecord.from_record). Cells have
already been coerced, so empty cells arrive as False; the before-validators
turn them back into '' / 0 / None as each field expects. Unknown columns
are kept as extra attributes under their sanitized keys.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..logic.column_detector import as_flag, as_number, as_text
from ..logic.identifiers import strip_hashes
from ..logic.settlement import SettlementStatus

ALLOWED_ORDER_STAGES = [
    "New",
    "Ordered with Supplier",
    "In Transit",
    "Delivered",
    "Completed",
    "Cancelled",
]

ALLOWED_PAYMENT_METHODS = ["SHOPIFY", "BANK_TRANSFER", "CASH", "OTHER"]

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ==============================================================================
# SHARED VALIDATORS
# ==============================================================================

def _text(cls, value: Any) -> str:
    return as_text(value)


def _hashless(cls, value: Any) -> str:
    return strip_hashes(as_text(value))


def _number(cls, value: Any) -> float:
    return as_number(value, default=0)


def _count(cls, value: Any) -> int:
    return int(as_number(value, default=0))


def _optional_number(cls, value: Any) -> Optional[float]:
    if value is False or value == "":
        return None
    return as_number(value, default=None)


def _flag(cls, value: Any) -> bool:
    return as_flag(value)


def _check_date(value: str, field_name: str) -> str:
    if value and not DATE_PATTERN.match(value):
        raise ValueError(f"{field_name} must be in YYYY-MM-DD format")
    return value


def _margin(profit: float, total: float) -> float:
    if not total:
        return 0.0
    return profit / total * 100


class SheetRecord(BaseModel):
    """Base for models read from a sheet; row_number is the 1-based sheet row."""

    model_config = ConfigDict(extra="allow")

    row_number: Optional[int] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        data = {k: v for k, v in record.items() if not k.startswith("_")}
        data["row_number"] = record.get("_row")
        return cls.model_validate(data)


# ==============================================================================
# SHEET RECORDS
# ==============================================================================

class Order(SheetRecord):
    """
    One row of Orders_Header.

    invoice_no is the preferred unique key; order_id can repeat across brands.
    """
    order_id: str = ""
    invoice_no: str = ""
    brand: str = ""
    franchisee: str = ""
    franchisee_code: str = ""
    order_date: str = ""
    order_stage: str = "New"
    order_total: float = 0
    total_cogs: float = 0
    gross_profit: Optional[float] = None
    gross_margin: Optional[float] = None
    days_open: float = 0
    next_action: str = ""

    supplier_ordered: bool = False
    supplier_shipped: bool = False
    delivered_to_partner: bool = False
    partner_paid: bool = False
    partner_paid_date: str = ""
    partner_payment_method: str = ""
    partner_payment_ref: str = ""
    funds_cleared: bool = False

    coerce_text = field_validator(
        "order_id", "invoice_no", "brand", "franchisee", "franchisee_code", "order_date",
        "order_stage", "next_action", "partner_paid_date", "partner_payment_method",
        "partner_payment_ref", mode="before",
    )(_text)
    coerce_number = field_validator("order_total", "total_cogs", "days_open", mode="before")(_number)
    coerce_optional = field_validator("gross_profit", "gross_margin", mode="before")(_optional_number)
    coerce_flag = field_validator(
        "supplier_ordered", "supplier_shipped", "delivered_to_partner", "partner_paid",
        "funds_cleared", mode="before",
    )(_flag)

    @model_validator(mode="after")
    def fill_derived(self) -> "Order":
        if not self.order_stage:
            self.order_stage = "New"
        if not self.franchisee:
            self.franchisee = self.franchisee_code
        if self.gross_profit is None:
            self.gross_profit = self.order_total - self.total_cogs
        if self.gross_margin is None:
            self.gross_margin = _margin(self.gross_profit, self.order_total)
        return self


class OrderLine(SheetRecord):
    """One row of Order_Lines. Ids are stored without '#'."""
    order_id: str = ""
    invoice_no: str = ""
    brand: str = ""
    order_store_url: str = ""
    order_date: str = ""
    franchisee_code: str = ""
    franchisee_name: str = ""
    city: str = ""
    sku: str = ""
    product_name: str = ""
    supplier: str = ""
    quantity: float = 0
    unit_price: float = 0
    line_total: float = 0
    cogs_per_unit: float = 0
    cogs_total: Optional[float] = None
    gross_profit: Optional[float] = None
    gross_margin: Optional[float] = None

    coerce_ids = field_validator("order_id", "invoice_no", mode="before")(_hashless)
    coerce_text = field_validator(
        "brand", "order_store_url", "order_date", "franchisee_code", "franchisee_name",
        "city", "sku", "product_name", "supplier", mode="before",
    )(_text)
    coerce_number = field_validator(
        "quantity", "unit_price", "line_total", "cogs_per_unit", mode="before",
    )(_number)
    coerce_optional = field_validator(
        "cogs_total", "gross_profit", "gross_margin", mode="before",
    )(_optional_number)

    @model_validator(mode="after")
    def fill_cogs_total(self) -> "OrderLine":
        if self.cogs_total is None:
            self.cogs_total = self.cogs_per_unit * self.quantity
        return self


class SupplierInvoice(SheetRecord):
    """
    One row of Supplier_Invoices.

    id is a surrogate: the sheet row number as a string. It is only stable
    until rows above it are inserted or deleted.
    """
    id: str = ""
    invoice_no: str = ""
    sales_invoice_no: str = ""
    supplier: str = ""
    invoice_date: str = ""
    amount: float = 0
    paid: bool = False
    paid_date: str = ""
    payment_reference: str = ""
    invoice_file_link: str = ""

    coerce_text = field_validator(
        "id", "invoice_no", "sales_invoice_no", "supplier", "invoice_date",
        "paid_date", "payment_reference", "invoice_file_link", mode="before",
    )(_text)
    coerce_number = field_validator("amount", mode="before")(_number)
    coerce_flag = field_validator("paid", mode="before")(_flag)

    @model_validator(mode="after")
    def fill_id(self) -> "SupplierInvoice":
        if not self.id and self.row_number is not None:
            self.id = str(self.row_number)
        return self


class OrderSupplierAllocation(SheetRecord):
    sales_invoice_no: str = ""
    supplier_invoice_no: str = ""
    allocated_amount: float = 0

    coerce_text = field_validator("sales_invoice_no", "supplier_invoice_no", mode="before")(_text)
    coerce_number = field_validator("allocated_amount", mode="before")(_number)


class Franchise(SheetRecord):
    code: str = ""
    name: str = ""
    brand: str = ""
    region: str = ""
    orders_count: float = 0
    total_revenue: float = 0
    last_order_date: str = ""

    coerce_text = field_validator("code", "name", "brand", "region", "last_order_date", mode="before")(_text)
    coerce_number = field_validator("orders_count", "total_revenue", mode="before")(_number)


class Brand(SheetRecord):
    name: str = ""
    slug: str = ""
    orders_count: float = 0
    total_revenue: float = 0
    total_cogs: float = 0
    gross_profit: Optional[float] = None
    gross_margin: Optional[float] = None
    last_order_date: str = ""

    coerce_text = field_validator("name", "slug", "last_order_date", mode="before")(_text)
    coerce_number = field_validator("orders_count", "total_revenue", "total_cogs", mode="before")(_number)
    coerce_optional = field_validator("gross_profit", "gross_margin", mode="before")(_optional_number)

    @model_validator(mode="after")
    def fill_derived(self) -> "Brand":
        if self.gross_profit is None:
            self.gross_profit = self.total_revenue - self.total_cogs
        if self.gross_margin is None:
            self.gross_margin = _margin(self.gross_profit, self.total_revenue)
        return self


class Supplier(SheetRecord):
    name: str = ""
    on_time_percentage: Optional[float] = None
    average_ship_time: Optional[float] = None
    orders_count: float = 0
    total_items: float = 0
    total_value_ordered: float = 0
    last_order_date: str = ""

    coerce_text = field_validator("name", "last_order_date", mode="before")(_text)
    coerce_number = field_validator("orders_count", "total_items", "total_value_ordered", mode="before")(_number)
    # "85%" -> 85, "3 days" -> 3
    coerce_optional = field_validator("on_time_percentage", "average_ship_time", mode="before")(_optional_number)


class SKU(SheetRecord):
    sku: str = ""
    product_name: str = ""
    unit_size: str = ""
    cost_per_unit: float = 0
    selling_price: float = 0
    supplier: str = ""

    coerce_text = field_validator("sku", "product_name", "unit_size", "supplier", mode="before")(_text)
    coerce_number = field_validator("cost_per_unit", "selling_price", mode="before")(_number)


class CompanyEarnings(SheetRecord):
    """
    One metric row of Company_Earnings.

    value keeps its text when it is not a number ("n/a", "Q1 target").
    """
    metric: str = ""
    period: str = ""
    value: Union[float, str, None] = None
    revenue: Optional[float] = None
    cogs: Optional[float] = None
    gross_profit: Optional[float] = None
    gross_margin: Optional[float] = None

    coerce_text = field_validator("metric", "period", mode="before")(_text)
    coerce_optional = field_validator(
        "revenue", "cogs", "gross_profit", "gross_margin", mode="before",
    )(_optional_number)

    @field_validator("value", mode="before")
    @classmethod
    def number_or_text(cls, value: Any) -> Union[float, str, None]:
        if value is False or value == "" or value is None:
            return None
        number = as_number(value, default=None)
        return number if number is not None else as_text(value)

    @property
    def has_data(self) -> bool:
        return bool(self.metric) or self.revenue is not None or self.value is not None


class TrackerViewRecord(SheetRecord):
    """One row of Payments_Tracker_View as the sheet formulas computed it."""
    sales_invoice_no: str = ""
    order_id: str = ""
    brand: str = ""
    franchisee_name: str = ""
    order_date: str = ""
    order_stage: str = ""
    total_order_value: float = 0
    total_cogs: float = 0
    partner_paid: bool = False
    partner_paid_date: str = ""
    funds_cleared: bool = False
    supplier_invoice_count: int = 0
    supplier_paid_count: int = 0
    supplier_unpaid_count: int = 0
    supplier_allocated_total: float = 0
    supplier_payment_ready: bool = False
    settlement_status: str = ""

    coerce_text = field_validator(
        "sales_invoice_no", "order_id", "brand", "franchisee_name", "order_date",
        "order_stage", "partner_paid_date", "settlement_status", mode="before",
    )(_text)
    coerce_number = field_validator(
        "total_order_value", "total_cogs", "supplier_allocated_total", mode="before",
    )(_number)
    coerce_count = field_validator(
        "supplier_invoice_count", "supplier_paid_count", "supplier_unpaid_count", mode="before",
    )(_count)
    coerce_flag = field_validator(
        "partner_paid", "funds_cleared", "supplier_payment_ready", mode="before",
    )(_flag)


# ==============================================================================
# DERIVED VIEWS
# ==============================================================================

class PaymentTrackerRow(BaseModel):
    """One sales invoice in the payments tracker. Recomputed on every read."""

    model_config = ConfigDict(extra="allow")

    sales_invoice_no: str
    order_id: str = ""
    brand: str = ""
    franchisee_name: str = ""
    order_date: str = ""
    order_stage: str = ""
    total_order_value: float = 0
    total_cogs: float = 0
    partner_paid: bool = False
    partner_paid_date: str = ""
    funds_cleared: bool = False
    supplier_invoice_count: int = 0
    supplier_paid_count: int = 0
    supplier_unpaid_count: int = 0
    supplier_allocated_total: float = 0
    supplier_payment_ready: bool = False
    supplier_invoice_nos: List[str] = Field(default_factory=list)
    settlement_status: Optional[SettlementStatus] = None
    settlement_error: str = ""
    source: str = "computed"


class AllocationLine(BaseModel):
    supplier_invoice_no: str
    allocated_amount: float


class ReconSummary(BaseModel):
    """Allocation totals for one sales invoice, for reconciling against the tracker view."""
    sales_invoice_no: str
    allocations_count: int = 0
    allocations: List[AllocationLine] = Field(default_factory=list)
    calculated_total: float = 0
    linked_supplier_invoices: List[str] = Field(default_factory=list)
    unpaid_supplier_invoices: List[str] = Field(default_factory=list)
    settlement_status: Optional[SettlementStatus] = None


class BrandMetrics(BaseModel):
    brand: str
    revenue: float = 0
    cogs: float = 0
    gross_profit: float = 0
    gross_margin: float = 0
    order_count: int = 0


class LocationMetrics(BaseModel):
    franchise_code: str
    franchise_name: str = ""
    revenue: float = 0
    cogs: float = 0
    gross_profit: float = 0
    gross_margin: float = 0
    order_count: int = 0
    average_order_value: float = 0
    item_count: float = 0
    brands: List[BrandMetrics] = Field(default_factory=list)


# ==============================================================================
# WRITE INPUTS
# ==============================================================================

class NewOrderLine(BaseModel):
    sku: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)


class NewOrder(BaseModel):
    """Input for create_order. Only raw-input columns are written; formulas fill the rest."""
    order_id: str = Field(..., min_length=1)
    invoice_no: str = ""
    brand: str = ""
    franchisee: str = ""
    franchisee_code: str = ""
    order_date: str = Field(..., min_length=1)
    order_stage: str = "New"
    order_lines: List[NewOrderLine] = Field(..., min_length=1)

    @field_validator("order_stage")
    @classmethod
    def check_stage(cls, value: str) -> str:
        value = value or "New"
        if value not in ALLOWED_ORDER_STAGES:
            raise ValueError(f"order_stage must be one of {ALLOWED_ORDER_STAGES}")
        return value

    @field_validator("order_date")
    @classmethod
    def check_order_date(cls, value: str) -> str:
        return _check_date(value, "order_date")


class NewSupplierInvoice(BaseModel):
    supplier_invoice_no: str = Field(..., min_length=1)
    supplier: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    allocated_amount: Optional[float] = None
    invoice_date: str = ""
    paid: bool = False
    paid_date: str = ""
    payment_reference: str = ""
    invoice_file_link: str = ""

    @field_validator("paid_date", "invoice_date")
    @classmethod
    def check_dates(cls, value: str, info) -> str:
        return _check_date(value, info.field_name)


class SupplierInvoiceBatch(BaseModel):
    """
    Input for create_supplier_invoices.

    With a sales_invoice_no every invoice needs a positive allocated_amount;
    without one, allocated_amount defaults to the invoice amount.
    """
    sales_invoice_no: str = ""
    invoices: List[NewSupplierInvoice] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_allocations(self) -> "SupplierInvoiceBatch":
        for invoice in self.invoices:
            if self.sales_invoice_no:
                if not invoice.allocated_amount or invoice.allocated_amount <= 0:
                    raise ValueError(
                        "allocated_amount must be a positive number when sales_invoice_no is provided"
                    )
            elif invoice.allocated_amount is None:
                invoice.allocated_amount = invoice.amount
        return self


class NewAllocation(BaseModel):
    sales_invoice_no: str = Field(..., min_length=1)
    supplier_invoice_no: str = Field(..., min_length=1)
    allocated_amount: float = Field(..., gt=0)
