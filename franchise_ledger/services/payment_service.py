"""
Payment reconciliation: supplier invoices, allocations, partner payments
and the payments tracker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..logic.exceptions import (
    PartialEnrichmentFailure,
    RowNotFound,
    SettlementUnverifiable,
    TransportError,
    WriteFailure,
)
from ..logic.identifiers import normalize_id
from ..logic.matching import allocations_for, index_by_invoice, linked_supplier_invoices
from ..logic.parse_utils import parse_order_date
from ..logic.settlement import SettlementStatus, derive_settlement_status, is_supplier_payment_ready
from ..logic.sheet_loader import SheetTransport
from ..logic.sheet_schemas import (
    ORDER_SUPPLIER_ALLOCATIONS_SCHEMA,
    ORDERS_HEADER_SCHEMA,
    PAYMENTS_TRACKER_VIEW_SCHEMA,
    SUPPLIER_INVOICES_SCHEMA,
)
from ..logic.sheet_writer import FormulaPreservingWriter
from ..models.records import (
    ALLOWED_PAYMENT_METHODS,
    DATE_PATTERN,
    AllocationLine,
    NewAllocation,
    Order,
    OrderSupplierAllocation,
    PaymentTrackerRow,
    ReconSummary,
    SupplierInvoice,
    SupplierInvoiceBatch,
    TrackerViewRecord,
)
from .order_service import OrderService

logger = logging.getLogger(__name__)

# Orders_Header fields update_partner_payment may write
PARTNER_PAYMENT_FIELDS = frozenset({
    "partner_paid",
    "partner_paid_date",
    "partner_payment_method",
    "partner_payment_ref",
    "funds_cleared",
})

# Supplier_Invoices fields update_supplier_invoice may write
SUPPLIER_INVOICE_FIELDS = frozenset({
    "paid",
    "paid_date",
    "payment_reference",
    "sales_invoice_no",
    "invoice_file_link",
})

# Order and payment facts taken from Payments_Tracker_View as they stand
TRACKER_BASE_FIELDS = {
    "sales_invoice_no", "order_id", "brand", "franchisee_name", "order_date", "order_stage",
    "total_order_value", "total_cogs", "partner_paid", "partner_paid_date", "funds_cleared",
    "supplier_invoice_count", "supplier_paid_count", "supplier_unpaid_count",
    "supplier_allocated_total",
}


@dataclass
class SupplierLinks:
    """Supplier invoices and allocations loaded together for one read."""
    invoices: List[SupplierInvoice] = field(default_factory=list)
    allocations: List[OrderSupplierAllocation] = field(default_factory=list)

    def linked(self, sales_invoice_no: str) -> List[SupplierInvoice]:
        return linked_supplier_invoices(sales_invoice_no, self.invoices, self.allocations)


def _check_date_field(fields: Dict[str, Any], name: str) -> None:
    value = fields.get(name)
    if value and not DATE_PATTERN.match(str(value)):
        raise ValueError(f"{name} must be in YYYY-MM-DD format")


def filter_payment_rows(
    rows: List[PaymentTrackerRow],
    settlement_status: Optional[str] = None,
    exclude_settled: bool = False,
    brand: Optional[str] = None,
    franchisee: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[PaymentTrackerRow]:
    """
    Tracker filters.

    exclude_settled keeps the live worklist: rows not SETTLED whose partner
    has not paid yet. brand and franchisee are case-insensitive substring
    filters; "all" disables a filter. Date bounds are inclusive and drop
    rows whose order date cannot be parsed.
    """
    filtered = list(rows)

    if exclude_settled:
        filtered = [r for r in filtered if r.settlement_status != SettlementStatus.SETTLED and not r.partner_paid]

    if settlement_status and settlement_status != "all":
        filtered = [
            r for r in filtered
            if r.settlement_status is not None and r.settlement_status.value == settlement_status
        ]

    if brand and brand != "all":
        filtered = [r for r in filtered if brand.lower() in r.brand.lower()]

    if franchisee and franchisee != "all":
        filtered = [r for r in filtered if franchisee.lower() in r.franchisee_name.lower()]

    start = parse_order_date(start_date) if start_date else None
    end = parse_order_date(end_date) if end_date else None
    if start_date and start is None:
        raise ValueError(f"Invalid start_date {start_date!r}")
    if end_date and end is None:
        raise ValueError(f"Invalid end_date {end_date!r}")
    if start is not None or end is not None:
        dated = []
        for row in filtered:
            order_date = parse_order_date(row.order_date, context=row.sales_invoice_no)
            if order_date is None:
                continue
            if start is not None and order_date < start:
                continue
            if end is not None and order_date > end:
                continue
            dated.append(row)
        filtered = dated

    return filtered


class PaymentService:
    """
    Settlement and supplier payments.

    Args:
        transport: SheetTransport for reads
        writer: FormulaPreservingWriter for writes
        orders: OrderService used to locate sales invoices
    """

    def __init__(self, transport: SheetTransport, writer: FormulaPreservingWriter, orders: OrderService):
        self.transport = transport
        self.writer = writer
        self.orders = orders

    # ------------------------------------------------------------------
    # Supplier invoices & allocations
    # ------------------------------------------------------------------

    def _all_supplier_invoices(self) -> List[SupplierInvoice]:
        records = self.transport.read_records(SUPPLIER_INVOICES_SCHEMA)
        invoices = [SupplierInvoice.from_record(r) for r in records]
        return [i for i in invoices if i.invoice_no or i.supplier]

    def list_allocations(self, sales_invoice_no: Optional[str] = None) -> List[OrderSupplierAllocation]:
        records = self.transport.read_records(ORDER_SUPPLIER_ALLOCATIONS_SCHEMA)
        allocations = [OrderSupplierAllocation.from_record(r) for r in records]
        allocations = [a for a in allocations if a.sales_invoice_no or a.supplier_invoice_no]
        if sales_invoice_no:
            return allocations_for(sales_invoice_no, allocations)
        return allocations

    def list_supplier_invoices(self, sales_invoice_no: Optional[str] = None) -> List[SupplierInvoice]:
        """All supplier invoices, or those linked to one sales invoice."""
        invoices = self._all_supplier_invoices()
        if not sales_invoice_no:
            return invoices
        return linked_supplier_invoices(sales_invoice_no, invoices, self.list_allocations())

    def load_links(self) -> Optional[SupplierLinks]:
        """
        Supplier invoices and allocations, or None when they cannot be trusted.

        None covers both an API failure and a missing tab; either way the
        links of any sales invoice are unknown.
        """
        try:
            invoices_sheet = self.transport.read_sheet(SUPPLIER_INVOICES_SCHEMA.name)
            allocations_sheet = self.transport.read_sheet(ORDER_SUPPLIER_ALLOCATIONS_SCHEMA.name)
        except TransportError as e:
            failure = PartialEnrichmentFailure(f"Supplier links unavailable: {e.message}")
            logger.warning(failure.message)
            return None

        missing = [s.sheet_name for s in (invoices_sheet, allocations_sheet) if not s.available]
        if missing:
            logger.warning(f"Supplier links unavailable: missing sheet(s) {missing}")
            return None

        invoices = [SupplierInvoice.from_record(r) for r in invoices_sheet.to_records(SUPPLIER_INVOICES_SCHEMA)]
        allocations = [
            OrderSupplierAllocation.from_record(r)
            for r in allocations_sheet.to_records(ORDER_SUPPLIER_ALLOCATIONS_SCHEMA)
        ]
        return SupplierLinks(
            invoices=[i for i in invoices if i.invoice_no or i.supplier],
            allocations=[a for a in allocations if a.sales_invoice_no or a.supplier_invoice_no],
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def get_settlement_status(self, sales_invoice_no: str) -> Optional[SettlementStatus]:
        """
        Settlement status of one sales invoice; None if the invoice is unknown.

        Raises:
            SettlementUnverifiable: partner paid and cleared, but the supplier
                links could not be read
        """
        order = self.orders.get_order_by_invoice_no(sales_invoice_no)
        if order is None:
            return None
        links = self.load_links() if order.partner_paid and order.funds_cleared else SupplierLinks()
        flags = None if links is None else [i.paid for i in links.linked(order.invoice_no)]
        return derive_settlement_status(order.partner_paid, order.funds_cleared, flags, order.invoice_no)

    def _tracker_row(self, base: Dict[str, Any], links: Optional[SupplierLinks], source: str) -> PaymentTrackerRow:
        row = PaymentTrackerRow(source=source, **base)

        if links is not None:
            linked = links.linked(row.sales_invoice_no)
            row.supplier_invoice_count = len(linked)
            row.supplier_paid_count = sum(1 for i in linked if i.paid)
            row.supplier_unpaid_count = row.supplier_invoice_count - row.supplier_paid_count
            row.supplier_allocated_total = sum(
                a.allocated_amount for a in allocations_for(row.sales_invoice_no, links.allocations)
            )
            row.supplier_invoice_nos = [i.invoice_no for i in linked]
            flags = [i.paid for i in linked]
        else:
            flags = None

        try:
            row.settlement_status = derive_settlement_status(
                row.partner_paid, row.funds_cleared, flags, row.sales_invoice_no,
            )
        except SettlementUnverifiable as e:
            row.settlement_status = None
            row.settlement_error = e.message

        row.supplier_payment_ready = is_supplier_payment_ready(
            row.partner_paid, row.funds_cleared, row.supplier_unpaid_count,
        )
        return row

    def _rows_from_orders(self, orders: List[Order], links: Optional[SupplierLinks]) -> List[PaymentTrackerRow]:
        rows = []
        for order in index_by_invoice(orders).values():
            rows.append(self._tracker_row({
                "sales_invoice_no": order.invoice_no,
                "order_id": order.order_id,
                "brand": order.brand,
                "franchisee_name": order.franchisee,
                "order_date": order.order_date,
                "order_stage": order.order_stage,
                "total_order_value": order.order_total,
                "total_cogs": order.total_cogs,
                "partner_paid": order.partner_paid,
                "partner_paid_date": order.partner_paid_date,
                "funds_cleared": order.funds_cleared,
            }, links, source="computed"))
        return rows

    def _rows_from_view(self, records: List[Dict[str, Any]], links: Optional[SupplierLinks]) -> List[PaymentTrackerRow]:
        """
        Rows from the precomputed Payments_Tracker_View tab.

        The view's own status is compared with the derived one; the derived
        status wins and disagreements are logged.
        """
        rows = []
        for record in records:
            view = TrackerViewRecord.from_record(record)
            if not normalize_id(view.sales_invoice_no):
                continue
            row = self._tracker_row(view.model_dump(include=TRACKER_BASE_FIELDS), links, source="view")
            view_status = view.settlement_status.strip().upper()
            if view_status and row.settlement_status is not None and view_status != row.settlement_status.value:
                logger.warning(
                    f"Payments_Tracker_View says {view_status} for {row.sales_invoice_no}, "
                    f"derived {row.settlement_status.value}"
                )
            rows.append(row)
        return rows

    def list_payment_tracker_rows(
        self,
        settlement_status: Optional[str] = None,
        exclude_settled: bool = False,
        brand: Optional[str] = None,
        franchisee: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[PaymentTrackerRow]:
        """
        One row per sales invoice, with a freshly derived settlement status.

        Uses Payments_Tracker_View when the tab exists and has rows,
        otherwise builds the rows from Orders_Header. Supplier figures are
        recomputed from Supplier_Invoices and Order_Supplier_Allocations;
        when those cannot be read the rows are still returned, with
        settlement_status None where it cannot be decided.
        """
        view = self.transport.read_sheet(PAYMENTS_TRACKER_VIEW_SCHEMA.name)
        links = self.load_links()

        rows: List[PaymentTrackerRow] = []
        if view.available and view.rows:
            rows = self._rows_from_view(view.to_records(PAYMENTS_TRACKER_VIEW_SCHEMA), links)
        if not rows:
            rows = self._rows_from_orders(self.orders.list_orders(), links)

        return filter_payment_rows(
            rows,
            settlement_status=settlement_status,
            exclude_settled=exclude_settled,
            brand=brand,
            franchisee=franchisee,
            start_date=start_date,
            end_date=end_date,
        )

    def get_recon_summary(self, sales_invoice_no: str) -> ReconSummary:
        """Allocation total and linked supplier invoices for one sales invoice."""
        links = self.load_links()
        if links is None:
            raise SettlementUnverifiable(
                f"Supplier links for {sales_invoice_no} could not be read",
                {"sales_invoice_no": sales_invoice_no},
            )
        allocations = allocations_for(sales_invoice_no, links.allocations)
        linked = links.linked(sales_invoice_no)

        summary = ReconSummary(
            sales_invoice_no=sales_invoice_no,
            allocations_count=len(allocations),
            allocations=[
                AllocationLine(supplier_invoice_no=a.supplier_invoice_no, allocated_amount=a.allocated_amount)
                for a in allocations
            ],
            calculated_total=sum(a.allocated_amount for a in allocations),
            linked_supplier_invoices=[i.invoice_no for i in linked],
            unpaid_supplier_invoices=[i.invoice_no for i in linked if not i.paid],
        )

        order = self.orders.get_order_by_invoice_no(sales_invoice_no)
        if order is not None:
            summary.settlement_status = derive_settlement_status(
                order.partner_paid, order.funds_cleared, [i.paid for i in linked], order.invoice_no,
            )
        return summary

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_partner_payment(self, sales_invoice_no: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record the partner's payment against a sales invoice.

        Only PARTNER_PAYMENT_FIELDS are written.

        Raises:
            ValueError: invalid payment method or date
            RowNotFound: no order carries this invoice number
        """
        method = fields.get("partner_payment_method")
        if method and method not in ALLOWED_PAYMENT_METHODS:
            raise ValueError(f"Invalid partner_payment_method {method!r}; must be one of {ALLOWED_PAYMENT_METHODS}")
        _check_date_field(fields, "partner_paid_date")

        order = self.orders.get_order_by_invoice_no(sales_invoice_no)
        if order is None:
            raise RowNotFound(
                f"Sales invoice {sales_invoice_no!r} not found in {ORDERS_HEADER_SCHEMA.name}",
                {"sales_invoice_no": sales_invoice_no},
            )
        return self.writer.update_row(ORDERS_HEADER_SCHEMA, order.row_number, fields, PARTNER_PAYMENT_FIELDS)

    def update_supplier_invoice(self, invoice_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update a supplier invoice by its id (sheet row number).

        Only SUPPLIER_INVOICE_FIELDS are written.
        """
        _check_date_field(fields, "paid_date")
        try:
            row_number = int(str(invoice_id).strip())
        except ValueError:
            raise RowNotFound(f"Invalid supplier invoice id {invoice_id!r}", {"id": invoice_id}) from None
        return self.writer.update_row(SUPPLIER_INVOICES_SCHEMA, row_number, fields, SUPPLIER_INVOICE_FIELDS)

    def mark_supplier_invoice_paid(
        self,
        supplier_invoice_no: str,
        paid_date: str = "",
        payment_reference: str = "",
    ) -> Dict[str, Any]:
        """Mark a supplier invoice paid, located by its invoice number."""
        wanted = normalize_id(supplier_invoice_no)
        invoice = next((i for i in self._all_supplier_invoices() if normalize_id(i.invoice_no) == wanted), None)
        if invoice is None:
            raise RowNotFound(
                f"Supplier invoice {supplier_invoice_no!r} not found in {SUPPLIER_INVOICES_SCHEMA.name}",
                {"supplier_invoice_no": supplier_invoice_no},
            )
        fields: Dict[str, Any] = {"paid": True}
        if paid_date:
            fields["paid_date"] = paid_date
        if payment_reference:
            fields["payment_reference"] = payment_reference
        return self.update_supplier_invoice(invoice.id, fields)

    def create_supplier_invoices(self, batch: SupplierInvoiceBatch) -> Dict[str, Any]:
        """
        Append supplier invoices and, when the batch names a sales invoice,
        one allocation per invoice.

        Returns:
            {"invoice_rows", "allocation_rows"}
        """
        invoice_rows = self.writer.append_rows(SUPPLIER_INVOICES_SCHEMA, [
            {
                "invoice_no": invoice.supplier_invoice_no,
                "sales_invoice_no": batch.sales_invoice_no,
                "supplier": invoice.supplier,
                "invoice_date": invoice.invoice_date,
                "amount": invoice.amount,
                "paid": invoice.paid,
                "paid_date": invoice.paid_date,
                "payment_reference": invoice.payment_reference,
                "invoice_file_link": invoice.invoice_file_link,
            }
            for invoice in batch.invoices
        ])

        allocation_rows: List[int] = []
        if batch.sales_invoice_no:
            allocation_values = [
                {
                    "sales_invoice_no": batch.sales_invoice_no,
                    "supplier_invoice_no": invoice.supplier_invoice_no,
                    "allocated_amount": invoice.allocated_amount,
                }
                for invoice in batch.invoices
            ]
            try:
                allocation_rows = self.writer.append_rows(ORDER_SUPPLIER_ALLOCATIONS_SCHEMA, allocation_values)
            except WriteFailure as e:
                logger.error(
                    f"Supplier invoices for {batch.sales_invoice_no!r} written at rows {invoice_rows} "
                    f"but their allocations failed: {e.message}"
                )
                raise WriteFailure(
                    f"Supplier invoices created but allocations failed: {e.message}",
                    {"sales_invoice_no": batch.sales_invoice_no, "invoice_rows": invoice_rows},
                ) from e

        logger.info(
            f"Created {len(invoice_rows)} supplier invoice(s)"
            f"{' for ' + batch.sales_invoice_no if batch.sales_invoice_no else ''}"
        )
        return {"invoice_rows": invoice_rows, "allocation_rows": allocation_rows}

    def create_allocation(self, allocation: NewAllocation) -> int:
        """Append one allocation row; returns its sheet row number."""
        rows = self.writer.append_rows(ORDER_SUPPLIER_ALLOCATIONS_SCHEMA, [allocation.model_dump()])
        return rows[0]

