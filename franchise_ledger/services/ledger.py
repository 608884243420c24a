"""
Franchise Ledger - Facade

Ledger wires the transport, the writer and the services for one
spreadsheet and exposes every read and write operation in one place.
The HTTP layer and the CLI talk only to this class.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..logic.config_manager import LedgerConfig, get_config
from ..logic.settlement import SettlementStatus
from ..logic.sheet_loader import SheetTransport
from ..logic.sheet_writer import FormulaPreservingWriter
from ..models.records import (
    SKU,
    Brand,
    CompanyEarnings,
    Franchise,
    LocationMetrics,
    NewAllocation,
    NewOrder,
    Order,
    OrderLine,
    OrderSupplierAllocation,
    PaymentTrackerRow,
    ReconSummary,
    Supplier,
    SupplierInvoice,
    SupplierInvoiceBatch,
)
from .catalog_service import CatalogService
from .order_service import OrderService
from .payment_service import PaymentService
from .sheets_client import build_sheets_api

logger = logging.getLogger(__name__)


class Ledger:
    """
    Every ledger operation over one spreadsheet.

    Args:
        api: Object with values_get / values_batch_update / batch_update /
            get_spreadsheet (GoogleSheetsApi, or an in-memory fake)
        config: Settings; sheet name overrides and brand store URLs come
            from here
        user: Name recorded in the audit trail for writes
    """

    def __init__(self, api: Any, config: Optional[LedgerConfig] = None, user: str = "system"):
        self.config = config or LedgerConfig()
        self.transport = SheetTransport(api, sheet_names=self.config.sheet_names)
        self.writer = FormulaPreservingWriter(self.transport, user=user)
        self.orders = OrderService(self.transport, self.writer, self.config)
        self.payments = PaymentService(self.transport, self.writer, self.orders)
        self.catalog = CatalogService(self.transport, self.orders)

    @classmethod
    def from_config(cls, config: Optional[LedgerConfig] = None, user: str = "system") -> "Ledger":
        """
        Ledger connected to Google Sheets.

        Raises:
            ConfigurationError: credentials or spreadsheet id missing
        """
        config = config or get_config()
        return cls(build_sheets_api(config), config=config, user=user)

    # ==================================================================
    # ORDERS
    # ==================================================================

    def list_orders(self) -> List[Order]:
        return self.orders.list_orders()

    def get_order_by_invoice_no(self, invoice_no: str) -> Optional[Order]:
        return self.orders.get_order_by_invoice_no(invoice_no)

    def get_order_by_id(self, order_id: str, brand: Optional[str] = None) -> Optional[Order]:
        return self.orders.get_order_by_id(order_id, brand=brand)

    def list_order_lines(
        self,
        order_id: str,
        invoice_no: Optional[str] = None,
        brand: Optional[str] = None,
    ) -> List[OrderLine]:
        return self.orders.list_order_lines(order_id, invoice_no=invoice_no, brand=brand)

    def list_all_order_lines(self) -> List[OrderLine]:
        return self.orders.list_all_order_lines()

    def update_order_status(
        self,
        order_id: str,
        fields: Dict[str, Any],
        brand: Optional[str] = None,
        invoice_no: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.orders.update_order_status(order_id, fields, brand=brand, invoice_no=invoice_no)

    def create_order(self, new_order: NewOrder) -> Dict[str, Any]:
        return self.orders.create_order(new_order)

    def delete_order(
        self,
        order_id: str,
        brand: Optional[str] = None,
        invoice_no: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.orders.delete_order(order_id, brand=brand, invoice_no=invoice_no)

    # ==================================================================
    # PAYMENTS
    # ==================================================================

    def list_supplier_invoices(self, sales_invoice_no: Optional[str] = None) -> List[SupplierInvoice]:
        return self.payments.list_supplier_invoices(sales_invoice_no)

    def list_allocations(self, sales_invoice_no: Optional[str] = None) -> List[OrderSupplierAllocation]:
        return self.payments.list_allocations(sales_invoice_no)

    def list_payment_tracker_rows(self, **filters: Any) -> List[PaymentTrackerRow]:
        """See PaymentService.list_payment_tracker_rows for the filters."""
        return self.payments.list_payment_tracker_rows(**filters)

    def get_settlement_status(self, sales_invoice_no: str) -> Optional[SettlementStatus]:
        return self.payments.get_settlement_status(sales_invoice_no)

    def get_recon_summary(self, sales_invoice_no: str) -> ReconSummary:
        return self.payments.get_recon_summary(sales_invoice_no)

    def update_partner_payment(self, sales_invoice_no: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.payments.update_partner_payment(sales_invoice_no, fields)

    def update_supplier_invoice(self, invoice_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.payments.update_supplier_invoice(invoice_id, fields)

    def mark_supplier_invoice_paid(
        self,
        supplier_invoice_no: str,
        paid_date: str = "",
        payment_reference: str = "",
    ) -> Dict[str, Any]:
        return self.payments.mark_supplier_invoice_paid(supplier_invoice_no, paid_date, payment_reference)

    def create_supplier_invoices(self, batch: SupplierInvoiceBatch) -> Dict[str, Any]:
        return self.payments.create_supplier_invoices(batch)

    def create_allocation(self, allocation: NewAllocation) -> int:
        return self.payments.create_allocation(allocation)

    # ==================================================================
    # CATALOG
    # ==================================================================

    def list_suppliers(self, brand: Optional[str] = None) -> List[Supplier]:
        return self.catalog.list_suppliers(brand)

    def list_skus(self, brand: Optional[str] = None) -> List[SKU]:
        return self.catalog.list_skus(brand)

    def list_franchises(self) -> List[Franchise]:
        return self.catalog.list_franchises()

    def list_brands(self) -> List[Brand]:
        return self.catalog.list_brands()

    def get_location_metrics(self, code: str) -> Optional[LocationMetrics]:
        return self.catalog.get_location_metrics(code)

    def list_company_earnings(self) -> List[CompanyEarnings]:
        return self.catalog.list_company_earnings()
