# franchise_ledger/models/__init__.py
"""
Data Models for Franchise Ledger

Pydantic models for sheet records, derived views and write inputs.
"""

from .records import (
    SKU,
    Brand,
    CompanyEarnings,
    Franchise,
    LocationMetrics,
    NewAllocation,
    NewOrder,
    NewOrderLine,
    NewSupplierInvoice,
    Order,
    OrderLine,
    OrderSupplierAllocation,
    PaymentTrackerRow,
    ReconSummary,
    Supplier,
    SupplierInvoice,
    SupplierInvoiceBatch,
)

__all__ = [
    "SKU",
    "Brand",
    "CompanyEarnings",
    "Franchise",
    "LocationMetrics",
    "NewAllocation",
    "NewOrder",
    "NewOrderLine",
    "NewSupplierInvoice",
    "Order",
    "OrderLine",
    "OrderSupplierAllocation",
    "PaymentTrackerRow",
    "ReconSummary",
    "Supplier",
    "SupplierInvoice",
    "SupplierInvoiceBatch",
]
