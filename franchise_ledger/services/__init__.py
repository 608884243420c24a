# franchise_ledger/services/__init__.py
"""
Service Layer for Franchise Ledger

- OrderService: orders and order lines
- PaymentService: supplier invoices, allocations and settlement
- CatalogService: suppliers, SKUs, franchises, brands, location metrics
- Ledger: facade over all of the above for one spreadsheet
"""

from .catalog_service import CatalogService
from .ledger import Ledger
from .order_service import OrderService
from .payment_service import PaymentService

__all__ = [
    "CatalogService",
    "Ledger",
    "OrderService",
    "PaymentService",
]
