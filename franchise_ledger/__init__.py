# franchise_ledger/__init__.py
"""
Franchise Ledger Package

Spreadsheet-backed ledger for franchise orders, supplier costs and
payment reconciliation.
- Header-tolerant reads from Google Sheets
- Order to order-line and sales-to-supplier invoice matching
- Settlement status derived per sales invoice
- Formula-preserving writes with an audit trail
"""

__version__ = "1.0.0"
__author__ = "Franchise Ledger Team"
