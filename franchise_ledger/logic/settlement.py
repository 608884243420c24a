"""
Franchise Ledger - Settlement Status

A sales invoice moves through four states:

    OPEN -> PAID_NOT_CLEARED -> WAITING_SUPPLIERS -> SETTLED

The status is never stored. It is derived on every read from three facts:
whether the partner has paid, whether those funds have cleared, and the
paid flags of the supplier invoices linked to the sale.

Author: Franchise Ledger Team
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from .exceptions import SettlementUnverifiable


class SettlementStatus(str, Enum):
    OPEN = "OPEN"
    PAID_NOT_CLEARED = "PAID_NOT_CLEARED"
    WAITING_SUPPLIERS = "WAITING_SUPPLIERS"
    SETTLED = "SETTLED"


def derive_settlement_status(
    partner_paid: bool,
    funds_cleared: bool,
    supplier_paid_flags: Optional[Iterable[bool]],
    sales_invoice_no: str = "",
) -> SettlementStatus:
    """
    Derive the settlement status of one sales invoice.

    Rules, first match wins:
        1. partner has not paid                  -> OPEN
        2. partner paid, funds not cleared       -> PAID_NOT_CLEARED
        3. cleared, no linked supplier invoices  -> SETTLED
        4. cleared, every linked invoice paid    -> SETTLED
        5. otherwise                             -> WAITING_SUPPLIERS

    Args:
        partner_paid: Partner payment received
        funds_cleared: Partner payment has cleared
        supplier_paid_flags: Paid flag of each linked supplier invoice, or
            None when the links could not be looked up
        sales_invoice_no: Used in the error message only

    Raises:
        SettlementUnverifiable: the links are unknown (None) and rules 1-2
            do not already decide the status
    """
    if not partner_paid:
        return SettlementStatus.OPEN
    if not funds_cleared:
        return SettlementStatus.PAID_NOT_CLEARED

    if supplier_paid_flags is None:
        raise SettlementUnverifiable(
            f"Supplier invoices linked to {sales_invoice_no or 'sales invoice'} could not be verified",
            {"sales_invoice_no": sales_invoice_no},
        )

    flags = list(supplier_paid_flags)
    # No linked supplier invoices counts as settled
    if all(flags):
        return SettlementStatus.SETTLED
    return SettlementStatus.WAITING_SUPPLIERS


def is_supplier_payment_ready(partner_paid: bool, funds_cleared: bool, unpaid_count: int) -> bool:
    """Cleared partner money is waiting to be passed on to at least one supplier."""
    return bool(partner_paid and funds_cleared and unpaid_count > 0)
