"""
Franchise Ledger - Entity Matching

Joins records across sheets whose keys were typed by hand:

- Orders to their order lines (invoice number, then order id, then the
  numeric core of the order id, with a brand check when order ids repeat
  across brands)
- Sales invoices to supplier invoices (through allocations, or through the
  supplier invoice's own sales_invoice_no column)
- Orders and order lines to franchise locations (code, code prefix, name)

Each join is an ordered list of named strategies so the rule that produced
a match can be logged and tested on its own.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.records import Franchise, Order, OrderLine, OrderSupplierAllocation, SupplierInvoice
from .identifiers import normalize_brand, normalize_franchise_code, normalize_id, numeric_core

logger = logging.getLogger(__name__)


# ====================================================================================
# ORDER <-> ORDER LINE
# ====================================================================================
# A strategy returns True (match), False (decisive mismatch) or None (does not
# apply, try the next one).

def match_by_invoice_no(order: Order, line: OrderLine) -> Optional[bool]:
    """Invoice numbers are globally unique: when both sides have one, it alone decides."""
    order_invoice = normalize_id(order.invoice_no)
    line_invoice = normalize_id(line.invoice_no)
    if order_invoice and line_invoice:
        return order_invoice == line_invoice
    return None


def match_by_order_id(order: Order, line: OrderLine) -> Optional[bool]:
    order_id = normalize_id(order.order_id)
    if order_id and order_id == normalize_id(line.order_id):
        return True
    return None


def match_by_numeric_core(order: Order, line: OrderLine) -> Optional[bool]:
    """'ORD-1005' and '#1005' share the core '1005'."""
    order_core = numeric_core(order.order_id)
    if order_core and order_core == numeric_core(line.order_id):
        return True
    return None


LINE_MATCH_STRATEGIES: List[Tuple[str, Callable[[Order, OrderLine], Optional[bool]]]] = [
    ("invoice_no", match_by_invoice_no),
    ("order_id", match_by_order_id),
    ("numeric_core", match_by_numeric_core),
]


def brands_agree(order: Order, line: OrderLine) -> bool:
    """A line without a brand never contradicts the order."""
    line_brand = normalize_brand(line.brand)
    return not line_brand or line_brand == normalize_brand(order.brand)


class OrderLineMatcher:
    """
    Joins order lines to orders.

    Built from the full Orders_Header so it knows which order ids (or
    numeric cores) are shared by more than one order. Lines for such an
    order must also carry the order's brand, when they carry a brand.

    Args:
        orders: Every known order
    """

    def __init__(self, orders: Sequence[Order]):
        self.orders = list(orders)
        self._id_counts = Counter(normalize_id(o.order_id) for o in self.orders if normalize_id(o.order_id))
        self._core_counts = Counter(numeric_core(o.order_id) for o in self.orders if numeric_core(o.order_id))

    def is_ambiguous(self, order: Order) -> bool:
        """True when another order shares this order's normalized id or numeric core."""
        order_id = normalize_id(order.order_id)
        core = numeric_core(order.order_id)
        return self._id_counts.get(order_id, 0) > 1 or self._core_counts.get(core, 0) > 1

    def match(self, order: Order, line: OrderLine, require_brand: bool = False) -> Optional[str]:
        """
        Name of the strategy joining line to order, or None.

        Args:
            order: Candidate order
            line: Candidate line
            require_brand: Apply the brand check even if the order id is unique
        """
        check_brand = require_brand or self.is_ambiguous(order)
        for name, strategy in LINE_MATCH_STRATEGIES:
            result = strategy(order, line)
            if result is None:
                continue
            if not result:
                return None
            if name != "invoice_no" and check_brand and not brands_agree(order, line):
                return None
            return name
        return None

    def lines_for(self, order: Order, lines: Iterable[OrderLine], require_brand: bool = False) -> List[OrderLine]:
        matched: List[OrderLine] = []
        strategies: Counter = Counter()
        for line in lines:
            name = self.match(order, line, require_brand=require_brand)
            if name:
                matched.append(line)
                strategies[name] += 1
        if matched:
            logger.debug(f"Order {order.order_id!r}: {len(matched)} lines matched {dict(strategies)}")
        return matched

    def find_orders(self, order_id: str, brand: Optional[str] = None) -> List[Order]:
        """
        Orders whose id matches, normalized first, then by numeric core.

        With a brand, only orders of that brand are returned.
        """
        wanted = normalize_id(order_id)
        if not wanted:
            return []
        candidates = [o for o in self.orders if normalize_id(o.order_id) == wanted]
        if not candidates:
            core = numeric_core(order_id)
            candidates = [o for o in self.orders if core and numeric_core(o.order_id) == core]
        if brand:
            candidates = [o for o in candidates if normalize_brand(o.brand) == normalize_brand(brand)]
        return candidates


# ====================================================================================
# SALES INVOICE <-> SUPPLIER INVOICE
# ====================================================================================

def allocations_for(
    sales_invoice_no: str,
    allocations: Iterable[OrderSupplierAllocation],
) -> List[OrderSupplierAllocation]:
    key = normalize_id(sales_invoice_no)
    if not key:
        return []
    return [a for a in allocations if normalize_id(a.sales_invoice_no) == key]


def linked_supplier_invoices(
    sales_invoice_no: str,
    supplier_invoices: Iterable[SupplierInvoice],
    allocations: Iterable[OrderSupplierAllocation],
) -> List[SupplierInvoice]:
    """
    Supplier invoices belonging to a sales invoice.

    The union of invoices allocated to it and invoices whose own
    sales_invoice_no names it, de-duplicated by sheet row.
    """
    key = normalize_id(sales_invoice_no)
    if not key:
        return []

    allocated = {normalize_id(a.supplier_invoice_no) for a in allocations_for(key, allocations)}
    allocated.discard("")

    linked: List[SupplierInvoice] = []
    seen = set()
    for invoice in supplier_invoices:
        direct = normalize_id(invoice.sales_invoice_no) == key
        via_allocation = normalize_id(invoice.invoice_no) in allocated
        if not (direct or via_allocation):
            continue
        identity = invoice.id or invoice.row_number or normalize_id(invoice.invoice_no)
        if identity in seen:
            continue
        seen.add(identity)
        linked.append(invoice)
    return linked


# ====================================================================================
# LOCATION
# ====================================================================================

def _party_keys(record: Any) -> Tuple[str, str]:
    """(code-ish value, name-ish value) of an order or order line."""
    name = (getattr(record, "franchisee", "") or getattr(record, "franchisee_name", "") or "").strip()
    code = (getattr(record, "franchisee_code", "") or name).strip()
    return code, name


def match_exact_code(record: Any, franchise: Franchise) -> bool:
    code, _ = _party_keys(record)
    return normalize_franchise_code(code) == normalize_franchise_code(franchise.code)


def match_code_prefix(record: Any, franchise: Franchise) -> bool:
    """The letters leading the franchise code appear in the order's code ("BOL" in "BOL01")."""
    code, _ = _party_keys(record)
    base = re.match(r"^([A-Za-z]+)", franchise.code.strip())
    return bool(base) and base.group(1).upper() in normalize_franchise_code(code)


def match_franchisee_name(record: Any, franchise: Franchise) -> bool:
    _, name = _party_keys(record)
    order_name = name.lower()
    franchise_name = franchise.name.strip().lower()
    if not franchise_name or not order_name:
        return False
    return order_name == franchise_name or franchise_name in order_name or order_name in franchise_name


LOCATION_MATCH_STRATEGIES: List[Tuple[str, Callable[[Any, Franchise], bool]]] = [
    ("exact_code", match_exact_code),
    ("code_prefix", match_code_prefix),
    ("franchisee_name", match_franchisee_name),
]


def find_location(record: Any, franchises: Sequence[Franchise]) -> Optional[Franchise]:
    """
    Best franchise for an order.

    Each strategy is tried against every franchise before falling back to
    the next, so an exact code match elsewhere in the list beats a prefix
    match earlier in it.
    """
    code, name = _party_keys(record)
    if not (code or name):
        return None
    candidates = [f for f in franchises if f.code.strip()]
    for _, strategy in LOCATION_MATCH_STRATEGIES:
        for franchise in candidates:
            if strategy(record, franchise):
                return franchise
    return None


def records_for_location(records: Iterable[Any], franchise: Franchise, franchises: Sequence[Franchise]) -> List[Any]:
    """Records whose best location is this franchise."""
    target = normalize_franchise_code(franchise.code)
    selected = []
    for record in records:
        best = find_location(record, franchises)
        if best is not None and normalize_franchise_code(best.code) == target:
            selected.append(record)
    return selected


def index_by_invoice(orders: Iterable[Order]) -> Dict[str, Order]:
    """Orders keyed by normalized invoice number; orders without one are skipped."""
    index: Dict[str, Order] = {}
    for order in orders:
        key = normalize_id(order.invoice_no)
        if not key:
            continue
        if key in index:
            logger.warning(f"Duplicate invoice number {order.invoice_no!r} in Orders_Header; keeping first")
            continue
        index[key] = order
    return index
