"""
Order reads and writes over Orders_Header and Order_Lines.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..logic.config_manager import LedgerConfig
from ..logic.exceptions import AmbiguousRow, RowNotFound, TransportError, WriteFailure
from ..logic.identifiers import format_order_id, normalize_id
from ..logic.matching import OrderLineMatcher
from ..logic.sheet_loader import SheetTransport
from ..logic.sheet_schemas import ORDER_LINES_SCHEMA, ORDERS_HEADER_SCHEMA, SKU_COGS
from ..logic.sheet_writer import FormulaPreservingWriter
from ..models.records import ALLOWED_ORDER_STAGES, NewOrder, Order, OrderLine

logger = logging.getLogger(__name__)

# Orders_Header fields update_order_status may write
ORDER_STATUS_FIELDS = frozenset({
    "order_stage",
    "supplier_ordered",
    "supplier_shipped",
    "delivered_to_partner",
    "partner_paid",
    "next_action",
})


def validate_order_stage(stage: Any) -> None:
    if stage not in ALLOWED_ORDER_STAGES:
        raise ValueError(f"Invalid order_stage {stage!r}; must be one of {ALLOWED_ORDER_STAGES}")


class OrderService:
    """
    Orders and their lines.

    Orders are located by invoice number when one is given, otherwise by
    order id (normalized, then numeric core) narrowed by brand.
    """

    def __init__(self, transport: SheetTransport, writer: FormulaPreservingWriter, config: LedgerConfig):
        self.transport = transport
        self.writer = writer
        self.config = config

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_orders(self) -> List[Order]:
        records = self.transport.read_records(ORDERS_HEADER_SCHEMA)
        orders = [Order.from_record(r) for r in records]
        # blank rows inside the formula range have neither key
        return [o for o in orders if o.order_id or o.invoice_no]

    def get_order_by_invoice_no(self, invoice_no: str) -> Optional[Order]:
        wanted = normalize_id(invoice_no)
        if not wanted:
            return None
        for order in self.list_orders():
            if normalize_id(order.invoice_no) == wanted:
                return order
        return None

    def get_order_by_id(self, order_id: str, brand: Optional[str] = None) -> Optional[Order]:
        """First order matching the id (and brand, if given); None when absent."""
        matches = OrderLineMatcher(self.list_orders()).find_orders(order_id, brand)
        if len(matches) > 1:
            logger.info(f"Order id {order_id!r} matches {len(matches)} orders; returning the first")
        return matches[0] if matches else None

    def list_all_order_lines(self) -> List[OrderLine]:
        records = self.transport.read_records(ORDER_LINES_SCHEMA)
        lines = [OrderLine.from_record(r) for r in records]
        return [line for line in lines if line.order_id or line.sku or line.invoice_no]

    def list_order_lines(
        self,
        order_id: str,
        invoice_no: Optional[str] = None,
        brand: Optional[str] = None,
    ) -> List[OrderLine]:
        """
        Lines belonging to one order.

        Args:
            order_id: Order id as shown anywhere ("#1005", "1005")
            invoice_no: Sales invoice number; decisive when lines carry one
            brand: Required when the order id repeats across brands
        """
        orders = self.list_orders()
        matcher = OrderLineMatcher(orders)
        lines = self.list_all_order_lines()

        target: Optional[Order] = None
        if invoice_no:
            wanted = normalize_id(invoice_no)
            target = next((o for o in orders if normalize_id(o.invoice_no) == wanted), None)
        candidates = [target] if target else matcher.find_orders(order_id, brand)

        if not candidates:
            probe = Order(order_id=order_id or "", invoice_no=invoice_no or "", brand=brand or "")
            return matcher.lines_for(probe, lines, require_brand=bool(brand))

        matched: List[OrderLine] = []
        seen = set()
        for order in candidates:
            for line in matcher.lines_for(order, lines, require_brand=bool(brand)):
                if line.row_number not in seen:
                    seen.add(line.row_number)
                    matched.append(line)
        return matched

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def locate_order(
        self,
        order_id: str,
        brand: Optional[str] = None,
        invoice_no: Optional[str] = None,
    ) -> Order:
        """
        The single order a write should target.

        Raises:
            RowNotFound: nothing matches
            AmbiguousRow: the id repeats across brands and no brand was given
        """
        if invoice_no:
            order = self.get_order_by_invoice_no(invoice_no)
            if order is None:
                raise RowNotFound(f"Order with invoice {invoice_no!r} not found", {"invoice_no": invoice_no})
            return order

        matches = OrderLineMatcher(self.list_orders()).find_orders(order_id, brand)
        if not matches:
            raise RowNotFound(f"Order {format_order_id(order_id)} not found", {"order_id": order_id, "brand": brand})
        if len(matches) > 1:
            raise AmbiguousRow(
                f"Order {format_order_id(order_id)} exists for several brands; specify the brand",
                {"order_id": order_id, "brands": [o.brand for o in matches]},
            )
        return matches[0]

    def update_order_status(
        self,
        order_id: str,
        fields: Dict[str, Any],
        brand: Optional[str] = None,
        invoice_no: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Update status fields of one order.

        Only ORDER_STATUS_FIELDS are written; anything else in fields is
        skipped with a warning.

        Returns:
            The fields written
        """
        if "order_stage" in fields:
            validate_order_stage(fields["order_stage"])
        order = self.locate_order(order_id, brand=brand, invoice_no=invoice_no)
        return self.writer.update_row(ORDERS_HEADER_SCHEMA, order.row_number, fields, ORDER_STATUS_FIELDS)

    def _warn_unknown_skus(self, new_order: NewOrder) -> List[str]:
        """
        SKUs of a new order that SKU_COGS does not list.

        Order_Lines formulas look COGS up by SKU, so an unknown SKU gets no
        cost. The order is still written; the SKUs are logged.
        """
        try:
            column = self.transport.read_column(SKU_COGS, "SKU")
        except TransportError as e:
            logger.warning(f"SKU check skipped for order {format_order_id(new_order.order_id)}: {e.message}")
            return []

        known = {normalize_id(sku) for sku in column if normalize_id(sku)}
        if not known:
            return []
        unknown = [line.sku for line in new_order.order_lines if normalize_id(line.sku) not in known]
        if unknown:
            logger.warning(
                f"Order {format_order_id(new_order.order_id)} uses SKUs missing from {SKU_COGS}: {unknown}"
            )
        return unknown

    def create_order(self, new_order: NewOrder) -> Dict[str, Any]:
        """
        Create an order header row and its lines.

        Orders_Header gets the order id, invoice number and stage; every
        other column is formula-driven. Order_Lines gets the typed columns
        of each line plus the brand's store URL.

        Returns:
            {"order_id", "header_row", "line_rows"}
        """
        if new_order.invoice_no and self.get_order_by_invoice_no(new_order.invoice_no) is not None:
            raise WriteFailure(
                f"An order with invoice {new_order.invoice_no!r} already exists",
                {"invoice_no": new_order.invoice_no},
            )

        store_url = self.config.store_url_for_brand(new_order.brand)
        if new_order.brand and not store_url:
            logger.warning(f"No store URL configured for brand {new_order.brand!r}")
        self._warn_unknown_skus(new_order)

        header_rows = self.writer.append_rows(ORDERS_HEADER_SCHEMA, [{
            "order_id": new_order.order_id,
            "invoice_no": new_order.invoice_no,
            "order_stage": new_order.order_stage,
        }])

        line_values = [
            {
                "order_id": new_order.order_id,
                "order_store_url": store_url,
                "order_date": new_order.order_date,
                "franchisee_code": new_order.franchisee_code,
                "sku": line.sku,
                "quantity": line.quantity,
                "invoice_no": new_order.invoice_no,
            }
            for line in new_order.order_lines
        ]
        try:
            line_rows = self.writer.append_rows(ORDER_LINES_SCHEMA, line_values)
        except WriteFailure as e:
            logger.error(
                f"Order {format_order_id(new_order.order_id)} header written at row {header_rows[0]} "
                f"but its lines failed: {e.message}"
            )
            raise WriteFailure(
                f"Order header created but lines failed: {e.message}",
                {"order_id": new_order.order_id, "header_row": header_rows[0]},
            ) from e

        logger.info(f"Created order {format_order_id(new_order.order_id)} with {len(line_rows)} line(s)")
        return {"order_id": new_order.order_id, "header_row": header_rows[0], "line_rows": line_rows}

    def delete_order(
        self,
        order_id: str,
        brand: Optional[str] = None,
        invoice_no: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Delete an order and cascade to its lines.

        Lines are removed first so a failure part-way leaves the header in
        place and the delete can be retried.
        """
        orders = self.list_orders()
        order = self.locate_order(order_id, brand=brand, invoice_no=invoice_no)
        lines = OrderLineMatcher(orders).lines_for(order, self.list_all_order_lines(), require_brand=bool(brand))

        line_rows = self.writer.delete_rows(ORDER_LINES_SCHEMA, [line.row_number for line in lines])
        self.writer.delete_rows(ORDERS_HEADER_SCHEMA, [order.row_number])

        logger.info(f"Deleted order {order.order_id!r} ({order.brand}) and {len(line_rows)} line(s)")
        return {"order_id": order.order_id, "header_row": order.row_number, "line_rows": line_rows}
