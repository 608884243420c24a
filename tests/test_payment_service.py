"""
Tests for payment reconciliation through the Ledger.

The sample spreadsheet holds one sales invoice in each settlement state:
- 1005WS: paid, cleared, both supplier invoices paid   -> SETTLED
- 1005ES: partner has not paid                         -> OPEN
- 1014WS: paid, not cleared                            -> PAID_NOT_CLEARED
- 1020SB: paid, cleared, SUP-200 unpaid                -> WAITING_SUPPLIERS
"""

import logging

import pytest
from pydantic import ValidationError

from franchise_ledger.logic.exceptions import RowNotFound, SettlementUnverifiable, WriteFailure
from franchise_ledger.logic.settlement import SettlementStatus
from franchise_ledger.models.records import NewAllocation, SupplierInvoiceBatch


def by_invoice(rows):
    return {row.sales_invoice_no: row for row in rows}


class TestSupplierInvoiceReads:
    def test_list_all(self, ledger):
        invoices = ledger.list_supplier_invoices()
        assert [i.invoice_no for i in invoices] == ["SUP-100", "SUP-101", "SUP-200"]
        assert invoices[0].id == "2"
        assert invoices[2].paid is False

    def test_linked_to_sales_invoice(self, ledger):
        """Direct links and allocations both count."""
        invoices = ledger.list_supplier_invoices("#1005ws")
        assert [i.invoice_no for i in invoices] == ["SUP-100", "SUP-101"]

    def test_allocations(self, ledger):
        assert len(ledger.list_allocations()) == 3
        assert [a.allocated_amount for a in ledger.list_allocations("1005WS")] == [180, 120]


class TestPaymentTracker:
    """Test the payments tracker rows."""

    def test_statuses(self, ledger):
        rows = by_invoice(ledger.list_payment_tracker_rows())

        assert rows["1005WS"].settlement_status == SettlementStatus.SETTLED
        assert rows["1005ES"].settlement_status == SettlementStatus.OPEN
        assert rows["1014WS"].settlement_status == SettlementStatus.PAID_NOT_CLEARED
        assert rows["1020SB"].settlement_status == SettlementStatus.WAITING_SUPPLIERS

    def test_supplier_figures(self, ledger):
        rows = by_invoice(ledger.list_payment_tracker_rows())

        settled = rows["1005WS"]
        assert settled.supplier_invoice_count == 2
        assert settled.supplier_paid_count == 2
        assert settled.supplier_allocated_total == 300
        assert settled.supplier_invoice_nos == ["SUP-100", "SUP-101"]
        assert settled.supplier_payment_ready is False
        assert settled.source == "computed"

        waiting = rows["1020SB"]
        assert waiting.supplier_unpaid_count == 1
        assert waiting.supplier_payment_ready is True

    def test_exclude_settled(self, ledger):
        """The worklist keeps only invoices the partner has not paid."""
        rows = ledger.list_payment_tracker_rows(exclude_settled=True)
        assert [r.sales_invoice_no for r in rows] == ["1005ES"]

    def test_filter_by_status(self, ledger):
        rows = ledger.list_payment_tracker_rows(settlement_status="WAITING_SUPPLIERS")
        assert [r.sales_invoice_no for r in rows] == ["1020SB"]

    def test_filter_by_brand_and_franchisee(self, ledger):
        assert [r.sales_invoice_no for r in ledger.list_payment_tracker_rows(brand="wing")] == ["1005WS", "1014WS"]
        assert [r.sales_invoice_no for r in ledger.list_payment_tracker_rows(franchisee="Leeds")] == ["1005ES"]
        assert len(ledger.list_payment_tracker_rows(brand="all")) == 4

    def test_filter_by_dates(self, ledger):
        rows = ledger.list_payment_tracker_rows(start_date="2024-03-05", end_date="2024-03-31")
        assert [r.sales_invoice_no for r in rows] == ["1014WS"]

    def test_invalid_date_filter(self, ledger):
        with pytest.raises(ValueError):
            ledger.list_payment_tracker_rows(start_date="not-a-date")

    def test_unreadable_links_leave_status_undecided(self, api, ledger):
        """Rows still come back; cleared invoices are never reported SETTLED."""
        api.broken.add("Supplier_Invoices")

        rows = by_invoice(ledger.list_payment_tracker_rows())

        assert rows["1005WS"].settlement_status is None
        assert rows["1005WS"].settlement_error
        assert rows["1020SB"].settlement_status is None
        assert rows["1005ES"].settlement_status == SettlementStatus.OPEN
        assert rows["1014WS"].settlement_status == SettlementStatus.PAID_NOT_CLEARED

    def test_missing_allocations_tab(self, api, ledger):
        del api.sheets["Order_Supplier_Allocations"]
        rows = by_invoice(ledger.list_payment_tracker_rows())
        assert rows["1005WS"].settlement_status is None

    def test_tracker_view_used_when_present(self, api, ledger, caplog):
        """The view's rows are used, but the derived status wins over the view's."""
        api.sheets["Payments_Tracker_View"] = [
            ["Sales Invoice No", "Order ID", "Brand", "Franchisee Name", "Order Date", "Order Stage",
             "Total Order Value", "Partner Paid?", "Funds Cleared?", "Settlement Status"],
            ["1005WS", "#1005", "Wing Shack Co", "Bolton Wings", "2024-03-01", "Delivered",
             "500", "TRUE", "TRUE", "WAITING_SUPPLIERS"],
            ["", "", "", "", "", "", "", "", "", ""],
        ]

        with caplog.at_level(logging.WARNING):
            rows = ledger.list_payment_tracker_rows()

        assert len(rows) == 1
        assert rows[0].source == "view"
        assert rows[0].total_order_value == 500
        assert rows[0].settlement_status == SettlementStatus.SETTLED
        assert "WAITING_SUPPLIERS" in caplog.text


class TestSettlementStatus:
    def test_by_invoice(self, ledger):
        assert ledger.get_settlement_status("1005ws") == SettlementStatus.SETTLED
        assert ledger.get_settlement_status("#1014WS") == SettlementStatus.PAID_NOT_CLEARED

    def test_unknown_invoice(self, ledger):
        assert ledger.get_settlement_status("NOPE") is None

    def test_unverifiable(self, api, ledger):
        api.broken.add("Order_Supplier_Allocations")
        with pytest.raises(SettlementUnverifiable):
            ledger.get_settlement_status("1005WS")

    def test_open_needs_no_links(self, api, ledger):
        """An unpaid invoice is OPEN whether or not the links can be read."""
        api.broken.add("Supplier_Invoices")
        assert ledger.get_settlement_status("1005ES") == SettlementStatus.OPEN


class TestReconSummary:
    def test_settled(self, ledger):
        summary = ledger.get_recon_summary("1005WS")

        assert summary.allocations_count == 2
        assert summary.calculated_total == 300
        assert summary.linked_supplier_invoices == ["SUP-100", "SUP-101"]
        assert summary.unpaid_supplier_invoices == []
        assert summary.settlement_status == SettlementStatus.SETTLED

    def test_waiting(self, ledger):
        summary = ledger.get_recon_summary("1020SB")
        assert summary.unpaid_supplier_invoices == ["SUP-200"]
        assert summary.settlement_status == SettlementStatus.WAITING_SUPPLIERS

    def test_unknown_sales_invoice(self, ledger):
        summary = ledger.get_recon_summary("9999XX")
        assert summary.allocations_count == 0
        assert summary.settlement_status is None

    def test_unreadable_links(self, api, ledger):
        api.broken.add("Supplier_Invoices")
        with pytest.raises(SettlementUnverifiable):
            ledger.get_recon_summary("1005WS")


class TestPartnerPayment:
    """Test recording partner payments."""

    def test_records_payment(self, api, ledger):
        written = ledger.update_partner_payment("1005ES", {
            "partner_paid": True,
            "partner_paid_date": "2024-03-09",
            "partner_payment_method": "SHOPIFY",
            "order_stage": "Completed",
        })

        assert "order_stage" not in written
        assert api.cell("Orders_Header", 3, "Partner Paid?") == "YES"
        assert api.cell("Orders_Header", 3, "Order Stage") == "New"
        assert ledger.get_settlement_status("1005ES") == SettlementStatus.PAID_NOT_CLEARED

    def test_clearing_funds_settles(self, ledger):
        ledger.update_partner_payment("1014WS", {"funds_cleared": True})
        assert ledger.get_settlement_status("1014WS") == SettlementStatus.SETTLED

    def test_invalid_method(self, ledger):
        with pytest.raises(ValueError):
            ledger.update_partner_payment("1005ES", {"partner_payment_method": "CHEQUE"})

    def test_invalid_date(self, ledger):
        with pytest.raises(ValueError):
            ledger.update_partner_payment("1005ES", {"partner_paid_date": "09/03/2024"})

    def test_unknown_invoice(self, ledger):
        with pytest.raises(RowNotFound):
            ledger.update_partner_payment("NOPE", {"partner_paid": True})


class TestSupplierInvoiceWrites:
    """Test supplier invoice updates and creation."""

    def test_update_by_id(self, api, ledger):
        written = ledger.update_supplier_invoice("4", {"paid": True, "paid_date": "2024-04-10", "amount": 1})

        assert written == {"paid": True, "paid_date": "2024-04-10"}
        assert api.cell("Supplier_Invoices", 4, "Amount") == "150"
        assert ledger.get_settlement_status("1020SB") == SettlementStatus.SETTLED

    def test_update_invalid_id(self, ledger):
        with pytest.raises(RowNotFound):
            ledger.update_supplier_invoice("abc", {"paid": True})
        with pytest.raises(RowNotFound):
            ledger.update_supplier_invoice("99", {"paid": True})

    def test_mark_paid(self, api, ledger):
        ledger.mark_supplier_invoice_paid("sup-200", paid_date="2024-04-10", payment_reference="PAY-9")

        assert api.cell("Supplier_Invoices", 4, "Paid?") == "YES"
        assert api.cell("Supplier_Invoices", 4, "Payment Reference") == "PAY-9"

    def test_mark_paid_unknown(self, ledger):
        with pytest.raises(RowNotFound):
            ledger.mark_supplier_invoice_paid("SUP-404")

    def test_create_with_allocation(self, ledger):
        batch = SupplierInvoiceBatch(sales_invoice_no="1014WS", invoices=[{
            "supplier_invoice_no": "SUP-300",
            "supplier": "Acme Foods",
            "amount": 450,
            "allocated_amount": 450,
            "invoice_date": "2024-03-11",
        }])

        result = ledger.create_supplier_invoices(batch)

        assert result == {"invoice_rows": [5], "allocation_rows": [5]}
        assert [i.invoice_no for i in ledger.list_supplier_invoices("1014WS")] == ["SUP-300"]
        assert ledger.get_recon_summary("1014WS").calculated_total == 450

    def test_allocation_failure_reports_invoice_rows(self, api, ledger):
        """When the allocations cannot be written the error says where the invoices went."""
        api.sheets["Order_Supplier_Allocations"][0][2] = "Split"
        batch = SupplierInvoiceBatch(sales_invoice_no="1014WS", invoices=[{
            "supplier_invoice_no": "SUP-300",
            "supplier": "Acme Foods",
            "amount": 450,
            "allocated_amount": 450,
        }])

        with pytest.raises(WriteFailure) as exc_info:
            ledger.create_supplier_invoices(batch)

        assert exc_info.value.details["invoice_rows"] == [5]
        assert api.cell("Supplier_Invoices", 5, "Supplier Invoice No") == "SUP-300"

    def test_create_without_sales_invoice(self, api, ledger):
        batch = SupplierInvoiceBatch(invoices=[{"supplier_invoice_no": "SUP-301", "supplier": "Saucy Ltd", "amount": 80}])

        result = ledger.create_supplier_invoices(batch)

        assert result["allocation_rows"] == []
        assert batch.invoices[0].allocated_amount == 80
        assert api.cell("Supplier_Invoices", 5, "Supplier Invoice No") == "SUP-301"

    def test_batch_needs_allocations_for_sales_invoice(self):
        with pytest.raises(ValidationError):
            SupplierInvoiceBatch(sales_invoice_no="1014WS", invoices=[
                {"supplier_invoice_no": "SUP-300", "supplier": "Acme Foods", "amount": 450},
            ])

    def test_create_allocation(self, api, ledger):
        row = ledger.create_allocation(NewAllocation(
            sales_invoice_no="1014WS", supplier_invoice_no="SUP-100", allocated_amount=25,
        ))

        assert row == 5
        assert api.cell("Order_Supplier_Allocations", 5, "Allocated Amount") == "25"
