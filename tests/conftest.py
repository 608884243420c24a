"""
Shared fixtures: an in-memory Sheets API and a small franchise spreadsheet.

FakeSheetsApi answers the four calls SheetTransport makes the way the real
API does: values come back as strings with trailing empty cells and rows
trimmed, unknown tab names fail with 400 "Unable to parse range", and
structural requests insert or delete whole rows.
"""

import copy
import json
import re
from typing import Any, Dict, List

import httplib2
import pytest
from googleapiclient.errors import HttpError

from franchise_ledger import logging_utils
from franchise_ledger.logic.config_manager import LedgerConfig
from franchise_ledger.logic.sheet_loader import SheetTransport
from franchise_ledger.logic.sheet_writer import FormulaPreservingWriter
from franchise_ledger.services.ledger import Ledger

_CELL_RE = re.compile(r"^([A-Z]+)(\d+)")


def http_error(status: int, message: str) -> HttpError:
    content = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(httplib2.Response({"status": str(status)}), content)


def _column_index(letters: str) -> int:
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def _split_range(range_name: str):
    sheet, _, cells = range_name.partition("!")
    if len(sheet) >= 2 and sheet.startswith("'") and sheet.endswith("'"):
        sheet = sheet[1:-1]
    return sheet, cells


def _trim(grid: List[List[Any]]) -> List[List[Any]]:
    rows = []
    for row in grid:
        row = list(row)
        while row and row[-1] in ("", None):
            row.pop()
        rows.append(row)
    while rows and not rows[-1]:
        rows.pop()
    return rows


class FakeSheetsApi:
    """
    In-memory spreadsheet.

    Attributes:
        sheets: {tab name: grid}, row 0 being the header row
        sheet_ids: {tab name: sheetId}; the first tab gets 0
        unparseable: ranges rejected as if the API could not parse them
        broken: tab names whose reads fail with a 500
        fail_writes: when set, every write raises this error
        requests: structural requests received, in order
        writes: value ranges received, in order
    """

    def __init__(self, sheets: Dict[str, List[List[Any]]]):
        self.sheets = copy.deepcopy(sheets)
        self.sheet_ids = {name: index for index, name in enumerate(self.sheets)}
        self.unparseable = set()
        self.broken = set()
        self.fail_writes = None
        self.requests: List[Dict[str, Any]] = []
        self.writes: List[Dict[str, Any]] = []

    def values_get(self, range_name: str) -> Dict[str, Any]:
        sheet, _ = _split_range(range_name)
        if range_name in self.unparseable or sheet not in self.sheets:
            raise http_error(400, f"Unable to parse range: {range_name}")
        if sheet in self.broken:
            raise http_error(500, "Internal error encountered.")
        return {"range": range_name, "values": _trim(self.sheets[sheet])}

    def values_batch_update(self, data: List[Dict[str, Any]], value_input_option: str = "RAW") -> Dict[str, Any]:
        if self.fail_writes is not None:
            raise self.fail_writes
        assert value_input_option == "USER_ENTERED"
        for item in data:
            self.writes.append(item)
            sheet, cells = _split_range(item["range"])
            match = _CELL_RE.match(cells)
            column = _column_index(match.group(1))
            first_row = int(match.group(2)) - 1
            grid = self.sheets[sheet]
            for offset, values in enumerate(item["values"]):
                row_index = first_row + offset
                while len(grid) <= row_index:
                    grid.append([])
                row = grid[row_index]
                for col_offset, value in enumerate(values):
                    while len(row) <= column + col_offset:
                        row.append("")
                    row[column + col_offset] = str(value)
        return {"totalUpdatedCells": sum(len(item["values"]) for item in data)}

    def batch_update(self, requests: List[Dict[str, Any]]) -> Dict[str, Any]:
        if self.fail_writes is not None:
            raise self.fail_writes
        names = {sheet_id: name for name, sheet_id in self.sheet_ids.items()}
        for request in requests:
            self.requests.append(request)
            kind, body = next(iter(request.items()))
            span = body["range"]
            grid = self.sheets[names[span["sheetId"]]]
            start, end = span["startIndex"], span["endIndex"]
            if kind == "insertDimension":
                while len(grid) < start:
                    grid.append([])
                grid[start:start] = [[] for _ in range(end - start)]
            elif kind == "deleteDimension":
                del grid[start:end]
        return {"replies": [{} for _ in requests]}

    def get_spreadsheet(self) -> Dict[str, Any]:
        return {
            "sheets": [
                {"properties": {"sheetId": sheet_id, "title": name}}
                for name, sheet_id in self.sheet_ids.items()
            ]
        }

    # helpers for assertions
    def cell(self, sheet: str, row_number: int, header: str) -> Any:
        grid = self.sheets[sheet]
        column = grid[0].index(header)
        row = grid[row_number - 1] if row_number - 1 < len(grid) else []
        return row[column] if column < len(row) else ""

    def data_rows(self, sheet: str) -> List[List[Any]]:
        return _trim(self.sheets[sheet])[1:]


# ==============================================================================
# SAMPLE SPREADSHEET
# ==============================================================================

ORDERS_HEADER = [
    ["Order ID", "Invoice No", "Brand", "Franchisee", "Franchisee Code", "Order Date", "Order Stage",
     "Order Total", "Total COGS", "Supplier Ordered?", "Supplier Shipped?", "Delivered to Partner?",
     "Partner Paid?", "Partner Paid Date", "Partner Payment Method", "Partner Payment Ref",
     "Funds Cleared?", "Next Action"],
    ["#1005", "1005WS", "Wing Shack Co", "Bolton Wings", "BOL01", "2024-03-01", "Delivered",
     "500", "300", "TRUE", "TRUE", "TRUE", "TRUE", "2024-03-05", "BANK_TRANSFER", "REF-1", "TRUE", ""],
    ["#1005", "1005ES", "Eggs N Stuff", "Leeds Eggs", "LDS01", "2024-03-02", "New",
     "200", "120", "FALSE", "FALSE", "FALSE", "FALSE", "", "", "", "FALSE", "Order from supplier"],
    ["#1014", "1014WS", "Wing Shack Co", "Bolton Wings", "BOL01", "2024-03-10", "In Transit",
     "800", "450", "TRUE", "TRUE", "FALSE", "TRUE", "2024-03-12", "SHOPIFY", "REF-2", "FALSE", ""],
    ["#1020", "1020SB", "SMSH BN", "Manchester Smash", "MAN01", "2024-04-01", "Completed",
     "300", "150", "TRUE", "TRUE", "TRUE", "TRUE", "2024-04-03", "CASH", "REF-3", "TRUE", "Pay supplier"],
]

ORDER_LINES = [
    ["Order ID", "Brand", "Order Store URL", "Order Date", "Franchisee Code", "Franchisee Name", "SKU",
     "Product Name", "Supplier", "Quantity", "Unit Price", "Line Total", "COGS per Unit", "COGS Total",
     "Invoice No"],
    ["#1005", "Wing Shack Co", "https://wingshackco.store/", "2024-03-01", "BOL01", "Bolton Wings", "WS-001",
     "Wings Box", "Acme Foods", "10", "30", "300", "18", "180", "1005WS"],
    ["#1005", "Wing Shack Co", "https://wingshackco.store/", "2024-03-01", "BOL01", "Bolton Wings", "WS-002",
     "Hot Sauce", "Saucy Ltd", "5", "40", "200", "24", "120", "1005WS"],
    ["1005", "Eggs N Stuff", "https://kebuxd-ca.myshopify.com/", "2024-03-02", "LDS01", "Leeds Eggs", "ES-001",
     "Egg Tray", "Acme Foods", "20", "10", "200", "6", "120", ""],
    ["#1014", "Wing Shack Co", "https://wingshackco.store/", "2024-03-10", "BOL01", "Bolton Wings", "WS-001",
     "Wings Box", "Acme Foods", "20", "40", "800", "22.5", "450", "1014WS"],
    ["#1020", "SMSH BN", "https://fax0ch-it.myshopify.com/", "2024-04-01", "MAN01", "Manchester Smash", "SB-001",
     "Burger Kit", "Saucy Ltd", "10", "30", "300", "15", "150", "1020SB"],
]

SUPPLIER_INVOICES = [
    ["Sales Invoice No", "Supplier Invoice No", "Supplier", "Invoice Date", "Amount", "Paid?", "Paid Date",
     "Payment Reference", "Invoice File Link"],
    ["1005WS", "SUP-100", "Acme Foods", "2024-03-02", "180", "TRUE", "2024-03-06", "PAY-1", ""],
    ["", "SUP-101", "Saucy Ltd", "2024-03-02", "120", "TRUE", "2024-03-06", "PAY-2", ""],
    ["1020SB", "SUP-200", "Saucy Ltd", "2024-04-02", "150", "FALSE", "", "", ""],
]

ALLOCATIONS = [
    ["Sales Invoice No", "Supplier Invoice No", "Allocated Amount"],
    ["1005WS", "SUP-100", "180"],
    ["1005WS", "SUP-101", "120"],
    ["1020SB", "SUP-200", "150"],
]

FRANCHISEES = [
    ["Franchisee Code", "Franchisee Name", "Active Brands", "Region"],
    ["BOL01", "Bolton Wings", "Wing Shack Co", "North West"],
    ["LDS01", "Leeds Eggs", "Eggs N Stuff", "Yorkshire"],
    ["MAN01", "Manchester Smash", "SMSH BN", "North West"],
    ["", "", "", ""],
]

BRANDS = [
    ["Brand Name", "Orders Count", "Total Revenue", "Total COGS"],
    ["Wing Shack Co", "2", "1300", "750"],
    ["Eggs N Stuff", "1", "200", "120"],
    ["SMSH BN", "1", "300", "150"],
]

SUPPLIERS = [
    ["Supplier Name", "On-Time %", "Avg Ship Time", "Total Revenue"],
    ["Acme Foods", "92%", "3 days", "999"],
    ["Saucy Ltd", "85", "5", "0"],
    ["Ghost Supplies", "", "", "42"],
    ["", "", "", ""],
]

SKUS = [
    ["SKU", "Product Name", "Unit Size", "Cost Per Unit", "Supplier", "Selling Price"],
    ["WS-001", "Wings Box", "1kg", "18", "Acme Foods", "30"],
    ["WS-002", "Hot Sauce", "500ml", "24", "Saucy Ltd", "40"],
    ["ES-001", "Egg Tray", "30", "6", "Acme Foods", "10"],
    ["SB-001", "Burger Kit", "1", "15", "Saucy Ltd", "30"],
    ["XX-999", "Discontinued", "", "1", "Ghost Supplies", "2"],
]

COMPANY_EARNINGS = [
    ["Metric", "Period", "Value", "Revenue", "COGS", "Gross Profit", "Gross Margin %"],
    ["Total Revenue", "2024-Q1", "£1,800.00", "1800", "900", "900", "50%"],
    ["Open Orders", "2024-Q1", "3", "", "", "", ""],
    ["Target", "2024", "n/a", "", "", "", ""],
    ["", "", "", "", "", "", ""],
]


def sample_sheets() -> Dict[str, List[List[Any]]]:
    # Orders_Header first so it gets sheetId 0
    return {
        "Orders_Header": ORDERS_HEADER,
        "Order_Lines": ORDER_LINES,
        "Supplier_Invoices": SUPPLIER_INVOICES,
        "Order_Supplier_Allocations": ALLOCATIONS,
        "Franchisee_Master": FRANCHISEES,
        "Brand_Summary": BRANDS,
        "Supplier_Summary": SUPPLIERS,
        "SKU_COGS": SKUS,
        "Company_Earnings": COMPANY_EARNINGS,
    }


# ==============================================================================
# FIXTURES
# ==============================================================================

@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    """Keep the audit trail CSV out of the working tree."""
    monkeypatch.setattr(logging_utils, "LOG_DIR", tmp_path / "logs")
    return tmp_path / "logs"


@pytest.fixture
def api():
    return FakeSheetsApi(sample_sheets())


@pytest.fixture
def config():
    return LedgerConfig(
        spreadsheet_id="test-spreadsheet",
        brand_store_urls={
            "smsh bn": "https://fax0ch-it.myshopify.com/",
            "eggs n stuff": "https://kebuxd-ca.myshopify.com/",
            "wing shack co": "https://wingshackco.store/",
        },
    )


@pytest.fixture
def transport(api):
    return SheetTransport(api)


@pytest.fixture
def writer(transport):
    return FormulaPreservingWriter(transport, user="tester")


@pytest.fixture
def ledger(api, config):
    return Ledger(api, config=config, user="tester")
