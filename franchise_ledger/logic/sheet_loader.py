"""
Franchise Ledger - Sheet Transport

Reads and writes spreadsheet tabs through an injected Sheets API client
(see services/sheets_client.py for the Google implementation and
tests/conftest.py for the in-memory one).

A tab is read by trying several range spellings in turn:

    1. 'Name!A:Z'   full-width range
    2. 'Name'       bare sheet name
    3. "'Name'"     quoted sheet name (names with spaces or punctuation)

A "range could not be parsed" failure moves on to the next spelling.
Anything else (auth, quota, network) stops immediately. When every
spelling fails to parse, the tab is treated as absent: a warning is logged
and an empty, unavailable SheetData is returned so aggregate views can
still answer with partial data.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from googleapiclient.errors import HttpError

from ..logging_utils import timed
from .column_detector import normalize_column_name, rows_to_records
from .exceptions import SheetUnavailable, TransportError
from .sheet_schemas import SheetSchema

logger = logging.getLogger(__name__)

# Widest column the full-width strategy asks for
LAST_COLUMN = "Z"


@dataclass
class SheetData:
    """Raw contents of one tab. rows exclude the header row."""
    sheet_name: str
    headers: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    range_used: str = ""
    available: bool = True

    @property
    def row_count(self) -> int:
        """Rows in use including the header row (0 for an empty tab)."""
        if not self.headers and not self.rows:
            return 0
        return len(self.rows) + 1

    def to_records(self, schema: SheetSchema) -> List[Dict[str, Any]]:
        if not self.headers:
            return []
        return rows_to_records(self.headers, self.rows, schema)

    def __repr__(self) -> str:
        state = "" if self.available else " [UNAVAILABLE]"
        return f"SheetData({self.sheet_name}, {len(self.rows)} rows via {self.range_used!r}){state}"


def range_strategies(sheet_name: str) -> List[str]:
    return [f"{sheet_name}!A:{LAST_COLUMN}", sheet_name, f"'{sheet_name}'"]


def is_range_parse_error(exc: Exception) -> bool:
    """
    True when the API rejected the range itself rather than the request.

    The Sheets API answers 400 "Unable to parse range: ..." for unknown tab
    names and for names that need quoting.
    """
    message = str(exc).lower()
    if "unable to parse range" in message:
        return True
    if isinstance(exc, HttpError):
        status = getattr(exc.resp, "status", None)
        return str(status) == "400" and "parse" in message and "range" in message
    return False


class SheetTransport:
    """
    Thin, logged wrapper over a Sheets API client.

    Args:
        api: Object with values_get, values_batch_update, batch_update
             and get_spreadsheet (see GoogleSheetsApi)
        sheet_names: Optional {declared name: actual tab name} overrides
    """

    def __init__(self, api: Any, sheet_names: Optional[Dict[str, str]] = None):
        self.api = api
        self.sheet_names = dict(sheet_names or {})

    def resolve_name(self, sheet_name: str) -> str:
        return self.sheet_names.get(sheet_name, sheet_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @timed
    def read_sheet(self, sheet_name: str) -> SheetData:
        """
        Read a whole tab.

        Returns:
            SheetData; available=False when the tab could not be addressed

        Raises:
            TransportError: for any failure that is not a range-parse failure
        """
        actual = self.resolve_name(sheet_name)
        attempts: List[str] = []

        for range_name in range_strategies(actual):
            try:
                response = self.api.values_get(range_name)
            except Exception as e:
                if is_range_parse_error(e):
                    attempts.append(range_name)
                    logger.debug(f"Range {range_name!r} not parseable, trying next strategy")
                    continue
                raise TransportError(
                    f"Failed to read sheet '{actual}': {e}",
                    {"sheet": actual, "range": range_name},
                ) from e

            values = response.get("values") or []
            headers = [str(h) if h is not None else "" for h in values[0]] if values else []
            rows = [list(row) for row in values[1:]]
            logger.debug(f"Read {len(rows)} rows from {actual!r} using {range_name!r}")
            return SheetData(actual, headers, rows, range_used=range_name)

        unavailable = SheetUnavailable(actual, attempts)
        logger.warning(f"{unavailable.message}; returning empty result (tried {attempts})")
        return SheetData(actual, available=False)

    def read_records(self, schema: SheetSchema) -> List[Dict[str, Any]]:
        """Read a tab and resolve it to canonical records ('_row' = sheet row number)."""
        return self.read_sheet(schema.name).to_records(schema)

    def read_column(self, sheet_name: str, header: str) -> List[Any]:
        """
        Values of one column, header row excluded.

        The header is compared ignoring case, spaces and punctuation. An
        unknown header or an unavailable tab gives an empty list.
        """
        data = self.read_sheet(sheet_name)
        wanted = normalize_column_name(header)
        index = next((i for i, h in enumerate(data.headers) if normalize_column_name(h) == wanted), None)
        if index is None:
            if data.available:
                logger.warning(f"No column {header!r} in {data.sheet_name}")
            return []
        return [row[index] if index < len(row) else "" for row in data.rows]

    def get_sheet_id(self, sheet_name: str) -> Optional[int]:
        """
        Numeric sheetId of a tab, needed for structural requests.

        The first tab of a spreadsheet usually has sheetId 0, which is a
        valid id; None means the tab does not exist.
        """
        actual = self.resolve_name(sheet_name)
        try:
            spreadsheet = self.api.get_spreadsheet()
        except Exception as e:
            raise TransportError(f"Failed to read spreadsheet metadata: {e}") from e

        for sheet in spreadsheet.get("sheets", []):
            properties = sheet.get("properties", {})
            if properties.get("title") == actual:
                sheet_id = properties.get("sheetId")
                return int(sheet_id) if sheet_id is not None else None
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_values(self, data: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """
        values.batchUpdate with USER_ENTERED, so the sheet parses dates,
        numbers and booleans the same way as typed input.
        """
        if not data:
            return {}
        try:
            return self.api.values_batch_update(list(data), value_input_option="USER_ENTERED") or {}
        except Exception as e:
            raise TransportError(
                f"Failed to write {len(data)} range(s): {e}",
                {"ranges": [item.get("range") for item in data]},
            ) from e

    def batch_update(self, requests: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """spreadsheets.batchUpdate for structural changes (insert/delete rows)."""
        if not requests:
            return {}
        try:
            return self.api.batch_update(list(requests)) or {}
        except Exception as e:
            raise TransportError(f"Structural update failed: {e}") from e
