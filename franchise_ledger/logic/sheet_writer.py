"""
Franchise Ledger - Formula-Preserving Writer

Most columns of the ledger tabs hold formulas (brand, names, prices, COGS,
margins, settlement figures) that the spreadsheet fills in from a handful
of typed columns. A plain "append row" would either overwrite those
formulas with blanks or land the row below the formula range.

New rows are therefore added in two steps:

    1. insertDimension: open blank rows right after the last used row,
       inheriting formatting and formulas from the row above
    2. values.batchUpdate: write only the raw-input columns of the new rows

Row updates and deletes also live here so every write goes through one
audited path.

Concurrency: nothing locks a row between locating it and writing to it.
A row inserted or deleted by someone else in between shifts the row
numbers, and the write lands on the wrong row. Callers should locate and
write in the same request and keep that window short.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..logging_utils import log_audit_event
from .column_detector import resolve_headers
from .exceptions import ColumnNotFound, RowNotFound, TransportError, WriteFailure
from .sheet_loader import SheetData, SheetTransport
from .sheet_schemas import SheetSchema

logger = logging.getLogger(__name__)


def column_letter(index: int) -> str:
    """0-based column index to A1 letters (0 -> A, 25 -> Z, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def cell_value(value: Any) -> Any:
    """Render a Python value for a USER_ENTERED write."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "YES" if value else "NO"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _is_provided(value: Any) -> bool:
    return value is not None and value != ""


class FormulaPreservingWriter:
    """
    Writes to ledger tabs without disturbing their formula columns.

    Args:
        transport: SheetTransport used for reads and writes
        user: Name recorded in the audit trail
    """

    def __init__(self, transport: SheetTransport, user: str = "system"):
        self.transport = transport
        self.user = user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _read_for_write(self, schema: SheetSchema) -> SheetData:
        try:
            data = self.transport.read_sheet(schema.name)
        except TransportError as e:
            raise WriteFailure(f"Could not read {schema.name} before writing: {e.message}") from e
        if not data.available or not data.headers:
            raise WriteFailure(
                f"Sheet '{data.sheet_name}' is missing or has no header row",
                {"sheet": data.sheet_name},
            )
        return data

    def _column_indexes(self, data: SheetData, schema: SheetSchema) -> Dict[str, int]:
        # later duplicates win, consistent with reads
        return {m.key: m.index for m in resolve_headers(data.headers, schema) if m.is_mapped}

    def _range(self, data: SheetData, column: int, first_row: int, last_row: Optional[int] = None) -> str:
        letter = column_letter(column)
        end = f":{letter}{last_row}" if last_row and last_row != first_row else ""
        return f"'{data.sheet_name}'!{letter}{first_row}{end}"

    def _sheet_id(self, data: SheetData) -> int:
        try:
            sheet_id = self.transport.get_sheet_id(data.sheet_name)
        except TransportError as e:
            raise WriteFailure(f"Could not resolve sheet id for {data.sheet_name}: {e.message}") from e
        if sheet_id is None:
            raise WriteFailure(f"Sheet '{data.sheet_name}' not found in spreadsheet", {"sheet": data.sheet_name})
        return sheet_id

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append_rows(self, schema: SheetSchema, rows: Sequence[Dict[str, Any]]) -> List[int]:
        """
        Append rows, writing raw-input columns only.

        Every provided value is checked against the header row before any
        row is inserted, so a bad call leaves the sheet untouched.

        Args:
            schema: Target sheet declaration
            rows: Dicts keyed by canonical field

        Returns:
            1-based sheet row numbers of the new rows

        Raises:
            WriteFailure: a value targets a formula column or a column the
                sheet does not have, the sheet is missing, or the API call fails
        """
        if not rows:
            return []

        data = self._read_for_write(schema)
        columns = self._column_indexes(data, schema)

        used_keys: List[str] = []
        for row in rows:
            for key, value in row.items():
                if not _is_provided(value):
                    continue
                if key not in schema.raw_input_columns:
                    raise WriteFailure(
                        f"'{key}' is not a raw-input column of {schema.name}",
                        {"sheet": schema.name, "field": key},
                    )
                if key not in columns:
                    raise ColumnNotFound(
                        f"No column for '{key}' in {data.sheet_name}",
                        {"sheet": data.sheet_name, "field": key, "headers": data.headers},
                    )
                if key not in used_keys:
                    used_keys.append(key)

        sheet_id = self._sheet_id(data)
        start_index = data.row_count
        count = len(rows)
        first_row = start_index + 1
        last_row = start_index + count

        try:
            self.transport.batch_update([{
                "insertDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": start_index,
                        "endIndex": start_index + count,
                    },
                    "inheritFromBefore": start_index > 0,
                }
            }])
            self.transport.update_values([
                {
                    "range": self._range(data, columns[key], first_row, last_row),
                    "values": [[cell_value(row.get(key))] for row in rows],
                }
                for key in used_keys
            ])
        except TransportError as e:
            raise WriteFailure(f"Append to {data.sheet_name} failed: {e.message}", e.details) from e

        row_numbers = list(range(first_row, last_row + 1))
        logger.info(f"Appended {count} row(s) to {data.sheet_name} at rows {first_row}-{last_row}")
        log_audit_event(
            "ROWS_APPENDED", data.sheet_name, f"{first_row}-{last_row}",
            {"columns": used_keys, "rows": [dict(r) for r in rows]}, user=self.user,
        )
        return row_numbers

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_row(
        self,
        schema: SheetSchema,
        row_number: int,
        fields: Dict[str, Any],
        allowed: Iterable[str],
    ) -> Dict[str, Any]:
        """
        Write selected fields of one existing row.

        Fields outside the allow-list are logged and skipped, never written.

        Args:
            schema: Target sheet declaration
            row_number: 1-based sheet row (2 is the first data row)
            fields: {canonical field: value}
            allowed: Fields this operation may write

        Returns:
            The fields actually written

        Raises:
            RowNotFound: row_number is outside the data rows
            ColumnNotFound: an allowed field has no column in the sheet
            WriteFailure: the API call fails
        """
        allowed = set(allowed)
        accepted = {k: v for k, v in fields.items() if k in allowed}
        rejected = sorted(set(fields) - allowed)
        if rejected:
            logger.warning(f"Skipping fields not writable on {schema.name}: {rejected}")
        if not accepted:
            return {}

        data = self._read_for_write(schema)
        if row_number < 2 or row_number > data.row_count:
            raise RowNotFound(
                f"Row {row_number} does not exist in {data.sheet_name}",
                {"sheet": data.sheet_name, "row": row_number},
            )

        columns = self._column_indexes(data, schema)
        missing = [k for k in accepted if k not in columns]
        if missing:
            raise ColumnNotFound(
                f"No column for {missing} in {data.sheet_name}",
                {"sheet": data.sheet_name, "fields": missing},
            )

        try:
            self.transport.update_values([
                {"range": self._range(data, columns[key], row_number), "values": [[cell_value(value)]]}
                for key, value in accepted.items()
            ])
        except TransportError as e:
            raise WriteFailure(f"Update of {data.sheet_name} row {row_number} failed: {e.message}") from e

        logger.info(f"Updated {data.sheet_name} row {row_number}: {sorted(accepted)}")
        log_audit_event("ROW_UPDATED", data.sheet_name, str(row_number), accepted, user=self.user)
        return accepted

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_rows(self, schema: SheetSchema, row_numbers: Iterable[int]) -> List[int]:
        """
        Delete whole rows, bottom-up so earlier deletions don't shift later ones.

        Returns:
            The deleted row numbers, highest first
        """
        ordered = sorted({int(r) for r in row_numbers}, reverse=True)
        if not ordered:
            return []
        if ordered[-1] < 2:
            raise WriteFailure("Refusing to delete the header row", {"sheet": schema.name})

        sheet_name = self.transport.resolve_name(schema.name)
        try:
            sheet_id = self.transport.get_sheet_id(sheet_name)
        except TransportError as e:
            raise WriteFailure(f"Could not resolve sheet id for {sheet_name}: {e.message}") from e
        if sheet_id is None:
            raise WriteFailure(f"Sheet '{sheet_name}' not found in spreadsheet", {"sheet": sheet_name})

        requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row - 1,
                        "endIndex": row,
                    }
                }
            }
            for row in ordered
        ]
        try:
            self.transport.batch_update(requests)
        except TransportError as e:
            raise WriteFailure(f"Delete from {sheet_name} failed: {e.message}") from e

        logger.info(f"Deleted {len(ordered)} row(s) from {sheet_name}: {ordered}")
        log_audit_event("ROWS_DELETED", sheet_name, ",".join(map(str, ordered)), {"rows": ordered}, user=self.user)
        return ordered
