"""
Franchise Ledger - Error Types

All errors raised by the ledger derive from LedgerError so callers
(and the HTTP layer) can catch the family in one place.

Author: Franchise Ledger Team
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for every ledger failure."""

    error_code = "LEDGER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(LedgerError):
    """Missing credentials, missing spreadsheet id, or an invalid sheet schema."""

    error_code = "CONFIGURATION_ERROR"


class SheetUnavailable(LedgerError):
    """
    Every addressing strategy failed to parse the sheet range.

    Usually means the tab was renamed or deleted. Reads recover from this
    by returning an empty result; the instance is kept for the log record.
    """

    error_code = "SHEET_UNAVAILABLE"

    def __init__(self, sheet_name: str, attempts: Optional[list] = None):
        super().__init__(
            f"Sheet '{sheet_name}' could not be read with any range strategy",
            {"sheet": sheet_name, "attempts": attempts or []},
        )
        self.sheet_name = sheet_name


class TransportError(LedgerError):
    """Sheets API failure that is not a range-parse problem (auth, quota, network)."""

    error_code = "TRANSPORT_ERROR"


class PartialEnrichmentFailure(LedgerError):
    """A secondary lookup failed; the primary data is still usable."""

    error_code = "PARTIAL_ENRICHMENT_FAILURE"


class WriteFailure(LedgerError):
    """A write could not be carried out."""

    error_code = "WRITE_FAILURE"


class RowNotFound(WriteFailure):
    error_code = "ROW_NOT_FOUND"


class ColumnNotFound(WriteFailure):
    error_code = "COLUMN_NOT_FOUND"


class AmbiguousRow(WriteFailure):
    """More than one row matches the key and no disambiguator was given."""

    error_code = "AMBIGUOUS_ROW"


class SettlementUnverifiable(LedgerError):
    """Supplier invoice links could not be verified, so settlement cannot be decided."""

    error_code = "SETTLEMENT_UNVERIFIABLE"
