"""
Franchise Ledger - Date Parsing

Order dates are typed by hand or produced by sheet formulas, so they come
in several shapes. Used by the tracker date filters and location metrics.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import pandas as pd

logger = logging.getLogger(__name__)

# Google Sheets serial dates count days from 1899-12-30
SHEETS_EPOCH = pd.Timestamp("1899-12-30")
MIN_SERIAL_DATE = 30000  # ~1982; smaller numbers are not dates

_SLASH_DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


def parse_order_date(value: Any, context: str = "") -> Optional[pd.Timestamp]:
    """
    Parse an order date.

    Handles:
    - ISO format: "2024-03-14"
    - US format: "03/14/2024" (month first)
    - UK format when the first part cannot be a month: "14/03/2024"
    - Sheets serial numbers: 45365

    Args:
        value: Cell value
        context: Added to the debug log when parsing fails

    Returns:
        Timestamp (date only) or None
    """
    if value is None or value is False or value == "":
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value > MIN_SERIAL_DATE:
            return (SHEETS_EPOCH + pd.to_timedelta(int(value), unit="D")).normalize()
        return None

    text = str(value).strip()
    match = _SLASH_DATE_RE.match(text)
    if match:
        first, second, year = (int(part) for part in match.groups())
        if 1 <= first <= 12 and 1 <= second <= 31:
            month, day = first, second
        elif first > 12 and 1 <= second <= 12:
            month, day = second, first
        else:
            return None
        try:
            return pd.Timestamp(year=year, month=month, day=day)
        except ValueError:
            return None

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        logger.debug(f"Unparseable date {text!r}{' (' + context + ')' if context else ''}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_localize(None)
    return parsed.normalize()
