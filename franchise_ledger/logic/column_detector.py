"""
Franchise Ledger - Column Detection Module

Header resolution and cell coercion for human-edited spreadsheet tabs.

Sheet headers drift: "Partner Paid?", "partnerPaid" and "Partner Paid"
all name the same column. Each header is resolved against the sheet's
declared variants using an ordered list of named strategies:

    1. exact_normalized  - equal after stripping non-alphanumerics, lower-cased
    2. case_insensitive  - equal after trimming and lower-casing
    3. substring         - normalized containment in either direction

Headers no strategy recognises are kept under a sanitized key, never
dropped.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process

from .sheet_schemas import SheetSchema

logger = logging.getLogger(__name__)


# ====================================================================================
# CONFIGURATION & CONSTANTS
# ====================================================================================

TRUTHY_TOKENS = frozenset({"TRUE", "true", "YES", "Yes", "yes", "Y", "y"})
FALSY_TOKENS = frozenset({"FALSE", "false", "NO", "No", "no", "N", "n", ""})

# Keys holding identifiers stay strings even when they look numeric
# ("007" must not become 7).
IDENTIFIER_TOKENS = frozenset({"id", "sku", "invoice", "no", "ref", "code", "number"})

# Minimum rapidfuzz score before a "did you mean" hint is logged
HINT_SCORE_THRESHOLD = 70

_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INTEGRAL_RE = re.compile(r"^[+-]?\d+$")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)")
_DECORATION_RE = re.compile(r"[£$€,\s%]")


@dataclass
class ColumnMapping:
    """How one header cell was resolved."""
    header: str
    index: int
    key: str
    match_type: str  # "exact_normalized", "case_insensitive", "substring", "unmapped", "empty"
    matched_variant: str = ""

    @property
    def is_mapped(self) -> bool:
        return self.match_type not in ("unmapped", "empty")

    def __repr__(self) -> str:
        return f"{self.header!r} -> {self.key} ({self.match_type})"


# ====================================================================================
# NORMALIZATION
# ====================================================================================

def normalize_column_name(name: Any) -> str:
    """Strip non-alphanumerics and lower-case ("Partner Paid?" -> "partnerpaid")."""
    if name is None:
        return ""
    return re.sub(r"[^a-z0-9]", "", str(name).strip().lower())


def sanitize_header(header: Any) -> str:
    """Fallback key for unmapped headers: non-alphanumerics become '_'."""
    return re.sub(r"[^A-Za-z0-9]", "_", str(header or "").strip())


# ====================================================================================
# MATCH STRATEGIES
# ====================================================================================

def _match_exact_normalized(header: str, variant: str) -> bool:
    return normalize_column_name(header) == normalize_column_name(variant)


def _match_case_insensitive(header: str, variant: str) -> bool:
    return header.strip().lower() == variant.strip().lower()


def _match_substring(header: str, variant: str) -> bool:
    h = normalize_column_name(header)
    v = normalize_column_name(variant)
    if not h or not v:
        return False
    return h in v or v in h


MATCH_STRATEGIES: List[Tuple[str, Callable[[str, str], bool]]] = [
    ("exact_normalized", _match_exact_normalized),
    ("case_insensitive", _match_case_insensitive),
    ("substring", _match_substring),
]


def find_mapped_key(header: Any, schema: SheetSchema) -> Optional[Tuple[str, str, str]]:
    """
    Resolve one header against a sheet schema.

    Args:
        header: Literal header cell
        schema: Sheet declaration to match against

    Returns:
        (canonical key, strategy name, matched variant) or None when no
        strategy recognises the header
    """
    text = "" if header is None else str(header)
    if not normalize_column_name(text):
        return None

    variants = schema.variants()
    for strategy_name, matcher in MATCH_STRATEGIES:
        for variant, canonical in variants:
            if matcher(text, variant):
                return canonical, strategy_name, variant
    return None


def _closest_variant(header: str, schema: SheetSchema) -> Optional[str]:
    choices = [variant for variant, _ in schema.variants()]
    best = process.extractOne(header, choices, scorer=fuzz.ratio)
    if best and best[1] >= HINT_SCORE_THRESHOLD:
        return best[0]
    return None


def resolve_headers(headers: Sequence[Any], schema: SheetSchema) -> List[ColumnMapping]:
    """
    Resolve a whole header row.

    Unmapped headers are logged once per call with the closest declared
    variant as a hint. When two headers resolve to the same key the later
    column wins for reads; a warning is logged.
    """
    mappings: List[ColumnMapping] = []
    unmapped: List[str] = []
    seen: Dict[str, str] = {}

    for index, header in enumerate(headers):
        text = "" if header is None else str(header)

        if not normalize_column_name(text):
            mappings.append(ColumnMapping(text, index, f"column_{index}", "empty"))
            continue

        match = find_mapped_key(text, schema)
        if match is None:
            key = sanitize_header(text)
            mappings.append(ColumnMapping(text, index, key, "unmapped"))
            hint = _closest_variant(text, schema)
            unmapped.append(f"{text!r} (closest: {hint!r})" if hint else repr(text))
        else:
            key, strategy, variant = match
            mappings.append(ColumnMapping(text, index, key, strategy, variant))

        key = mappings[-1].key
        if key in seen:
            logger.warning(
                f"[{schema.name}] Headers {seen[key]!r} and {text!r} both resolve to '{key}'; "
                f"using column {index + 1}"
            )
        seen[key] = text

    if unmapped:
        logger.info(f"[{schema.name}] Unmapped columns kept under sanitized keys: {', '.join(unmapped)}")

    return mappings


# ====================================================================================
# VALUE COERCION
# ====================================================================================

def is_identifier_key(key: str, header: Any = "") -> bool:
    """
    Identifier-like columns: order_id, sku, invoice_no, payment_ref, franchisee_code...

    Unmapped headers are judged on their sanitized key ("Invoice#" is kept
    as "Invoice_") and on the literal header, where a trailing "#" also
    marks an identifier column.
    """
    tokens = [t for t in re.split(r"[^a-z0-9]+", key.lower()) if t]
    if set(tokens) & IDENTIFIER_TOKENS or key.endswith(("Id", "ID")):
        return True
    return str(header or "").rstrip().endswith("#")


def coerce_value(value: Any, key: str, header: Any = "") -> Any:
    """
    Coerce one cell value.

    Order matters: boolean tokens are checked before numbers, so "0" and
    "1" stay numbers while "Y"/"n" become booleans.

    Args:
        value: Raw cell value (string from the API, or a native value)
        key: Canonical key of the column
        header: Literal header cell, for columns no variant recognised

    Returns:
        bool, int, float or trimmed str
    """
    if value is None or value is False:
        return False
    if value is True:
        return True
    if isinstance(value, (int, float)):
        return value

    text = str(value)
    if text in TRUTHY_TOKENS:
        return True
    stripped = text.strip()
    if text in FALSY_TOKENS or stripped == "":
        return False

    if not is_identifier_key(key, header) and _NUMERIC_RE.match(stripped):
        number = float(stripped)
        if math.isfinite(number):
            if _INTEGRAL_RE.match(stripped):
                return int(stripped)
            return number

    return stripped


def rows_to_records(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    schema: SheetSchema,
    first_row_number: int = 2,
) -> List[Dict[str, Any]]:
    """
    Turn raw sheet rows into dicts keyed by canonical field.

    Every record also carries '_row', the 1-based sheet row number it came
    from (header row is row 1). Missing trailing cells coerce like empty
    cells.
    """
    mappings = resolve_headers(headers, schema)
    records: List[Dict[str, Any]] = []

    for offset, row in enumerate(rows):
        record: Dict[str, Any] = {"_row": first_row_number + offset}
        for mapping in mappings:
            raw = row[mapping.index] if mapping.index < len(row) else ""
            record[mapping.key] = coerce_value(raw, mapping.key, mapping.header)
        records.append(record)

    return records


# ====================================================================================
# RECORD-LEVEL HELPERS
# ====================================================================================

def as_text(value: Any) -> str:
    """Read a coerced cell back as text; an empty cell (coerced False) is ''."""
    if value is None or value is False:
        return ""
    if value is True:
        return "TRUE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def as_number(value: Any, default: Optional[float] = 0) -> Optional[float]:
    """
    Parse a number from a coerced cell.

    Accepts currency and thousands decoration ("£1,234.50"), percentages
    ("85%"), accounting negatives ("(120.00)") and a leading number followed
    by text ("3 days").
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else default

    text = _DECORATION_RE.sub("", str(value))
    if not text:
        return default

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    match = _LEADING_NUMBER_RE.match(text)
    if not match:
        return default
    number = float(match.group(0))
    if not math.isfinite(number):
        return default
    if number.is_integer() and "." not in match.group(0):
        number = int(number)
    return -number if negative else number


def as_flag(value: Any) -> bool:
    """Boolean view of a coerced cell."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    coerced = coerce_value(value, "flag")
    if isinstance(coerced, bool):
        return coerced
    if isinstance(coerced, (int, float)):
        return coerced != 0
    return False
