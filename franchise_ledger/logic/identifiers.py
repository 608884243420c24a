"""
Franchise Ledger - Identifier Normalization

Canonical forms for the identifiers people type into the spreadsheet:
order ids ("#1005", "1005 ", "##1005"), invoice numbers ("#1014WS"),
franchise codes ("ws 01") and brand names.

Every cross-sheet comparison goes through these helpers so that the
same physical order is recognised no matter how it was keyed in.

Author: Franchise Ledger Team
"""

from __future__ import annotations

import re
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def _to_text(raw: Any) -> str:
    """Render a cell value as text; integral floats lose their trailing .0"""
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw)


def normalize_id(raw: Any) -> str:
    """
    Normalize an order id or invoice number for comparison.

    Removes every '#', trims surrounding whitespace and lower-cases.

    Examples:
        "#1005"   -> "1005"
        " ##1014WS " -> "1014ws"
        None      -> ""
    """
    return _to_text(raw).replace("#", "").strip().lower()


def normalize_franchise_code(raw: Any) -> str:
    """Franchise codes compare with all whitespace removed, upper-cased."""
    return _WHITESPACE_RE.sub("", _to_text(raw)).upper()


def normalize_brand(raw: Any) -> str:
    return _to_text(raw).strip().lower()


def numeric_core(raw: Any) -> str:
    """
    Digits of the normalized id ("#1014WS" -> "1014").

    Returns an empty string when the id carries no digits at all.
    """
    return _NON_DIGIT_RE.sub("", normalize_id(raw))


def format_order_id(raw: Any) -> str:
    """Display form of an order id: exactly one leading '#'."""
    text = _to_text(raw).strip().lstrip("#").strip()
    if not text:
        return ""
    return f"#{text}"


def create_brand_slug(name: Any) -> str:
    """
    URL slug for a brand name.

    "Wing Shack Co." -> "wing-shack-co"
    """
    slug = _SLUG_STRIP_RE.sub("-", _to_text(name).strip().lower())
    return slug.strip("-")


def strip_hashes(raw: Any) -> str:
    """Remove '#' characters and trim, keeping the original case."""
    return _to_text(raw).replace("#", "").strip()
