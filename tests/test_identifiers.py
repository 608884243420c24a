"""
Unit tests for identifier normalization.
"""

from franchise_ledger.logic.identifiers import (
    create_brand_slug,
    format_order_id,
    normalize_brand,
    normalize_franchise_code,
    normalize_id,
    numeric_core,
    strip_hashes,
)


class TestNormalizeId:
    """Order ids and invoice numbers compare without '#', case or padding."""

    def test_hash_and_plain_forms_are_equal(self):
        """'#1005' and '1005' are the same order."""
        assert normalize_id("#1005") == normalize_id("1005") == "1005"

    def test_removes_every_hash_and_trims(self):
        """Repeated hashes and surrounding spaces are removed."""
        assert normalize_id(" ##1014WS ") == "1014ws"

    def test_none_is_empty(self):
        """Missing cells normalize to ''."""
        assert normalize_id(None) == ""

    def test_integral_float_has_no_decimal(self):
        """A number read as 1005.0 still matches '1005'."""
        assert normalize_id(1005.0) == "1005"

    def test_booleans_are_empty(self):
        """Empty cells coerced to False do not become 'false'."""
        assert normalize_id(False) == ""


class TestNumericCore:
    """Digits of an id, used as a last-resort join key."""

    def test_strips_letters(self):
        assert numeric_core("#1014WS") == "1014"

    def test_prefixed_id(self):
        assert numeric_core("ORD-1005") == "1005"

    def test_no_digits_is_empty(self):
        """An id without digits has no core."""
        assert numeric_core("#ABC") == ""


class TestFranchiseCodes:
    def test_whitespace_removed_and_upper_cased(self):
        """'bol 01' and 'BOL01' are the same franchise."""
        assert normalize_franchise_code(" bol 01 ") == "BOL01"

    def test_none_is_empty(self):
        assert normalize_franchise_code(None) == ""


class TestDisplayForms:
    def test_format_order_id_adds_single_hash(self):
        """Display ids carry exactly one leading '#'."""
        assert format_order_id("1005") == "#1005"
        assert format_order_id("##1005") == "#1005"

    def test_format_order_id_empty(self):
        assert format_order_id("") == ""

    def test_strip_hashes_keeps_case(self):
        assert strip_hashes("#1014WS") == "1014WS"

    def test_brand_slug(self):
        """Brand names become URL slugs."""
        assert create_brand_slug("Wing Shack Co.") == "wing-shack-co"
        assert create_brand_slug("Eggs N Stuff") == "eggs-n-stuff"

    def test_normalize_brand(self):
        assert normalize_brand("  Wing Shack Co ") == "wing shack co"
