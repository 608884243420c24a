"""
Tests for the logging helpers and the write audit trail.
"""

import csv
import logging

from franchise_ledger import logging_utils
from franchise_ledger.logging_utils import log_audit_event, timed


class TestAuditTrail:
    def test_header_written_once(self, audit_dir):
        log_audit_event("ROW_UPDATED", "Orders_Header", "3", {"partner_paid": True})
        log_audit_event("ROWS_DELETED", "Order_Lines", "5,4", {"rows": [5, 4]}, user="ops")

        with open(audit_dir / "audit_trail.csv", newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))

        assert rows[0] == logging_utils.AUDIT_FIELDS
        assert len(rows) == 3
        assert rows[1][1:5] == ["ROW_UPDATED", "Orders_Header", "3", "system"]
        assert rows[2][4] == "ops"


class TestTimed:
    def test_returns_result_and_logs(self, caplog):
        @timed
        def read_something(x):
            return x * 2

        with caplog.at_level(logging.DEBUG):
            assert read_something(21) == 42

        assert "read_something completed in" in caplog.text
        assert read_something.__name__ == "read_something"
