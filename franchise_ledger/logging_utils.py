"""
Franchise Ledger - Logging Framework

Provides centralized logging with:
- Console output for development
- File logging with rotation for production
- Separate audit trail for every write to the spreadsheet
- Performance timing utilities
"""

import csv
import logging
import sys
import time
from datetime import datetime
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable

# Default log directory (created on first write)
LOG_DIR = Path("logs")

CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s'

AUDIT_FIELDS = ["Timestamp", "Event Type", "Sheet", "Row Key", "User", "Details"]


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_dir: str = "logs",
    max_bytes: int = 5_000_000,  # 5MB
    backup_count: int = 3
) -> None:
    """
    Configure global logging settings.

    Args:
        level: Minimum log level
        log_to_file: Whether to write logs to file
        log_dir: Directory for log files
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
    """
    global LOG_DIR
    LOG_DIR = Path(log_dir)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    root_logger.addHandler(console_handler)

    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_DIR / "franchise_ledger.log",
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        root_logger.addHandler(file_handler)

    # googleapiclient logs every discovery/cache detail at INFO
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if nothing upstream is configured
    if not logger.handlers and not logging.getLogger().handlers:
        logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(handler)

    return logger


# ==============================================================================
# AUDIT TRAIL LOGGING (spreadsheet writes)
# ==============================================================================

def log_audit_event(
    event_type: str,
    sheet: str,
    row_key: str,
    details: dict,
    user: str = "system"
) -> None:
    """
    Append one write to the audit trail CSV.

    The spreadsheet has no history of its own that the ledger can rely on,
    so every insert, update and delete it performs is recorded here.

    Args:
        event_type: e.g. "ROWS_APPENDED", "ROW_UPDATED", "ROWS_DELETED"
        sheet: Sheet (tab) name
        row_key: Row number(s) or business key affected
        details: Dictionary of event details
        user: Who performed the action
    """
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    audit_file = LOG_DIR / "audit_trail.csv"

    if not audit_file.exists():
        with open(audit_file, "w", newline="", encoding="utf-8") as f:
            csv.writer(f).writerow(AUDIT_FIELDS)

    with open(audit_file, "a", newline="", encoding="utf-8") as f:
        csv.writer(f).writerow([
            datetime.now().isoformat(),
            event_type,
            sheet,
            row_key,
            user,
            str(details)
        ])


# ==============================================================================
# PERFORMANCE TIMING
# ==============================================================================

def timed(func: Callable) -> Callable:
    """
    Decorator to log function execution time at DEBUG.

    Usage:
        @timed
        def read_sheet(...):
            ...
    """
    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        logger = logging.getLogger(func.__module__)
        start = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start
        logger.debug(f"{func.__name__} completed in {elapsed:.2f}s")
        return result
    return wrapper
