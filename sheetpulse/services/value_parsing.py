"""
Cell value parsing shared by the classifier, configurator and analytics.

Spreadsheet cells arrive as whatever the parser produced: Python numbers,
strings, datetimes, or "" for blanks. These helpers decide what counts as a
number or a date without ever raising.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Optional

import pandas as pd
from dateutil import parser as dateutil_parser


# ============================================================================
# CONSTANTS
# ============================================================================

# Symbols stripped before reading a currency amount
CURRENCY_STRIP_PATTERN = re.compile(r"[$,₹€£]")

# Leading decimal number, as read by a lenient float parser ("12kg" -> 12)
LEADING_NUMBER_PATTERN = re.compile(
    r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)

# A string must look like Y-M-D / D/M/Y before it is treated as a date value
DATE_SHAPE_PATTERN = re.compile(r"\d{2,4}[-/]\d{1,2}[-/]\d{1,2}")


# ============================================================================
# BLANKS
# ============================================================================

def is_blank(value: Any) -> bool:
    """True for None, NaN/NaT and empty or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return False


def non_blank(values: list) -> list:
    return [v for v in values if not is_blank(v)]


# ============================================================================
# NUMBERS
# ============================================================================

def parse_number(value: Any) -> Optional[float]:
    """
    Read the leading number of a cell the way a lenient float parser does.

    Booleans and dates are never numbers. Returns None when no number leads
    the value.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (datetime, date)):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        return float(value)

    match = LEADING_NUMBER_PATTERN.match(str(value))
    if not match:
        return None
    try:
        number = float(match.group(1))
    except (ValueError, OverflowError):
        return None
    if math.isinf(number):
        return None
    return number


def parse_amount(value: Any) -> Optional[float]:
    """Like parse_number, after stripping currency symbols and thousand separators."""
    if isinstance(value, str):
        value = CURRENCY_STRIP_PATTERN.sub("", value)
    return parse_number(value)


def is_numeric(value: Any) -> bool:
    return parse_number(value) is not None


def is_amount(value: Any) -> bool:
    return parse_amount(value) is not None


def amount_or_zero(value: Any) -> float:
    """Numeric value of a cell for aggregation; unreadable cells count as 0."""
    parsed = parse_amount(value)
    return 0.0 if parsed is None else parsed


# ============================================================================
# DATES
# ============================================================================

def is_date_value(value: Any) -> bool:
    """
    True for datetime cells, or strings shaped like a calendar date that
    dateutil can actually read.
    """
    if isinstance(value, (datetime, date)):
        return not (value is pd.NaT)
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not DATE_SHAPE_PATTERN.search(text):
        return False
    try:
        dateutil_parser.parse(text)
    except (ValueError, TypeError, OverflowError):
        return False
    return True


def format_label(value: Any) -> str:
    """Render a label cell; dates read as e.g. "Jan 5, 24"."""
    if is_blank(value):
        return ""
    if isinstance(value, (datetime, date)):
        return f"{value.strftime('%b')} {value.day}, {value.strftime('%y')}"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
