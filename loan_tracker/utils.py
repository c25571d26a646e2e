"""Utility functions for the loan tracker.

This module provides helpers for parsing user input into Python data types and
for handling calendar months. Months are carried around as plain
``(month, year)`` integers rather than ``datetime.date`` objects because the
schedule never needs a day component.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, getcontext
from typing import Tuple

getcontext().prec = 28  # increase decimal precision to avoid rounding errors


def add_month(month: int, year: int) -> Tuple[int, int]:
    """Return the ``(month, year)`` one calendar month after the given one.

    December rolls over to January of the following year.
    """
    if month == 12:
        return 1, year + 1
    return month + 1, year


def month_key(month: int, year: int) -> Tuple[int, int]:
    """Return a sortable ``(year, month)`` key for a calendar month."""
    return year, month


def parse_year_month(ym: str) -> Tuple[int, int]:
    """Parse a YYYY-MM string into a ``(month, year)`` pair.

    Parameters
    ----------
    ym: str
        A string in the form ``"YYYY-MM"``. Any day component is ignored.

    Returns
    -------
    tuple
        The month (1-12) and the year.

    Raises
    ------
    ValueError
        If the string is not a valid year-month.
    """
    try:
        parts = ym.strip().split("-")
        if len(parts) < 2:
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid year-month string: {ym}")
    return month, year


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def parse_amount(value: str) -> Decimal:
    """Parse a monetary amount with optional shorthand suffixes.

    Accepts plain numbers ("500000") and the suffixes ``k`` (thousand),
    ``l`` (lakh) and ``cr`` (crore), e.g. "25l" meaning 2,500,000.
    """
    text = str(value).strip().lower().replace(",", "")
    factor = Decimal(1)
    if text.endswith("cr"):
        factor = Decimal(10_000_000)
        text = text[:-2]
    elif text.endswith("k"):
        factor = Decimal(1_000)
        text = text[:-1]
    elif text.endswith("l"):
        factor = Decimal(100_000)
        text = text[:-1]
    try:
        return decimal_from_str(text) * factor
    except ValueError as exc:
        raise ValueError(f"Invalid amount: {value}") from exc


def int_from_value(value) -> int:
    """Convert a JSON or form value into an ``int`` without truncating.

    Integral numbers and numeric strings ("5", "5.0") are accepted; booleans,
    fractions and anything non-numeric raise ``ValueError``.
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a whole number; got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, (str, float, Decimal)):
        number = decimal_from_str(str(value))
        if number == number.to_integral_value():
            return int(number)
    raise ValueError(f"Expected a whole number; got {value!r}")
