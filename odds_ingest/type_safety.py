"""Type safety utilities for robust data handling.

This module provides type-safe conversion functions for the loosely typed
provider payload, where numbers arrive as strings ("+120", "-6.5"), as
numbers, or not at all.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import logging

logger = logging.getLogger('odds_ingest')

# Column limit for american odds in both odds tables
MAX_ABS_ODDS = 9999


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Safely convert value to integer.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Integer value or default

    Examples:
        >>> safe_int("123")
        123
        >>> safe_int("invalid", default=-1)
        -1
        >>> safe_int(123.7)
        123
    """
    if isinstance(value, bool):
        return default

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return int(value)

    if isinstance(value, str):
        if not value.strip():
            return default
        try:
            return int(float(value))  # Handle "123.0" strings
        except ValueError:
            logger.warning(f"Cannot convert to int: {value}")
            return default

    if value is not None:
        logger.warning(f"Unexpected type for int conversion: {type(value)}: {value}")
    return default


def truncate_string(value: Any, max_length: int) -> Optional[str]:
    """Convert to string and cut to the column width, None for empty values.

    Examples:
        >>> truncate_string("Moneyline", 5)
        'Money'
        >>> truncate_string("", 5) is None
        True
    """
    if value is None or value == "":
        return None
    text = str(value)
    return text[:max_length] if len(text) > max_length else text


def parse_american_odds(value: Any) -> Optional[int]:
    """Parse a provider odds figure ("+120", "-150", 110.0) into an integer.

    Values are clamped to +/-9999 so extreme longshots still fit the column.

    Args:
        value: Raw odds value from the provider

    Returns:
        Integer american odds, or None when the value is missing or not numeric

    Examples:
        >>> parse_american_odds("+120")
        120
        >>> parse_american_odds("-150")
        -150
        >>> parse_american_odds("25000")
        9999
        >>> parse_american_odds("N/A") is None
        True
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    text = str(value).strip().lstrip("+")
    try:
        parsed = float(text)
    except ValueError:
        logger.warning(f"Cannot parse odds value: {value}")
        return None

    if parsed != parsed:  # NaN
        return None

    return int(round(min(max(parsed, -MAX_ABS_ODDS), MAX_ABS_ODDS)))


def normalize_line(value: Any) -> Optional[str]:
    """Return the canonical string form of a line value.

    Two lines are the same line only when their canonical forms are equal:
    "-6.5", -6.5 and "-6.50" all become "-6.5", while "-7" stays "-7".
    Leading "+" signs and trailing zeros are dropped. Non-numeric lines
    are kept verbatim (trimmed) rather than discarded.

    Args:
        value: Raw line from the provider (string, int, float or None)

    Returns:
        Canonical line string, or None when no line is present

    Examples:
        >>> normalize_line("-6.50")
        '-6.5'
        >>> normalize_line("+3")
        '3'
        >>> normalize_line(8.0)
        '8'
        >>> normalize_line("") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    text = str(value).strip()
    if not text:
        return None

    try:
        number = Decimal(text.lstrip("+"))
    except InvalidOperation:
        return text

    if not number.is_finite():
        return text

    try:
        if number == number.to_integral_value():
            number = number.quantize(Decimal(1))
        else:
            number = number.normalize()
    except InvalidOperation:
        # Beyond decimal context precision, e.g. "1e30"
        logger.warning(f"Line value out of range, keeping as text: {value}")
        return text

    result = format(number, "f")
    return "0" if result == "-0" else result
