"""
Locale-tolerant numeric parsing for scraped values.

Scraped values arrive as numbers or as strings such as ``"17,32"``,
``"$68,245.32"``, ``"1.234,56 MXN"``, ``"1 USD = 17.26 MXN"`` or ``"24°C"``.
``parse_numeric`` returns a float or ``None``; a value that cannot be parsed
is never coerced to zero.
"""

import math
import re
from typing import Any, Optional

# First number-like token: optional sign, digits, then digits and separators
NUMBER_TOKEN_PATTERN = re.compile(r"-?\d[\d.,]*")


def _normalize_separators(token: str) -> str:
    token = token.rstrip(".,")
    has_comma = "," in token
    has_dot = "." in token

    if has_comma and has_dot:
        # Whichever separator comes last is the decimal one
        if token.rfind(",") > token.rfind("."):
            return token.replace(".", "").replace(",", ".")
        return token.replace(",", "")

    if has_comma:
        if token.count(",") > 1:
            return token.replace(",", "")
        return token.replace(",", ".")

    if has_dot and token.count(".") > 1:
        return token.replace(".", "")

    return token


def parse_numeric(value: Any) -> Optional[float]:
    """
    Parse a scraped value into a float.

    Args:
        value: int, float or string carrying a number

    Returns:
        The parsed float, or None if nothing numeric could be read
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    if not isinstance(value, str):
        return None

    text = value.replace(" ", "").replace(" ", "")
    # "1 USD = 17.26 MXN": the quoted value follows the equals sign
    _, equals, quoted = text.rpartition("=")
    match = NUMBER_TOKEN_PATTERN.search(quoted) if equals else None
    if match is None:
        match = NUMBER_TOKEN_PATTERN.search(text)
    if not match:
        return None

    try:
        number = float(_normalize_separators(match.group(0)))
    except ValueError:
        return None

    return number if math.isfinite(number) else None


def round_rate(value: float, places: int = 4) -> float:
    """Round a rate to a fixed number of decimal places."""
    return round(value, places)
