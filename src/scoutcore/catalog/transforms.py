"""
Pure value transforms applied to extracted fields.

Targets refer to these either directly or, when loaded from YAML, by name
through ``TRANSFORMS``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from scoutcore.utils.numbers import parse_numeric


def to_float(value: Any) -> Optional[float]:
    return parse_numeric(first_item(value))


def strip_text(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.split())
    if isinstance(value, list):
        return [strip_text(v) for v in value]
    return value


def first_item(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def percent_text(value: Any) -> Optional[str]:
    """Format a numeric change as a signed percentage, e.g. ``+1.20%``."""
    number = to_float(value)
    if number is None:
        return None
    return f"{number:+.2f}%"


def celsius(value: Any) -> Optional[float]:
    """Convert a Fahrenheit reading to Celsius."""
    number = to_float(value)
    if number is None:
        return None
    return round((number - 32) * 5 / 9, 1)


def top_five(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [v for v in value if v][:5]
    return value


TRANSFORMS: Dict[str, Callable[[Any], Any]] = {
    "to_float": to_float,
    "strip_text": strip_text,
    "first_item": first_item,
    "percent_text": percent_text,
    "celsius": celsius,
    "top_five": top_five,
}
