"""Utility modules for ScoutCore."""

from .numbers import parse_numeric, round_rate

__all__ = ["parse_numeric", "round_rate"]
