"""
Tests for locale-tolerant numeric parsing.
"""

import pytest

from scoutcore.utils.numbers import parse_numeric, round_rate


@pytest.mark.unit
class TestParseNumeric:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (17.26, 17.26),
            (17, 17.0),
            ("17.32", 17.32),
            ("17,32", 17.32),
            ("$68,245.32", 68245.32),
            ("1.234,56 MXN", 1234.56),
            ("1,234,567", 1234567.0),
            ("24°C", 24.0),
            ("-3.5 °C", -3.5),
            ("USD/MXN 17.26 (+0.4%)", 17.26),
            ("1 USD = 17.26 MXN", 17.26),
            ("1 EUR = 1,0842 USD", 1.0842),
        ],
    )
    def test_parses(self, value, expected):
        assert parse_numeric(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "N/A", "abc", "rate =", True, float("nan"), float("inf"), {"rate": 1}])
    def test_unparseable_is_none_not_zero(self, value):
        assert parse_numeric(value) is None

    def test_round_rate(self):
        assert round_rate(17.263449) == 17.2634
        assert round_rate(17.26, 1) == 17.3
