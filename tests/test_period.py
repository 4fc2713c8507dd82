"""Tests for payroll period parsing."""

import pytest

from huminex_payroll.services.period import InvalidPeriodError, PayrollPeriod


class TestParse:
    """Test yyyy-MM parsing."""

    @pytest.mark.parametrize(
        "value,year,month",
        [("2026-02", 2026, 2), ("2000-01", 2000, 1), ("2200-12", 2200, 12)],
    )
    def test_valid_periods(self, value, year, month):
        period = PayrollPeriod.parse(value)
        assert (period.year, period.month) == (year, month)
        assert str(period) == value

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "2026-2",
            "2026-13",
            "2026-00",
            "1999-12",
            "2201-01",
            "2026/02",
            " 2026-02",
            "2026-02-01",
            "abcd-ef",
            "２０２６-02",
        ],
    )
    def test_invalid_periods_raise(self, value):
        with pytest.raises(InvalidPeriodError) as exc_info:
            PayrollPeriod.parse(value)

        assert exc_info.value.code == "invalid_period"
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Period must be yyyy-MM"

    def test_non_string_raises(self):
        with pytest.raises(InvalidPeriodError):
            PayrollPeriod.parse(202602)  # type: ignore[arg-type]


class TestTryParse:
    """try_parse never raises."""

    def test_returns_period(self):
        assert PayrollPeriod.try_parse("2026-03") == PayrollPeriod(2026, 3)

    @pytest.mark.parametrize("value", [None, "", "not-a-period", "2026-99"])
    def test_returns_none(self, value):
        assert PayrollPeriod.try_parse(value) is None


def test_constructor_validates_range():
    with pytest.raises(InvalidPeriodError):
        PayrollPeriod(2026, 0)
    with pytest.raises(InvalidPeriodError):
        PayrollPeriod(1850, 5)


def test_periods_order_chronologically():
    periods = [PayrollPeriod(2026, 1), PayrollPeriod(2025, 12), PayrollPeriod(2026, 11)]
    assert [str(p) for p in sorted(periods)] == ["2025-12", "2026-01", "2026-11"]
