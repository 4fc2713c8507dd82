"""Payroll period (yyyy-MM) parsing and formatting."""

from __future__ import annotations

import re
from dataclasses import dataclass

from huminex_payroll.errors import HuminexError

_PERIOD_RE = re.compile(r"(\d{4})-(\d{2})", re.ASCII)

MIN_YEAR = 2000
MAX_YEAR = 2200


class InvalidPeriodError(HuminexError):
    """Raised when a period string is not a valid yyyy-MM value."""

    code = "invalid_period"

    def __init__(self, value: object):
        self.value = value
        super().__init__("Period must be yyyy-MM", {"period": str(value)})


@dataclass(frozen=True, order=True)
class PayrollPeriod:
    """A calendar month a payroll run or payslip belongs to."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not MIN_YEAR <= self.year <= MAX_YEAR:
            raise InvalidPeriodError(f"{self.year}-{self.month}")
        if not 1 <= self.month <= 12:
            raise InvalidPeriodError(f"{self.year}-{self.month}")

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def parse(cls, value: str) -> PayrollPeriod:
        """Parse a yyyy-MM string, raising InvalidPeriodError if malformed."""
        if not isinstance(value, str):
            raise InvalidPeriodError(value)
        match = _PERIOD_RE.fullmatch(value)
        if match is None:
            raise InvalidPeriodError(value)
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def try_parse(cls, value: str | None) -> PayrollPeriod | None:
        """Parse a yyyy-MM string, returning None if malformed."""
        if value is None:
            return None
        try:
            return cls.parse(value)
        except InvalidPeriodError:
            return None
