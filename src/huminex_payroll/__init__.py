"""HUMINEX payroll run lifecycle and idempotent command API."""

__version__ = "0.1.0"
