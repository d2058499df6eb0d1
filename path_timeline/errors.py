"""Exception types for input validation."""

from __future__ import annotations


class InvalidTimezoneError(ValueError):
    """Raised when a timezone name is not a known IANA zone."""


class InvalidDateRangeError(ValueError):
    """Raised when a date range cannot be parsed or is inverted."""


class InvalidConfigError(ValueError):
    """Raised when timeline configuration values are out of range."""
