"""Pipeline exceptions.

Write-side errors come from the record sink and are re-exported here so
callers can import the whole taxonomy from one place.
"""

from recordsink.errors import (
    ConstraintWriteError,
    DestinationUnavailableError,
    TransientWriteError,
    WriteError,
)

__all__ = [
    "ConfigurationError",
    "ConstraintWriteError",
    "DestinationUnavailableError",
    "ParseError",
    "TransientWriteError",
    "WriteError",
]


class ConfigurationError(ValueError):
    """The run cannot start: bad mapping, option value, or placeholder budget."""


class ParseError(ValueError):
    """A data line could not be turned into a row; the line is rejected."""

    def __init__(self, message: str, ordinal: int, line: str = ""):
        super().__init__(message)
        self.ordinal = ordinal
        self.line = line

    def __str__(self) -> str:
        return f"line {self.ordinal}: {self.args[0]}"
