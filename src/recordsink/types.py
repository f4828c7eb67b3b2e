"""Shared types for the recordsink package."""

from typing import Any, Sequence

Params = tuple | list | dict
ValuesRow = Sequence[Any]
