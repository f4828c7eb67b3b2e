"""Fixed projection from source field positions onto destination columns."""

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from bulkingest.errors import ConfigurationError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TABLE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def check_table_name(name: str) -> str:
    """Return `name` if it is a plain or schema-qualified SQL identifier."""
    if not _TABLE.match(name):
        raise ConfigurationError(f"Invalid table name: {name!r}")
    return name


@dataclass(frozen=True)
class ColumnMapping:
    """Source field index -> destination column, plus constant-valued columns.

    `constants` values are either literals or zero-argument callables; a
    callable is a computed default and is evaluated once per row.
    Destination values are ordered as `columns`: mapped fields first, then
    constants, each in declaration order.
    """

    fields: tuple[tuple[int, str], ...]
    constants: tuple[tuple[str, Any], ...] = ()

    def __post_init__(self):
        if not self.fields:
            raise ConfigurationError("Column mapping must map at least one source field")
        indexes = [index for index, _ in self.fields]
        if any(not isinstance(i, int) or i < 0 for i in indexes):
            raise ConfigurationError(f"Source field indexes must be non-negative ints: {indexes}")
        if len(set(indexes)) != len(indexes):
            raise ConfigurationError(f"Source field mapped twice: {indexes}")
        columns = self.columns
        for column in columns:
            if not _IDENTIFIER.match(column):
                raise ConfigurationError(f"Invalid column name: {column!r}")
        if len(set(columns)) != len(columns):
            raise ConfigurationError(f"Destination column assigned twice: {list(columns)}")

    @classmethod
    def from_pairs(
        cls,
        fields: Mapping[int, str] | Iterable[tuple[int, str]],
        constants: Mapping[str, Any] | None = None,
    ) -> "ColumnMapping":
        """Build a mapping from `{index: column}` and `{column: value_or_callable}`."""
        pairs = fields.items() if isinstance(fields, Mapping) else fields
        return cls(
            fields=tuple((int(index), column) for index, column in pairs),
            constants=tuple((constants or {}).items()),
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(c for _, c in self.fields) + tuple(c for c, _ in self.constants)

    @property
    def width(self) -> int:
        """Bind parameters each row needs."""
        return len(self.fields) + len(self.constants)

    @property
    def required_fields(self) -> int:
        """Minimum number of fields a source line must have."""
        return max(index for index, _ in self.fields) + 1

    @property
    def has_computed_defaults(self) -> bool:
        return any(callable(value) for _, value in self.constants)

    def validate_header(self, header: Sequence[str]) -> None:
        """Check a sample row's field count before anything is written."""
        if len(header) < self.required_fields:
            raise ConfigurationError(
                f"Mapping needs {self.required_fields} fields but the sample row has "
                f"{len(header)}: {list(header)}"
            )

    def project(self, fields: Sequence[str]) -> tuple:
        values = [fields[index] for index, _ in self.fields]
        for _, value in self.constants:
            values.append(value() if callable(value) else value)
        return tuple(values)

    def file_columns(self, field_count: int) -> list[str | None]:
        """Destination column for each field position of the file, None if unused."""
        by_index = dict(self.fields)
        return [by_index.get(position) for position in range(field_count)]

    def resolve_constants(self, evaluate_computed: bool) -> dict[str, Any]:
        """Constants as plain values, for loaders that apply one value to every row."""
        resolved: dict[str, Any] = {}
        for column, value in self.constants:
            if callable(value):
                if not evaluate_computed:
                    raise ConfigurationError(
                        f"Column {column!r} has a computed default that cannot be evaluated per row"
                    )
                value = value()
            resolved[column] = value
        return resolved
